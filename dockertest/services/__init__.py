"""Lifecycle stages and collaborators of a test run."""

from .engine import ContainerSpec, DockerEngineClient, EngineClient
from .logs import LogCollector
from .runner import DockerOperations, Runner
from .static import StaticContainers, static_containers
from .teardown import PruneStrategy, TeardownEngine, TeardownPlan
from .waitfor import CustomWait, ExitedWait, MessageWait, NoWait, RunningWait, WaitFor

__all__ = [
    "ContainerSpec",
    "EngineClient",
    "DockerEngineClient",
    "LogCollector",
    "DockerOperations",
    "Runner",
    "StaticContainers",
    "static_containers",
    "PruneStrategy",
    "TeardownEngine",
    "TeardownPlan",
    "WaitFor",
    "NoWait",
    "RunningWait",
    "ExitedWait",
    "MessageWait",
    "CustomWait",
]
