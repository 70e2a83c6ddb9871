"""dockertest - ephemeral multi-container environments for test runs."""

from .environment import DockerTest
from .models import (
    CleanupContainer,
    Composition,
    DockerTestException,
    HostPortMappings,
    Image,
    LogAction,
    LogOptions,
    LogPolicy,
    LogSource,
    PendingContainer,
    RunningContainer,
    Source,
    StartPolicy,
    StaticManagementPolicy,
)
from .services import (
    CustomWait,
    DockerOperations,
    ExitedWait,
    MessageWait,
    NoWait,
    PruneStrategy,
    RunningWait,
    WaitFor,
)

__version__ = "0.1.0"

__all__ = [
    "DockerTest",
    "DockerOperations",
    "Composition",
    "Image",
    "Source",
    "StartPolicy",
    "StaticManagementPolicy",
    "LogAction",
    "LogOptions",
    "LogPolicy",
    "LogSource",
    "PendingContainer",
    "RunningContainer",
    "CleanupContainer",
    "HostPortMappings",
    "PruneStrategy",
    "WaitFor",
    "NoWait",
    "RunningWait",
    "ExitedWait",
    "MessageWait",
    "CustomWait",
    "DockerTestException",
]
