"""Data models for dockertest."""

from .composition import Composition, Image, Source
from .container import (
    CleanupContainer,
    ContainerInspection,
    HostPort,
    HostPortMappings,
    PendingContainer,
    RunningContainer,
)
from .errors import (
    DaemonError,
    DockerTestException,
    EngineNotFoundError,
    ErrorType,
    HandleCollisionError,
    HandleNotFoundError,
    HostPortError,
    LogWriteError,
    ProcessingError,
    RecoverableError,
    StageFailure,
    StartupError,
    TestBodyError,
    TestBodyFailure,
)
from .policies import (
    LogAction,
    LogOptions,
    LogPolicy,
    LogSource,
    StartPolicy,
    StaticManagementPolicy,
)

__all__ = [
    # Composition models
    "Composition",
    "Image",
    "Source",
    # Container models
    "CleanupContainer",
    "ContainerInspection",
    "HostPort",
    "HostPortMappings",
    "PendingContainer",
    "RunningContainer",
    # Policies
    "LogAction",
    "LogOptions",
    "LogPolicy",
    "LogSource",
    "StartPolicy",
    "StaticManagementPolicy",
    # Errors
    "ErrorType",
    "DockerTestException",
    "RecoverableError",
    "DaemonError",
    "EngineNotFoundError",
    "StartupError",
    "ProcessingError",
    "TestBodyError",
    "HandleNotFoundError",
    "HandleCollisionError",
    "TestBodyFailure",
    "HostPortError",
    "LogWriteError",
    "StageFailure",
]
