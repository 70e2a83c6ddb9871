"""Error models and exception classes for dockertest."""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .container import CleanupContainer


class ErrorType(str, Enum):
    """Error type enumeration."""

    RECOVERABLE = "recoverable"
    DAEMON = "daemon"
    STARTUP = "startup"
    PROCESSING = "processing"
    TEST_BODY = "test_body"
    HOST_PORT = "host_port"
    LOG_WRITE = "log_write"


class DockerTestException(Exception):
    """Base exception for dockertest."""

    def __init__(self, message: str, error_type: ErrorType = ErrorType.PROCESSING):
        self.message = message
        self.error_type = error_type
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.error_type.value}: {self.message}"


class RecoverableError(DockerTestException):
    """Expected failure that the caller handles at its own call site.

    Example: the container did not exist during a defensive pre-removal.
    """

    def __init__(self, message: str):
        super().__init__(message, ErrorType.RECOVERABLE)


class DaemonError(DockerTestException):
    """The container engine rejected or failed a call."""

    def __init__(self, message: str):
        super().__init__(message, ErrorType.DAEMON)


class EngineNotFoundError(DaemonError):
    """The engine reported that the referenced object does not exist."""


class StartupError(DockerTestException):
    """Pre-flight, resolution or creation failure."""

    def __init__(self, message: str):
        super().__init__(message, ErrorType.STARTUP)


class ProcessingError(DockerTestException):
    """Internal invariant violation."""

    def __init__(self, message: str):
        super().__init__(message, ErrorType.PROCESSING)


class TestBodyError(DockerTestException):
    """Fatal error raised inside the test body.

    Not a RecoverableError: a misconfigured test must stop immediately.
    """

    __test__ = False

    def __init__(self, message: str):
        super().__init__(message, ErrorType.TEST_BODY)


class HandleNotFoundError(TestBodyError):
    """No container was declared with the requested handle."""

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"container with handle '{handle}' not found")


class HandleCollisionError(TestBodyError):
    """The requested handle was declared more than once."""

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"handle '{handle}' defined multiple times")


class TestBodyFailure(TestBodyError):
    """Explicit failure signalled by the test body."""

    def __init__(self, message: str):
        super().__init__(f"test failure: {message}")


class HostPortError(DockerTestException):
    """Published port information from the engine could not be parsed."""

    def __init__(self, message: str):
        super().__init__(message, ErrorType.HOST_PORT)


class LogWriteError(DockerTestException):
    """Container log output could not be read or written."""

    def __init__(self, message: str):
        super().__init__(message, ErrorType.LOG_WRITE)


class StageFailure(Exception):
    """A lifecycle stage failed after issuing commands to the engine.

    Carries the first error together with every container that must be
    swept during teardown. The error is a ``DockerTestException`` unless the
    stage was interrupted by a ``BaseException`` such as cancellation, which
    is carried unchanged.
    """

    def __init__(
        self,
        error: BaseException,
        cleanup: Optional[List["CleanupContainer"]] = None,
    ):
        self.error = error
        self.cleanup = list(cleanup or [])
        super().__init__(str(error))
