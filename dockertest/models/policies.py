"""Policy enums attached to a Composition."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StartPolicy(str, Enum):
    """Launch discipline of a container.

    STRICT containers start sequentially in declaration order, each one
    ready before the next is started. RELAXED containers start concurrently
    with each other and with the strict sequence.
    """

    STRICT = "strict"
    RELAXED = "relaxed"


class StaticManagementPolicy(str, Enum):
    """How a static container, shared by concurrent test runs, is managed."""

    # Created by the first run needing it, removed by the last run releasing it.
    INTERNAL = "internal"
    # Pre-existing container; only connected to and disconnected from run networks.
    EXTERNAL = "external"


class LogSource(str, Enum):
    """Which container output streams to capture."""

    STDOUT = "stdout"
    STDERR = "stderr"
    BOTH = "both"

    @property
    def include_stdout(self) -> bool:
        return self in (LogSource.STDOUT, LogSource.BOTH)

    @property
    def include_stderr(self) -> bool:
        return self in (LogSource.STDERR, LogSource.BOTH)


class LogAction(str, Enum):
    """Where captured log lines are written."""

    FORWARD = "forward"
    FORWARD_TO_STDERR = "forward_to_stderr"
    FORWARD_TO_STDOUT = "forward_to_stdout"
    FORWARD_TO_FILE = "forward_to_file"


class LogPolicy(str, Enum):
    """When container logs are captured."""

    ALWAYS = "always"
    ON_ERROR = "on_error"


@dataclass(frozen=True)
class LogOptions:
    """Per-container log capture configuration."""

    action: LogAction = LogAction.FORWARD
    policy: LogPolicy = LogPolicy.ON_ERROR
    source: LogSource = LogSource.BOTH
    # Directory for FORWARD_TO_FILE; each container writes to <path>/<container name>.
    path: Optional[str] = None

    def __post_init__(self):
        if self.action is LogAction.FORWARD_TO_FILE and not self.path:
            raise ValueError("FORWARD_TO_FILE log action requires a path")
