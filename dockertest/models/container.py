"""Container lifecycle models.

A container passes through three representations:

- ``PendingContainer``: created on the engine, not yet started/ready
- ``RunningContainer``: started and ready, handed to the test body
- ``CleanupContainer``: the minimal projection needed for teardown, derivable
  from either of the two above
"""

import ipaddress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog

from .errors import EngineNotFoundError, HostPortError, StartupError
from .policies import LogOptions, LogSource, StartPolicy, StaticManagementPolicy

if TYPE_CHECKING:
    from ..services.engine import EngineClient
    from ..services.static import StaticContainers
    from ..services.waitfor import WaitFor

logger = structlog.get_logger(__name__)

UNSPECIFIED_IP = ipaddress.IPv4Address("0.0.0.0")


@dataclass(frozen=True)
class HostPort:
    """One host binding of a published container port."""

    ip: str
    port: int


class HostPortMappings:
    """Published ports of a container, keyed by ``<port>/<protocol>``."""

    def __init__(self, mappings: Optional[Dict[str, List[HostPort]]] = None):
        self._mappings = mappings or {}

    @classmethod
    def from_inspect(cls, ports: Optional[Dict[str, Any]]) -> "HostPortMappings":
        """Parse the ``NetworkSettings.Ports`` section of an inspect response.

        Raises:
            HostPortError: on malformed keys or host ports
        """
        mappings: Dict[str, List[HostPort]] = {}
        for key, bindings in (ports or {}).items():
            port, _, protocol = key.partition("/")
            if not port.isdigit() or not protocol:
                raise HostPortError(f"invalid container port specification '{key}'")
            parsed = []
            # Exposed but unpublished ports carry no bindings
            for binding in bindings or []:
                host_port = str(binding.get("HostPort", ""))
                if not host_port.isdigit():
                    raise HostPortError(
                        f"invalid host port '{host_port}' for container port '{key}'"
                    )
                parsed.append(HostPort(ip=binding.get("HostIp") or "0.0.0.0", port=int(host_port)))
            mappings[key] = parsed
        return cls(mappings)

    def host_port(self, container_port: int, protocol: str = "tcp") -> Optional[Tuple[str, int]]:
        """First host (ip, port) bound to ``container_port``, if it was published."""
        bindings = self._mappings.get(f"{container_port}/{protocol}")
        if not bindings:
            return None
        return bindings[0].ip, bindings[0].port

    def __contains__(self, key: str) -> bool:
        return key in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)

    def items(self):
        return self._mappings.items()

    def __repr__(self) -> str:
        return f"HostPortMappings({self._mappings!r})"


@dataclass
class ContainerInspection:
    """The subset of an engine inspect response dockertest relies on."""

    id: str
    name: str
    status: str
    exit_code: Optional[int] = None
    # network name -> ip address (may be empty for exited containers)
    networks: Dict[str, str] = field(default_factory=dict)
    ports: Optional[Dict[str, Any]] = None

    @classmethod
    def from_attrs(cls, attrs: Dict[str, Any]) -> "ContainerInspection":
        state = attrs.get("State") or {}
        network_settings = attrs.get("NetworkSettings") or {}
        networks = {
            name: (settings or {}).get("IPAddress", "")
            for name, settings in (network_settings.get("Networks") or {}).items()
        }
        return cls(
            id=attrs.get("Id", ""),
            name=attrs.get("Name", "").lstrip("/"),
            status=state.get("Status", ""),
            exit_code=state.get("ExitCode"),
            networks=networks,
            ports=network_settings.get("Ports"),
        )

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    @property
    def has_exited(self) -> bool:
        return self.status in ("exited", "dead")

    def ip_on(self, network: str) -> ipaddress.IPv4Address:
        """IPv4 address on ``network``; unspecified when missing or unparsable."""
        raw = self.networks.get(network)
        if not raw:
            return UNSPECIFIED_IP
        try:
            return ipaddress.IPv4Address(raw)
        except ValueError:
            # Exited containers will not have an IP address
            logger.debug("Container ip address failed to parse", container=self.name, ip=raw)
            return UNSPECIFIED_IP


@dataclass
class CleanupContainer:
    """Minimal projection of a created container, used for teardown."""

    id: str
    name: str
    engine: "EngineClient" = field(repr=False)
    is_static: bool = False
    static_policy: Optional[StaticManagementPolicy] = None
    log_options: Optional[LogOptions] = None


@dataclass
class RunningContainer:
    """A container that is started and ready, available to the test body.

    ``ip`` and ``ports`` are retrieved once, before the test body runs, and
    are not refreshed afterwards.
    """

    handle: str
    id: str
    name: str
    engine: "EngineClient" = field(repr=False)
    ip: ipaddress.IPv4Address = UNSPECIFIED_IP
    ports: HostPortMappings = field(default_factory=HostPortMappings)
    is_static: bool = False
    static_policy: Optional[StaticManagementPolicy] = None
    log_options: Optional[LogOptions] = None

    def cleanup(self) -> CleanupContainer:
        return CleanupContainer(
            id=self.id,
            name=self.name,
            engine=self.engine,
            is_static=self.is_static,
            static_policy=self.static_policy,
            log_options=self.log_options,
        )

    async def assert_message(
        self, message: str, source: LogSource = LogSource.BOTH, timeout: float = 30
    ) -> None:
        """Wait for ``message`` to appear in this container's output.

        Raises:
            StartupError: the message did not appear within ``timeout`` seconds
        """
        from ..services.waitfor import wait_for_message

        await wait_for_message(self.engine, self.id, self.handle, message, source, timeout)


@dataclass
class PendingContainer:
    """A container created on the engine, possibly not yet running.

    Readiness strategies receive a PendingContainer and turn it into a
    RunningContainer.
    """

    name: str
    id: str
    handle: str
    start_policy: StartPolicy
    wait: "WaitFor" = field(repr=False)
    engine: "EngineClient" = field(repr=False)
    is_static: bool = False
    static_policy: Optional[StaticManagementPolicy] = None
    log_options: Optional[LogOptions] = None
    static_pool: Optional["StaticContainers"] = field(default=None, repr=False)

    async def start(self) -> RunningContainer:
        """Start the container and wait until its readiness strategy is satisfied."""
        if self.is_static and self.static_pool is not None:
            return await self.static_pool.start(self)
        return await self.start_internal()

    async def start_internal(self) -> RunningContainer:
        """Issue the start command, then hand over to the readiness strategy.

        Static containers must be started through their pool, which calls this.
        """
        try:
            await self.engine.start_container(self.id)
        except EngineNotFoundError as e:
            raise StartupError(f"failed to start container due to `{e.message}`")

        logger.debug("Container started, waiting for readiness", container=self.name)
        return await self.wait.wait_for_ready(self)

    def into_running(self) -> RunningContainer:
        return RunningContainer(
            handle=self.handle,
            id=self.id,
            name=self.name,
            engine=self.engine,
            is_static=self.is_static,
            static_policy=self.static_policy,
            log_options=self.log_options,
        )

    def cleanup(self) -> CleanupContainer:
        return CleanupContainer(
            id=self.id,
            name=self.name,
            engine=self.engine,
            is_static=self.is_static,
            static_policy=self.static_policy,
            log_options=self.log_options,
        )
