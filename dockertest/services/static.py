"""Static container pool shared by concurrently running tests.

A static container outlives a single test run. Every run that declares it
acquires a reference when creating its containers and releases it during
teardown; an INTERNAL static container is physically removed only by the
run that drops the last reference. Decisions are serialized per container
name, so one run's teardown never removes a container another run still
depends on.

Runs sharing static containers must share an event loop.
"""

import asyncio
import dataclasses
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import structlog

from ..models.composition import Composition
from ..models.container import CleanupContainer, PendingContainer, RunningContainer
from ..models.errors import (
    DockerTestException,
    EngineNotFoundError,
    ProcessingError,
    StartupError,
)
from ..models.policies import StaticManagementPolicy
from .engine import ContainerSpec, EngineClient
from .waitfor import NoWait

logger = structlog.get_logger(__name__)


@dataclass
class StaticEntry:
    """Shared state of one static container."""

    name: str
    id: str
    policy: StaticManagementPolicy
    refcount: int = 0
    running: Optional[RunningContainer] = None
    # Run networks the container is currently attached to
    networks: Set[str] = field(default_factory=set)


class StaticContainers:
    """Reference-counted registry of static containers, keyed by name."""

    def __init__(self):
        self._entries: Dict[str, StaticEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _lock_for(self, name: str) -> asyncio.Lock:
        loop = asyncio.get_event_loop()
        if loop is not self._loop:
            # Locks bind to the loop they are first awaited on
            self._locks = {}
            self._loop = loop
        return self._locks.setdefault(name, asyncio.Lock())

    def refcount(self, name: str) -> int:
        entry = self._entries.get(name)
        return entry.refcount if entry else 0

    def entry(self, name: str) -> Optional[StaticEntry]:
        return self._entries.get(name)

    async def create(
        self,
        composition: Composition,
        engine: EngineClient,
        network: Optional[str],
    ) -> PendingContainer:
        """Acquire a reference to the static container of ``composition``.

        The first acquisition creates (INTERNAL) or looks up (EXTERNAL) the
        engine container; later acquisitions reuse it and attach it to the
        acquiring run's network.
        """
        name = composition.container_name
        policy = composition.static_policy
        if policy is None:
            raise ProcessingError(f"composition '{composition.handle()}' is not static")

        async with self._lock_for(name):
            entry = self._entries.get(name)
            if entry is None:
                if policy is StaticManagementPolicy.EXTERNAL:
                    container_id = await self._lookup_external(engine, name)
                    entry = StaticEntry(name=name, id=container_id, policy=policy)
                else:
                    container_id = await self._create_internal(composition, engine, network)
                    entry = StaticEntry(name=name, id=container_id, policy=policy)
                    if network:
                        entry.networks.add(network)
                self._entries[name] = entry
            elif entry.policy is not policy:
                raise StartupError(
                    f"static container '{name}' is already managed as {entry.policy.value}"
                )

            if network and network not in entry.networks:
                await engine.connect_network(network, entry.id)
                entry.networks.add(network)

            entry.refcount += 1
            logger.info(
                "Acquired static container",
                container=name,
                container_id=entry.id[:12],
                refcount=entry.refcount,
            )

        return PendingContainer(
            name=name,
            id=entry.id,
            handle=composition.handle(),
            start_policy=composition.start_policy,
            wait=composition.wait or NoWait(),
            engine=engine,
            is_static=True,
            static_policy=policy,
            log_options=composition.log_options,
            static_pool=self,
        )

    async def start(self, container: PendingContainer) -> RunningContainer:
        """Start the static container once; later callers reuse the result."""
        async with self._lock_for(container.name):
            entry = self._entries.get(container.name)
            if entry is None:
                raise ProcessingError(
                    f"static container '{container.name}' started without being acquired"
                )

            if entry.running is None:
                if entry.policy is StaticManagementPolicy.EXTERNAL:
                    # Already running outside of dockertest, only check readiness
                    entry.running = await container.wait.wait_for_ready(container)
                else:
                    entry.running = await container.start_internal()

            return dataclasses.replace(entry.running, handle=container.handle)

    async def release(
        self,
        engine: EngineClient,
        network: Optional[str],
        containers: List[CleanupContainer],
    ) -> None:
        """Drop one reference per container; remove INTERNAL ones nobody holds.

        ``network`` is the run network to detach from, or None when the run
        uses an external network. Errors are logged, never raised.
        """
        for container in containers:
            async with self._lock_for(container.name):
                entry = self._entries.get(container.name)
                if entry is None:
                    logger.warning("Releasing unknown static container", container=container.name)
                    continue

                entry.refcount -= 1

                if network and network in entry.networks:
                    entry.networks.discard(network)
                    try:
                        await engine.disconnect_network(network, entry.id, force=True)
                    except DockerTestException as e:
                        logger.error(
                            "Failed to disconnect static container from network",
                            container=container.name,
                            network=network,
                            error=str(e),
                        )

                if entry.refcount > 0:
                    logger.debug(
                        "Static container still in use",
                        container=container.name,
                        refcount=entry.refcount,
                    )
                    continue

                del self._entries[container.name]
                if entry.policy is StaticManagementPolicy.EXTERNAL:
                    continue

                logger.info("Removing static container", container=container.name)
                try:
                    await engine.remove_container(entry.id, force=True, volumes=True)
                except DockerTestException as e:
                    logger.error(
                        "Failed to remove static container",
                        container=container.name,
                        error=str(e),
                    )

    async def _lookup_external(self, engine: EngineClient, name: str) -> str:
        try:
            inspection = await engine.inspect_container(name)
        except EngineNotFoundError:
            raise StartupError(f"external static container '{name}' does not exist")
        return inspection.id

    async def _create_internal(
        self, composition: Composition, engine: EngineClient, network: Optional[str]
    ) -> str:
        spec = ContainerSpec.from_composition(composition, network)
        try:
            # A previous process may have left the container behind
            await engine.remove_container(spec.name, force=True, volumes=True)
        except EngineNotFoundError:
            pass
        return await engine.create_container(spec)


# Process-wide pool shared by every run
static_containers = StaticContainers()
