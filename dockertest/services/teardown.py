"""Teardown of everything a run created, driven by the prune strategy.

Static containers are handed back to the shared pool first, whatever the
strategy, as other runs may still depend on them. The remaining containers
follow the decision table of ``decide``. When resources are removed,
containers go first, then the network, then named volumes: the engine
rejects removing a network with attached containers, and a volume that is
still in use.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, List, Optional

import structlog

from ..models.container import CleanupContainer
from ..models.errors import DockerTestException
from .engine import EngineClient
from .static import StaticContainers, static_containers

logger = structlog.get_logger(__name__)


class PruneStrategy(str, Enum):
    """What happens to the run's resources after the test body finished."""

    RUNNING_REGARDLESS = "never"
    RUNNING_ON_FAILURE = "running_on_failure"
    STOP_ON_FAILURE = "stop_on_failure"
    REMOVE_REGARDLESS = "always"

    @classmethod
    def from_setting(cls, value: Optional[str]) -> "PruneStrategy":
        """Parse a DOCKERTEST_PRUNE value; unset or unknown values remove everything."""
        if value is None:
            return cls.REMOVE_REGARDLESS
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning("Unrecognized DOCKERTEST_PRUNE value", value=value)
            logger.debug("Defaulting to prune strategy", strategy=cls.REMOVE_REGARDLESS.value)
            return cls.REMOVE_REGARDLESS


class TeardownAction(str, Enum):
    LEAVE = "leave"
    STOP = "stop"
    REMOVE = "remove"


def decide(strategy: PruneStrategy, test_failed: bool) -> TeardownAction:
    """Map a prune strategy and the test outcome to a teardown action."""
    if strategy is PruneStrategy.RUNNING_REGARDLESS:
        return TeardownAction.LEAVE
    if strategy is PruneStrategy.RUNNING_ON_FAILURE and test_failed:
        return TeardownAction.LEAVE
    if strategy is PruneStrategy.STOP_ON_FAILURE and test_failed:
        return TeardownAction.STOP
    return TeardownAction.REMOVE


@dataclass
class TeardownPlan:
    """Resources of one run, as known when teardown starts."""

    containers: List[CleanupContainer]
    network: str
    external_network: bool = False
    named_volumes: List[str] = field(default_factory=list)
    # Id of the container the test process runs in, if it joined the network
    self_container_id: Optional[str] = None


class TeardownEngine:
    """Performs teardown; every engine call is isolated from the others."""

    def __init__(self, engine: EngineClient, static_pool: Optional[StaticContainers] = None):
        self.engine = engine
        self.static_pool = static_pool or static_containers

    async def teardown(
        self, plan: TeardownPlan, strategy: PruneStrategy, test_failed: bool
    ) -> TeardownAction:
        """Tear the run down. Never raises on engine failures.

        Returns:
            The action taken for the non-static containers
        """
        static = [c for c in plan.containers if c.is_static]
        if static:
            await self.static_pool.release(
                self.engine, None if plan.external_network else plan.network, static
            )

        containers = [c for c in plan.containers if not c.is_static]
        action = decide(strategy, test_failed)
        logger.info(
            "Tearing down",
            strategy=strategy.value,
            test_failed=test_failed,
            action=action.value,
            containers=len(containers),
        )

        if action is TeardownAction.LEAVE:
            logger.debug("Leaving containers running", containers=[c.name for c in containers])
            return action

        if action is TeardownAction.STOP:
            await self._gather(
                self._isolated(
                    self.engine.stop_container(c.id), "Failed to stop container", container=c.name
                )
                for c in containers
            )
            if not plan.external_network:
                await self._teardown_network(plan)
            return action

        # Volumes of containers that failed to be removed stay in use
        await self._gather(
            self._isolated(
                self.engine.remove_container(c.id, force=True, volumes=True),
                "Failed to remove container",
                container=c.name,
            )
            for c in containers
        )

        if not plan.external_network:
            await self._teardown_network(plan)

        for volume in plan.named_volumes:
            logger.info("Removing named volume", volume=volume)
        await self._gather(
            self._isolated(
                self.engine.remove_volume(volume, force=True),
                "Failed to remove named volume",
                volume=volume,
            )
            for volume in plan.named_volumes
        )
        return action

    async def _teardown_network(self, plan: TeardownPlan) -> None:
        if plan.self_container_id:
            await self._isolated(
                self.engine.disconnect_network(plan.network, plan.self_container_id, force=True),
                "Failed to disconnect test container from network",
                network=plan.network,
            )
        await self._isolated(
            self.engine.remove_network(plan.network),
            "Failed to remove network",
            network=plan.network,
        )

    async def _gather(self, calls) -> None:
        await asyncio.gather(*calls)

    async def _isolated(self, call: Awaitable[None], event: str, **fields) -> bool:
        try:
            await call
        except DockerTestException as e:
            logger.error(event, error=str(e), **fields)
            return False
        return True
