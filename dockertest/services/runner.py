"""Runner - orchestrates one test run from resolution to teardown.

The pipeline is:

1. resolve compositions (handles, names, volumes, name injection)
2. pull remote images
3. create the run network, unless an external one is used
4. create containers
5. start containers according to their start policy
6. inspect containers for ip addresses and published ports
7. run the test body
8. capture logs, then tear down according to the prune strategy

Any failure after the first engine side effect tears down everything
created so far before the first error is raised.

Usage:
    runner = Runner(compositions, namespace="dockertest-rs")
    await runner.run(test_body)
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import structlog

from ..config import Settings
from ..core.keeper import Keeper
from ..models.composition import Composition, Source
from ..models.container import CleanupContainer, RunningContainer
from ..models.errors import (
    DaemonError,
    StageFailure,
    StartupError,
    TestBodyError,
    TestBodyFailure,
)
from ..utils.naming import generate_run_id
from .creation import create_containers, pull_images
from .engine import DockerEngineClient, EngineClient
from .inspection import inspect_containers
from .logs import LogCollector
from .resolution import resolve
from .scheduler import start_containers
from .static import StaticContainers, static_containers
from .teardown import PruneStrategy, TeardownEngine, TeardownPlan

logger = structlog.get_logger(__name__)


class DockerOperations:
    """Interface handed to the test body."""

    def __init__(self, containers: Keeper[RunningContainer], network: str):
        self._containers = containers
        self.network = network

    def handle(self, handle: str) -> RunningContainer:
        """Return the running container declared with ``handle``.

        Raises:
            TestBodyError: the handle is unknown or was declared more than once
        """
        try:
            return self._containers.resolve(handle)
        except TestBodyError as e:
            logger.error("Failed to resolve container handle", handle=handle, error=e.message)
            raise

    def failure(self, message: str) -> None:
        """Abort the test body, failing the run."""
        raise TestBodyFailure(message)

    @property
    def containers(self) -> List[RunningContainer]:
        """Running containers in declaration order."""
        return list(self._containers)


TestBody = Callable[[DockerOperations], Awaitable[None]]


class Runner:
    """Executes a single test run."""

    def __init__(
        self,
        compositions: List[Composition],
        namespace: Optional[str] = None,
        default_source: Source = Source.LOCAL,
        external_network: Optional[str] = None,
        engine: Optional[EngineClient] = None,
        static_pool: Optional[StaticContainers] = None,
        settings: Optional[Settings] = None,
        log_collector: Optional[LogCollector] = None,
    ):
        # Settings are resolved once per run
        self.settings = settings or Settings()
        self.compositions = compositions
        self.namespace = namespace or self.settings.dockertest_namespace
        self.default_source = default_source
        self.external_network = external_network
        self.run_id = generate_run_id()
        self.network = (
            external_network or f"{self.settings.dockertest_network_prefix}-{self.run_id}"
        )
        self.engine = engine or DockerEngineClient(
            timeout=self.settings.engine_timeout_seconds
        )
        self.static_pool = static_pool or static_containers
        self.log_collector = log_collector or LogCollector()
        self.prune = PruneStrategy.from_setting(self.settings.dockertest_prune)
        self.self_container_id = self.settings.dockertest_container_id_inject_to_network
        self.named_volumes: List[str] = []
        self._teardown = TeardownEngine(self.engine, self.static_pool)

    async def run(self, test: TestBody) -> None:
        """Run ``test`` against a freshly created environment.

        Raises:
            DockerTestException: the first error of a failed setup stage
            BaseException: whatever the test body raised, after teardown
            LogWriteError: log capture failed on an otherwise successful run
        """
        logger.info(
            "Starting test run",
            run_id=self.run_id,
            network=self.network,
            compositions=len(self.compositions),
        )
        if self.self_container_id:
            logger.debug("Running inside a container", container_id=self.self_container_id[:12])

        resolution = resolve(self.compositions, self.namespace, self.run_id)
        self.named_volumes = resolution.named_volumes

        await pull_images(resolution.compositions, self.engine, self.default_source)

        if self.external_network is None:
            await self._create_network()

        cleanup: List[CleanupContainer] = []
        try:
            pending = await create_containers(
                resolution.compositions, self.engine, self.network, self.static_pool
            )
            running = await start_containers(pending)
            cleanup = [container.cleanup() for container in running]
            running = await inspect_containers(running, self.network)
        except StageFailure as e:
            await self._abort(e.cleanup)
            raise e.error
        except BaseException:
            await self._abort(cleanup)
            raise

        ops = DockerOperations(running, self.network)
        test_error: Optional[BaseException] = None
        try:
            await asyncio.create_task(test(ops))
            logger.debug("Test body succeeded", run_id=self.run_id)
        except BaseException as e:
            # pytest.fail, pytest.skip and cancellation end the body too
            logger.error("Test body failed", run_id=self.run_id, error=repr(e))
            test_error = e

        test_failed = test_error is not None
        log_errors = await self.log_collector.handle_logs(cleanup, test_failed)
        await self._teardown.teardown(self._plan(cleanup), self.prune, test_failed)

        if test_error is not None:
            raise test_error
        if log_errors:
            raise log_errors[0]

    async def _create_network(self) -> None:
        logger.debug("Creating network", network=self.network)
        try:
            await self.engine.create_network(self.network)
        except DaemonError as e:
            raise StartupError(f"creating docker network failed: {e.message}")

        if not self.self_container_id:
            return

        logger.debug(
            "Adding test container to network",
            container_id=self.self_container_id[:12],
            network=self.network,
        )
        try:
            await self.engine.connect_network(self.network, self.self_container_id)
        except BaseException as e:
            await self._abort([])
            if not isinstance(e, DaemonError):
                raise
            raise StartupError(
                f"failed to add internal container to dockertest network: {e.message}"
            )

    async def _abort(self, cleanup: List[CleanupContainer]) -> None:
        """Capture logs and tear down after a failed setup stage."""
        # The stage error takes precedence over log capture failures
        await self.log_collector.handle_logs(cleanup, test_failed=True)
        await self._teardown.teardown(self._plan(cleanup), self.prune, test_failed=True)

    def _plan(self, cleanup: List[CleanupContainer]) -> TeardownPlan:
        return TeardownPlan(
            containers=cleanup,
            network=self.network,
            external_network=self.external_network is not None,
            named_volumes=self.named_volumes,
            self_container_id=self.self_container_id,
        )
