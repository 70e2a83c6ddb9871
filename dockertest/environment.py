"""DockerTest - user-facing configuration of one test environment.

Usage:
    test = DockerTest().with_default_source(Source.REMOTE)
    test.provide_container(
        Composition.with_repository("postgres").with_start_policy(StartPolicy.STRICT)
    )

    async def body(ops: DockerOperations):
        db = ops.handle("postgres")
        ...

    test.run(body)
"""

import asyncio
from typing import List, Optional

from .config import Settings
from .models.composition import Composition, Source
from .services.engine import EngineClient
from .services.runner import Runner, TestBody
from .services.static import StaticContainers


class DockerTest:
    """Collects compositions and run options, then executes a test body."""

    def __init__(
        self,
        namespace: Optional[str] = None,
        default_source: Source = Source.LOCAL,
        external_network: Optional[str] = None,
        engine: Optional[EngineClient] = None,
        static_pool: Optional[StaticContainers] = None,
        settings: Optional[Settings] = None,
    ):
        self.namespace = namespace
        self.default_source = default_source
        self.external_network = external_network
        self.engine = engine
        self.static_pool = static_pool
        self.settings = settings
        self.compositions: List[Composition] = []

    def with_namespace(self, namespace: str) -> "DockerTest":
        self.namespace = namespace
        return self

    def with_default_source(self, source: Source) -> "DockerTest":
        self.default_source = source
        return self

    def with_external_network(self, network: str) -> "DockerTest":
        """Run inside an existing network; it is neither created nor removed."""
        self.external_network = network
        return self

    def add_composition(self, composition: Composition) -> "DockerTest":
        self.compositions.append(composition)
        return self

    def provide_container(self, composition: Composition) -> "DockerTest":
        return self.add_composition(composition)

    def runner(self) -> Runner:
        return Runner(
            list(self.compositions),
            namespace=self.namespace,
            default_source=self.default_source,
            external_network=self.external_network,
            engine=self.engine,
            static_pool=self.static_pool,
            settings=self.settings,
        )

    async def run_async(self, test: TestBody) -> None:
        """Run ``test`` on the current event loop."""
        await self.runner().run(test)

    def run(self, test: TestBody) -> None:
        """Run ``test`` on a new event loop."""
        asyncio.run(self.run_async(test))
