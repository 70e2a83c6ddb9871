"""Pytest configuration and shared fixtures."""

import asyncio
import os
from typing import Dict, List, Optional, Set, Tuple

import pytest

# Set test environment before importing config
os.environ.setdefault("DOCKERTEST_PRUNE", "always")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from dockertest.config import Settings
from dockertest.models.container import ContainerInspection
from dockertest.models.errors import DaemonError, EngineNotFoundError
from dockertest.services.engine import ContainerSpec, EngineClient
from dockertest.services.static import StaticContainers


def has_handle(name: str, handle: str) -> bool:
    """Whether a finalized container name was derived from ``handle``."""
    return name == handle or f"-{handle}-" in name


class FakeEngine(EngineClient):
    """In-memory EngineClient that records every call in order.

    Containers are addressed by id or name, like the docker daemon.
    Failures and start delays are configured by handle.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []
        self.containers: Dict[str, dict] = {}
        self.networks: Set[str] = set()
        self.volumes_removed: List[str] = []
        self.images_pulled: List[str] = []
        self.start_delays: Dict[str, float] = {}
        self.fail_create: Set[str] = set()
        self.fail_start: Set[str] = set()
        self.fail_pull: Set[str] = set()
        self.fail_inspect: Set[str] = set()
        self.fail_remove: Set[str] = set()
        self.ports: Dict[str, dict] = {}
        self.output: Dict[str, Dict[str, List[bytes]]] = {}
        self._next_id = 0

    # helpers

    def add_container(self, name: str, status: str = "running") -> str:
        """Register a container that exists outside of any run."""
        self._next_id += 1
        container_id = f"{self._next_id:012d}{'f' * 52}"
        self.containers[container_id] = {
            "name": name,
            "status": status,
            "networks": {},
        }
        return container_id

    def find(self, id_or_name: str) -> Optional[str]:
        if id_or_name in self.containers:
            return id_or_name
        for container_id, container in self.containers.items():
            if container["name"] == id_or_name:
                return container_id
        return None

    def _require(self, id_or_name: str) -> str:
        container_id = self.find(id_or_name)
        if container_id is None:
            raise EngineNotFoundError(f"no such container: {id_or_name}")
        return container_id

    def _matches(self, name: str, handles: Set[str]) -> bool:
        return any(has_handle(name, handle) for handle in handles)

    def name_of(self, container_id: str) -> str:
        return self.containers[container_id]["name"]

    def calls_of(self, op: str) -> List[str]:
        return [arg for call, arg in self.calls if call == op]

    def started_names(self) -> List[str]:
        return [name for call, name in self.calls if call == "start"]

    # EngineClient

    async def pull_image(self, repository: str, tag: str) -> None:
        reference = f"{repository}:{tag}"
        self.calls.append(("pull", reference))
        if repository in self.fail_pull:
            raise DaemonError(f"pull access denied for {repository}")
        self.images_pulled.append(reference)

    async def create_container(self, spec: ContainerSpec) -> str:
        self.calls.append(("create", spec.name))
        if self._matches(spec.name, self.fail_create):
            raise DaemonError(f"failed to create container: {spec.name}")
        if self.find(spec.name) is not None:
            raise DaemonError(f"conflict: container name {spec.name} is already in use")
        container_id = self.add_container(spec.name, status="created")
        container = self.containers[container_id]
        container["spec"] = spec
        if spec.network:
            container["networks"][spec.network] = f"172.18.0.{len(self.containers) + 1}"
        return container_id

    async def start_container(self, container_id: str) -> None:
        container_id = self._require(container_id)
        name = self.name_of(container_id)
        for handle, delay in self.start_delays.items():
            if has_handle(name, handle):
                await asyncio.sleep(delay)
        self.calls.append(("start", name))
        if self._matches(name, self.fail_start):
            raise DaemonError(f"failed to start container: {name}")
        self.containers[container_id]["status"] = "running"

    async def stop_container(self, container_id: str) -> None:
        container_id = self._require(container_id)
        self.calls.append(("stop", self.name_of(container_id)))
        self.containers[container_id]["status"] = "exited"

    async def inspect_container(self, container_id: str) -> ContainerInspection:
        found = self._require(container_id)
        container = self.containers[found]
        if self._matches(container["name"], self.fail_inspect):
            raise DaemonError(f"failed to inspect container: {container['name']}")
        return ContainerInspection(
            id=found,
            name=container["name"],
            status=container["status"],
            networks=dict(container["networks"]),
            ports=self.ports.get(container["name"]),
        )

    async def remove_container(
        self, container_id: str, force: bool = True, volumes: bool = True
    ) -> None:
        found = self._require(container_id)
        name = self.name_of(found)
        self.calls.append(("remove", name))
        if self._matches(name, self.fail_remove):
            raise DaemonError(f"failed to remove container: {name}")
        del self.containers[found]

    async def create_network(self, name: str) -> None:
        self.calls.append(("create_network", name))
        self.networks.add(name)

    async def remove_network(self, name: str) -> None:
        self.calls.append(("remove_network", name))
        attached = [
            c["name"]
            for c in self.containers.values()
            if name in c["networks"] and c["status"] == "running"
        ]
        if attached:
            raise DaemonError(f"network {name} has active endpoints: {attached}")
        self.networks.discard(name)

    async def connect_network(self, network: str, container_id: str) -> None:
        self.calls.append(("connect_network", container_id))
        found = self._require(container_id)
        self.containers[found]["networks"][network] = "172.18.0.254"

    async def disconnect_network(
        self, network: str, container_id: str, force: bool = True
    ) -> None:
        self.calls.append(("disconnect_network", container_id))
        found = self._require(container_id)
        self.containers[found]["networks"].pop(network, None)

    async def remove_volume(self, name: str, force: bool = True) -> None:
        self.calls.append(("remove_volume", name))
        self.volumes_removed.append(name)

    async def logs(
        self,
        container_id: str,
        stdout: bool = True,
        stderr: bool = True,
        follow: bool = False,
    ):
        found = self._require(container_id)
        output = self.output.get(self.name_of(found), {})
        chunks: List[bytes] = []
        if stdout:
            chunks.extend(output.get("stdout", []))
        if stderr:
            chunks.extend(output.get("stderr", []))
        for chunk in chunks:
            yield chunk


@pytest.fixture
def fake_engine():
    """In-memory container engine."""
    return FakeEngine()


@pytest.fixture
def static_pool():
    """Static container pool isolated from the process-wide one."""
    return StaticContainers()


@pytest.fixture
def run_settings():
    """Settings for a run that removes everything afterwards."""
    return Settings(
        dockertest_prune="always",
        dockertest_namespace="dockertest-rs",
        dockertest_network_prefix="dockertest-rs",
    )
