"""Container engine client.

``EngineClient`` is the async interface the lifecycle stages talk to.
``DockerEngineClient`` implements it on top of the docker SDK; its calls are
blocking, so each one is run in the default thread pool executor.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from typing import AsyncIterator, Dict, List, Optional

import docker
import structlog
from docker.errors import APIError, DockerException, NotFound

from ..config import settings
from ..models.composition import Composition
from ..models.container import ContainerInspection
from ..models.errors import DaemonError, EngineNotFoundError

logger = structlog.get_logger(__name__)


@dataclass
class ContainerSpec:
    """Everything the engine needs to create one container."""

    name: str
    image: str
    env: Dict[str, str] = field(default_factory=dict)
    cmd: List[str] = field(default_factory=list)
    binds: List[str] = field(default_factory=list)
    port_bindings: Dict[str, int] = field(default_factory=dict)
    network: Optional[str] = None
    privileged: bool = False

    @classmethod
    def from_composition(cls, composition: Composition, network: Optional[str]) -> "ContainerSpec":
        return cls(
            name=composition.container_name,
            image=composition.image.reference,
            env=dict(composition.env_vars),
            cmd=list(composition.command),
            binds=composition.volume_binds(),
            port_bindings=dict(composition.port_bindings),
            network=network,
            privileged=composition.privileged,
        )


class EngineClient(ABC):
    """Async, fallible container engine operations.

    Implementations raise ``EngineNotFoundError`` when the referenced object
    does not exist and ``DaemonError`` for any other engine failure.
    """

    @abstractmethod
    async def pull_image(self, repository: str, tag: str) -> None: ...

    @abstractmethod
    async def create_container(self, spec: ContainerSpec) -> str:
        """Create a container and return its engine id."""

    @abstractmethod
    async def start_container(self, container_id: str) -> None: ...

    @abstractmethod
    async def stop_container(self, container_id: str) -> None: ...

    @abstractmethod
    async def inspect_container(self, container_id: str) -> ContainerInspection:
        """Inspect a container by id or name."""

    @abstractmethod
    async def remove_container(
        self, container_id: str, force: bool = True, volumes: bool = True
    ) -> None: ...

    @abstractmethod
    async def create_network(self, name: str) -> None: ...

    @abstractmethod
    async def remove_network(self, name: str) -> None: ...

    @abstractmethod
    async def connect_network(self, network: str, container_id: str) -> None: ...

    @abstractmethod
    async def disconnect_network(
        self, network: str, container_id: str, force: bool = True
    ) -> None: ...

    @abstractmethod
    async def remove_volume(self, name: str, force: bool = True) -> None: ...

    @abstractmethod
    def logs(
        self,
        container_id: str,
        stdout: bool = True,
        stderr: bool = True,
        follow: bool = False,
    ) -> AsyncIterator[bytes]:
        """Stream raw output chunks of a container."""


async def run_in_executor(func, *args):
    """
    Run a blocking function in the default thread pool executor.

    Args:
        func: Blocking function to run
        *args: Arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, func, *args)


class DockerEngineClient(EngineClient):
    """EngineClient backed by the docker SDK low-level API."""

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        timeout: Optional[int] = None,
    ):
        if client is None:
            try:
                client = docker.from_env(timeout=timeout or settings.engine_timeout_seconds)
            except DockerException as e:
                raise DaemonError(f"failed to connect to the docker daemon: {e}")
        self._client = client
        self._api = client.api

    async def _call(self, action: str, func, *args, **kwargs):
        try:
            return await run_in_executor(partial(func, *args, **kwargs))
        except NotFound as e:
            raise EngineNotFoundError(f"{action}: {e.explanation or e}")
        except APIError as e:
            raise DaemonError(f"{action}: {e.explanation or e}")
        except DockerException as e:
            raise DaemonError(f"{action}: {e}")

    async def pull_image(self, repository: str, tag: str) -> None:
        logger.info("Pulling image", repository=repository, tag=tag)
        await self._call("failed to pull image", self._api.pull, repository, tag=tag)

    async def create_container(self, spec: ContainerSpec) -> str:
        host_config = self._api.create_host_config(
            network_mode=spec.network,
            binds=spec.binds or None,
            port_bindings=spec.port_bindings or None,
            privileged=spec.privileged,
        )
        ports = [tuple(key.split("/", 1)) for key in spec.port_bindings]
        created = await self._call(
            "failed to create container",
            self._api.create_container,
            spec.image,
            command=spec.cmd or None,
            name=spec.name,
            environment=spec.env,
            ports=[(int(port), protocol) for port, protocol in ports] or None,
            host_config=host_config,
        )
        return created["Id"]

    async def start_container(self, container_id: str) -> None:
        await self._call("failed to start container", self._api.start, container_id)

    async def stop_container(self, container_id: str) -> None:
        await self._call("failed to stop container", self._api.stop, container_id)

    async def inspect_container(self, container_id: str) -> ContainerInspection:
        attrs = await self._call(
            "failed to inspect container", self._api.inspect_container, container_id
        )
        return ContainerInspection.from_attrs(attrs)

    async def remove_container(
        self, container_id: str, force: bool = True, volumes: bool = True
    ) -> None:
        await self._call(
            "failed to remove container",
            self._api.remove_container,
            container_id,
            v=volumes,
            force=force,
        )

    async def create_network(self, name: str) -> None:
        await self._call("failed to create network", self._api.create_network, name)

    async def remove_network(self, name: str) -> None:
        await self._call("failed to remove network", self._api.remove_network, name)

    async def connect_network(self, network: str, container_id: str) -> None:
        await self._call(
            "failed to connect container to network",
            self._api.connect_container_to_network,
            container_id,
            network,
        )

    async def disconnect_network(
        self, network: str, container_id: str, force: bool = True
    ) -> None:
        await self._call(
            "failed to disconnect container from network",
            self._api.disconnect_container_from_network,
            container_id,
            network,
            force=force,
        )

    async def remove_volume(self, name: str, force: bool = True) -> None:
        await self._call("failed to remove volume", self._api.remove_volume, name, force=force)

    async def logs(
        self,
        container_id: str,
        stdout: bool = True,
        stderr: bool = True,
        follow: bool = False,
    ) -> AsyncIterator[bytes]:
        stream = await self._call(
            "failed to read container logs",
            self._api.logs,
            container_id,
            stdout=stdout,
            stderr=stderr,
            stream=True,
            follow=follow,
        )
        # Closed on exhaustion, early exit and cancellation alike
        try:
            while True:
                chunk = await self._call("failed to read container logs", next, stream, None)
                if chunk is None:
                    break
                yield chunk
        finally:
            stream.close()
