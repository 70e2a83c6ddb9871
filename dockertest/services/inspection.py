"""Inspection stage: fill in ip address and published ports of running containers."""

import dataclasses
from typing import List

import structlog

from ..core.keeper import Keeper
from ..models.container import HostPortMappings, RunningContainer
from ..models.errors import DaemonError

logger = structlog.get_logger(__name__)


async def inspect_container(container: RunningContainer, network: str) -> RunningContainer:
    """Return ``container`` with its ip on ``network`` and its host port mappings.

    Raises:
        DaemonError: the engine could not inspect the container
        HostPortError: the published ports could not be parsed
    """
    try:
        inspection = await container.engine.inspect_container(container.id)
    except DaemonError as e:
        raise DaemonError(f"failed to inspect container '{container.handle}': {e.message}")

    ip = inspection.ip_on(network)
    ports = HostPortMappings.from_inspect(inspection.ports)

    logger.debug(
        "Inspected container",
        container=container.name,
        container_id=container.id[:12],
        ip=str(ip),
        ports=len(ports),
    )
    return dataclasses.replace(container, ip=ip, ports=ports)


async def inspect_containers(
    running: Keeper[RunningContainer], network: str
) -> Keeper[RunningContainer]:
    """Inspect every running container, in declaration order."""
    inspected: List[RunningContainer] = []
    for container in running:
        inspected.append(await inspect_container(container, network))
    return running.transform(inspected)
