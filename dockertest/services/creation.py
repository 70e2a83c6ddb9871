"""Creation stage: turn resolved compositions into pending containers."""

import asyncio
from typing import List, Optional

import structlog

from ..core.keeper import Keeper
from ..models.composition import Composition, Source
from ..models.container import CleanupContainer, PendingContainer
from ..models.errors import (
    DaemonError,
    EngineNotFoundError,
    RecoverableError,
    StageFailure,
    StartupError,
)
from ..models.policies import StaticManagementPolicy
from .engine import ContainerSpec, EngineClient
from .static import StaticContainers
from .waitfor import NoWait

logger = structlog.get_logger(__name__)


async def remove_container_if_exists(engine: EngineClient, name: str) -> None:
    """Forcefully remove a leftover container named ``name``.

    Raises:
        RecoverableError: the container did not exist
        DaemonError: it existed but could not be removed
    """
    try:
        await engine.inspect_container(name)
    except EngineNotFoundError as e:
        raise RecoverableError(f"container did not exist: {e.message}")

    try:
        await engine.remove_container(name, force=True, volumes=True)
    except DaemonError as e:
        raise DaemonError(f"failed to remove existing container: {e.message}")


async def create_container(
    composition: Composition,
    engine: EngineClient,
    network: Optional[str],
    static_pool: StaticContainers,
) -> PendingContainer:
    """Create the engine container described by ``composition``."""
    if composition.is_static:
        return await static_pool.create(composition, engine, network)

    logger.info("Creating container", container=composition.container_name)

    try:
        await remove_container_if_exists(engine, composition.container_name)
    except RecoverableError:
        pass

    container_id = await engine.create_container(
        ContainerSpec.from_composition(composition, network)
    )

    return PendingContainer(
        name=composition.container_name,
        id=container_id,
        handle=composition.handle(),
        start_policy=composition.start_policy,
        wait=composition.wait or NoWait(),
        engine=engine,
        log_options=composition.log_options,
    )


async def create_containers(
    compositions: Keeper[Composition],
    engine: EngineClient,
    network: Optional[str],
    static_pool: StaticContainers,
) -> Keeper[PendingContainer]:
    """Create every container, in declaration order.

    Raises:
        StageFailure: carrying the first error and every container created
            before it
    """
    logger.debug("Creating containers", count=len(compositions))
    pending: List[PendingContainer] = []

    for composition in compositions:
        try:
            pending.append(await create_container(composition, engine, network, static_pool))
        except BaseException as e:
            logger.error(
                "Failed to create container",
                container=composition.container_name,
                error=repr(e),
            )
            cleanup: List[CleanupContainer] = [c.cleanup() for c in pending]
            raise StageFailure(e, cleanup)

    return compositions.transform(pending)


async def pull_images(
    compositions: Keeper[Composition],
    engine: EngineClient,
    default_source: Source,
) -> None:
    """Concurrently pull every image whose source is REMOTE.

    Raises:
        StartupError: the first failed pull, after all pulls finished
    """
    images = {}
    for composition in compositions:
        # External static containers already exist
        if composition.static_policy is StaticManagementPolicy.EXTERNAL:
            continue
        source = composition.image.source or default_source
        if source is Source.REMOTE:
            images[composition.image.reference] = composition.image

    if not images:
        return

    results = await asyncio.gather(
        *(engine.pull_image(image.repository, image.tag) for image in images.values()),
        return_exceptions=True,
    )
    for reference, result in zip(images, results):
        if isinstance(result, Exception):
            logger.error("Failed to pull image", image=reference, error=str(result))
            raise StartupError(f"failed to pull image `{reference}`: {result}")
