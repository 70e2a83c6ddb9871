"""Start scheduler: bring every pending container up according to its start policy.

STRICT containers start one after another on the calling task, each fully
ready before the next begins. RELAXED containers start concurrently as
separate tasks launched before the strict phase and joined after it. The
returned Keeper is always in declaration order, whatever order the relaxed
tasks completed in.
"""

import asyncio
from typing import List, Optional, Tuple

import structlog

from ..core.keeper import Keeper
from ..models.container import PendingContainer, RunningContainer
from ..models.errors import DockerTestException, ProcessingError, StageFailure
from ..models.policies import StartPolicy

logger = structlog.get_logger(__name__)


def _as_error(result: BaseException, container: PendingContainer) -> BaseException:
    # Interruptions such as cancellation are carried unchanged
    if isinstance(result, DockerTestException) or not isinstance(result, Exception):
        return result
    return ProcessingError(
        f"failed to join start of container '{container.handle}': {result!r}"
    )


async def start_containers(pending: Keeper[PendingContainer]) -> Keeper[RunningContainer]:
    """Start every pending container.

    Raises:
        StageFailure: the first error, strict containers taking priority over
            relaxed ones, together with a cleanup projection of every pending
            container
    """
    # Declaration index travels with each container, completion order of
    # relaxed tasks is not declaration order
    strict: List[Tuple[int, PendingContainer]] = []
    relaxed: List[Tuple[int, PendingContainer]] = []
    for index, container in enumerate(pending):
        if container.start_policy is StartPolicy.STRICT:
            strict.append((index, container))
        else:
            relaxed.append((index, container))

    logger.debug("Starting containers", strict=len(strict), relaxed=len(relaxed))

    relaxed_tasks = [asyncio.create_task(container.start()) for _, container in relaxed]

    started: List[Tuple[int, RunningContainer]] = []
    strict_error: Optional[BaseException] = None
    for index, container in strict:
        try:
            running = await container.start()
        except BaseException as e:
            strict_error = _as_error(e, container)
            logger.error(
                "Failed to start strict container, skipping the remaining strict containers",
                container=container.name,
                error=repr(strict_error),
            )
            break
        started.append((index, running))

    if strict_error is not None and not isinstance(strict_error, Exception):
        for task in relaxed_tasks:
            task.cancel()

    # Relaxed starts are always drained, even after a strict failure
    results = await asyncio.gather(*relaxed_tasks, return_exceptions=True)

    relaxed_error: Optional[BaseException] = None
    for (index, container), result in zip(relaxed, results):
        if isinstance(result, BaseException):
            error = _as_error(result, container)
            logger.error(
                "Failed to start relaxed container", container=container.name, error=repr(error)
            )
            if relaxed_error is None:
                relaxed_error = error
        elif strict_error is None:
            started.append((index, result))

    first_error = strict_error or relaxed_error
    if first_error is not None:
        raise StageFailure(first_error, [container.cleanup() for container in pending])

    started.sort(key=lambda pair: pair[0])
    return pending.transform([running for _, running in started])
