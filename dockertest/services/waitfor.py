"""Readiness strategies.

A readiness strategy turns a started ``PendingContainer`` into a
``RunningContainer`` once the container is considered ready for service.
The known strategies are listed here; ``CustomWait`` wraps any coroutine
function for everything else.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import Awaitable, Callable

import structlog

from ..models.container import PendingContainer, RunningContainer
from ..models.errors import DockerTestException, StartupError
from ..models.policies import LogSource
from .engine import EngineClient

logger = structlog.get_logger(__name__)


class WaitFor(ABC):
    """Capability deciding when a started container is ready."""

    @abstractmethod
    async def wait_for_ready(self, container: PendingContainer) -> RunningContainer:
        """Block until ``container`` is ready, or raise."""


class NoWait(WaitFor):
    """Consider the container ready as soon as it was started."""

    async def wait_for_ready(self, container: PendingContainer) -> RunningContainer:
        return container.into_running()


class _StatusWait(WaitFor):
    """Poll the engine until the container reaches a status."""

    description = ""

    def __init__(self, check_interval: float = 1.0, max_checks: int = 10):
        self.check_interval = check_interval
        self.max_checks = max_checks

    @abstractmethod
    def _reached(self, inspection) -> bool:
        """Whether ``inspection`` shows the awaited status."""

    async def wait_for_ready(self, container: PendingContainer) -> RunningContainer:
        for _ in range(self.max_checks):
            inspection = await container.engine.inspect_container(container.id)
            if self._reached(inspection):
                logger.debug(
                    "Container reached status",
                    container=container.name,
                    status=inspection.status,
                )
                return container.into_running()
            await asyncio.sleep(self.check_interval)

        raise StartupError(
            f"container '{container.handle}' did not become {self.description} "
            f"after {self.max_checks} checks"
        )


class RunningWait(_StatusWait):
    """Wait for the container to report the running status."""

    description = "running"

    def _reached(self, inspection) -> bool:
        return inspection.is_running


class ExitedWait(_StatusWait):
    """Wait for the container to exit, e.g. for one-shot setup jobs."""

    description = "exited"

    def _reached(self, inspection) -> bool:
        return inspection.has_exited


class MessageWait(WaitFor):
    """Wait for a message to appear in the container output."""

    def __init__(self, message: str, source: LogSource = LogSource.BOTH, timeout: float = 30):
        self.message = message
        self.source = source
        self.timeout = timeout

    async def wait_for_ready(self, container: PendingContainer) -> RunningContainer:
        await wait_for_message(
            container.engine,
            container.id,
            container.handle,
            self.message,
            self.source,
            self.timeout,
        )
        return container.into_running()


class CustomWait(WaitFor):
    """Delegate readiness to a user supplied coroutine function."""

    def __init__(self, func: Callable[[PendingContainer], Awaitable[RunningContainer]]):
        self.func = func

    async def wait_for_ready(self, container: PendingContainer) -> RunningContainer:
        return await self.func(container)


async def wait_for_message(
    engine: EngineClient,
    container_id: str,
    handle: str,
    message: str,
    source: LogSource,
    timeout: float,
) -> None:
    """Follow container output until a line containing ``message`` appears.

    Raises:
        StartupError: on timeout, or if the output ends without the message
    """

    async def scan() -> bool:
        buffered = ""
        chunks = engine.logs(
            container_id,
            stdout=source.include_stdout,
            stderr=source.include_stderr,
            follow=True,
        )
        async with aclosing(chunks):
            async for chunk in chunks:
                buffered += chunk.decode("utf-8", errors="replace")
                *lines, buffered = buffered.split("\n")
                if any(message in line for line in lines):
                    return True
        return message in buffered

    try:
        found = await asyncio.wait_for(scan(), timeout=timeout)
    except asyncio.TimeoutError:
        raise StartupError(
            f"container '{handle}' did not log '{message}' within {timeout} seconds"
        )
    except DockerTestException as e:
        raise StartupError(f"failed to read output of container '{handle}': {e.message}")

    if not found:
        raise StartupError(f"container '{handle}' output ended without '{message}'")
