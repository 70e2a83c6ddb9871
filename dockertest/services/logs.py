"""Container log capture, run before teardown removes the containers."""

import sys
from pathlib import Path
from typing import IO, List, Optional

import structlog

from ..models.container import CleanupContainer
from ..models.errors import DockerTestException, LogWriteError
from ..models.policies import LogAction, LogOptions, LogPolicy

logger = structlog.get_logger(__name__)


class LogCollector:
    """Streams container output and re-emits it according to LogOptions.

    Failures never raise out of ``handle_logs``; they are logged and
    returned so the caller can report them once teardown is done.
    """

    def __init__(self, stdout: Optional[IO[str]] = None, stderr: Optional[IO[str]] = None):
        self._stdout = stdout
        self._stderr = stderr

    @property
    def stdout(self) -> IO[str]:
        return self._stdout or sys.stdout

    @property
    def stderr(self) -> IO[str]:
        return self._stderr or sys.stderr

    async def handle_logs(
        self, containers: List[CleanupContainer], test_failed: bool
    ) -> List[LogWriteError]:
        """Capture logs of every container that requested it.

        Args:
            containers: Containers of the run, in declaration order
            test_failed: Whether the test body failed

        Returns:
            One LogWriteError per container whose logs could not be captured
        """
        errors: List[LogWriteError] = []
        for container in containers:
            options = container.log_options
            if options is None:
                continue
            if options.policy is LogPolicy.ON_ERROR and not test_failed:
                continue

            try:
                await self._capture(container, options)
            except (DockerTestException, OSError) as e:
                logger.error(
                    "Failed to capture container logs",
                    container=container.name,
                    container_id=container.id[:12],
                    error=str(e),
                )
                errors.append(LogWriteError(f"failed to handle logs of '{container.name}': {e}"))
        return errors

    async def _capture(self, container: CleanupContainer, options: LogOptions) -> None:
        if options.action is LogAction.FORWARD_TO_FILE:
            directory = Path(options.path)
            directory.mkdir(parents=True, exist_ok=True)
            target = directory / container.name
            logger.debug(
                "Writing container logs to file", container=container.name, path=str(target)
            )
            with open(target, "w", encoding="utf-8") as output:
                await self._stream(container, options, output, output)
        elif options.action is LogAction.FORWARD_TO_STDOUT:
            await self._stream(container, options, self.stdout, self.stdout)
        elif options.action is LogAction.FORWARD_TO_STDERR:
            await self._stream(container, options, self.stderr, self.stderr)
        else:
            # Each stream keeps its origin
            await self._stream(container, options, self.stdout, self.stderr)

    async def _stream(
        self,
        container: CleanupContainer,
        options: LogOptions,
        stdout_target: IO[str],
        stderr_target: IO[str],
    ) -> None:
        if options.source.include_stdout:
            await self._copy(container, stdout_target, stdout=True, stderr=False)
        if options.source.include_stderr:
            await self._copy(container, stderr_target, stdout=False, stderr=True)

    async def _copy(
        self, container: CleanupContainer, target: IO[str], stdout: bool, stderr: bool
    ) -> None:
        async for chunk in container.engine.logs(
            container.id, stdout=stdout, stderr=stderr, follow=False
        ):
            target.write(chunk.decode("utf-8", errors="replace"))
        target.flush()
