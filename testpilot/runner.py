"""Launching and supervising the external test runner process."""

import asyncio
import codecs
import logging
import os
import signal
import sys
from collections.abc import AsyncGenerator, Mapping, Sequence
from dataclasses import dataclass

from testpilot.config import RunnerConfig
from testpilot.models.registry import TestSpec

log = logging.getLogger(__name__)

CHUNK_SIZE = 4096
TERMINATE_TIMEOUT = 5.0


def build_filter(specs: Sequence[TestSpec]) -> str:
    """Combine the filters of several tests into one alternation.

    A single test's filter is used verbatim, so one runner invocation (and
    one HTML report) covers any subset of tests.
    """
    if not specs:
        raise ValueError("At least one test is required to build a filter")
    if len(specs) == 1:
        return specs[0].grep
    return "(" + "|".join(spec.grep for spec in specs) + ")"


def build_environment(variables: Mapping[str, str]) -> dict[str, str]:
    """Process environment with color disabled and run variables applied."""
    return {**os.environ, "FORCE_COLOR": "0", **variables}


@dataclass(frozen=True, kw_only=True)
class RunnerProcess:
    """A running invocation of the external test runner."""

    process: asyncio.subprocess.Process

    @classmethod
    async def launch(
        cls,
        config: RunnerConfig,
        grep: str,
        variables: Mapping[str, str],
    ) -> "RunnerProcess":
        """Start the runner filtered by ``grep``.

        Raises:
            OSError: If the runner executable cannot be started

        """
        command = config.build_command(grep)
        log.info("Launching runner: %s (cwd=%s)", " ".join(command), config.cwd)
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=config.cwd,
            env=build_environment(variables),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            # Own process group, so browsers started by the runner die with it
            start_new_session=sys.platform != "win32",
        )
        return cls(process=process)

    @property
    def pid(self) -> int:
        return self.process.pid

    async def chunks(self) -> AsyncGenerator[str, None]:
        """Yield decoded stdout and stderr chunks in the order they arrive."""
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        streams = [s for s in (self.process.stdout, self.process.stderr) if s]
        readers = [asyncio.create_task(_pump(stream, queue)) for stream in streams]
        open_streams = len(readers)
        try:
            while open_streams:
                chunk = await queue.get()
                if chunk is None:
                    open_streams -= 1
                    continue
                yield chunk
        finally:
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)

    async def wait(self) -> int:
        """Wait for the runner to exit and return its exit code."""
        return await self.process.wait()

    async def terminate(self) -> bool:
        """Stop the runner if it is still running.

        Returns:
            True if the process had to be signalled

        """
        if self.process.returncode is not None:
            return False

        log.info("Terminating runner process %d", self.pid)
        self._signal(signal.SIGTERM)
        try:
            await asyncio.wait_for(self.process.wait(), TERMINATE_TIMEOUT)
        except TimeoutError:
            log.warning("Runner process %d ignored SIGTERM, killing", self.pid)
            self._signal(signal.SIGKILL if sys.platform != "win32" else signal.SIGTERM)
            await self.process.wait()
        return True

    def _signal(self, sig: int) -> None:
        try:
            if sys.platform != "win32":
                os.killpg(self.pid, sig)
            else:
                self.process.kill()
        except ProcessLookupError:
            pass


async def _pump(stream: asyncio.StreamReader, queue: asyncio.Queue[str | None]) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while data := await stream.read(CHUNK_SIZE):
            if text := decoder.decode(data):
                queue.put_nowait(text)
        if tail := decoder.decode(b"", final=True):
            queue.put_nowait(tail)
    finally:
        queue.put_nowait(None)
