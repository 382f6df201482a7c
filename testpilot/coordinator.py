"""Run coordinator: one runner invocation per request, reported as events."""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import aclosing
from dataclasses import dataclass

from testpilot.archive import ReportArchive
from testpilot.config import RunnerConfig
from testpilot.models.events import (
    DoneEvent,
    LineEvent,
    ResultEvent,
    RunEvent,
    StartEvent,
)
from testpilot.models.request import RunRequest
from testpilot.output import line_level, strip_ansi
from testpilot.parser import parse_results
from testpilot.registry import TestRegistry
from testpilot.runner import RunnerProcess, build_filter

log = logging.getLogger(__name__)

RULE = "─" * 56


@dataclass(frozen=True, kw_only=True)
class RunCoordinator:
    """Runs the requested tests and describes the run as a stream of events.

    Event order: placeholder warning, one ``start`` per known test, runner
    output ``line`` events as they are produced, one ``result`` per known test
    after the runner exits, summary ``line``, and ``done`` last. Closing the
    stream early terminates the runner and nothing is archived.
    """

    registry: TestRegistry
    archive: ReportArchive
    runner: RunnerConfig

    async def start_run(self, request: RunRequest) -> AsyncGenerator[RunEvent, None]:
        """Run the tests named in ``request``."""
        started_at = time.monotonic()
        known, unknown = self.registry.partition(request.ids)

        if unknown:
            log.info("Skipping unknown test ids: %s", unknown)
            yield LineEvent(
                text=f"⚠  Tests [{', '.join(map(str, unknown))}] are placeholders — skipping.\n",
                level="warn",
            )

        if not known:
            yield LineEvent(text="No runnable tests selected.\n", level="warn")
            yield DoneEvent()
            return

        for spec in known:
            yield StartEvent(id=spec.id, label=spec.label)

        plural = "s" if len(known) > 1 else ""
        yield LineEvent(
            text=f"\n▶  Running {len(known)} test{plural}…\n{RULE}\n",
            level="info",
        )

        artifact_since = time.time()
        try:
            process = await RunnerProcess.launch(
                self.runner, build_filter(known), request.variables
            )
        except (OSError, ValueError) as e:
            log.error("Failed to launch test runner: %s", e)
            yield LineEvent(text=f"Process error: {e}\n", level="error")
            yield DoneEvent()
            return

        output: list[str] = []
        try:
            async with aclosing(process.chunks()) as chunks:
                async for chunk in chunks:
                    text = strip_ansi(chunk)
                    output.append(text)
                    if text.strip():
                        yield LineEvent(text=text, level=line_level(text))
            exit_code = await process.wait()
        finally:
            if await process.terminate():
                log.info("Run cancelled, runner process %d terminated", process.pid)

        log.info("Runner exited with code %d", exit_code)
        results = parse_results("".join(output), known, exit_code)
        for result in results:
            yield ResultEvent.from_result(result)

        pass_count = sum(1 for result in results if result.passed)
        yield LineEvent(
            text=f"{RULE}\n{pass_count}/{len(results)} passed\n",
            level="success" if pass_count == len(results) else "error",
        )

        total_ms = _elapsed_ms(started_at)
        report_id: str | None = None
        try:
            report_id = self.archive.archive(
                results, total_ms, artifact_since=artifact_since
            )
        except OSError:
            log.exception("Failed to archive run report")

        yield DoneEvent.from_results(results, total_ms=total_ms, report_id=report_id)


def _elapsed_ms(started_at: float) -> int:
    return int((time.monotonic() - started_at) * 1000)
