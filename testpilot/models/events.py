"""Events emitted over the lifetime of a test run."""

from collections.abc import Sequence
from typing import Literal

from pydantic import Field

from testpilot.models.base import WireModel
from testpilot.models.result import RunResult

type LineLevel = Literal["success", "error", "warn", "info", "normal"]


class LineEvent(WireModel):
    """A chunk of runner output, or a message from the coordinator."""

    type: Literal["line"] = "line"
    text: str
    level: LineLevel = "normal"


class StartEvent(WireModel):
    """A known test has been scheduled in the current run."""

    type: Literal["start"] = "start"
    id: int
    label: str


class ResultEvent(WireModel):
    """Final verdict for one test."""

    type: Literal["result"] = "result"
    id: int
    passed: bool
    duration: str

    @classmethod
    def from_result(cls, result: RunResult) -> "ResultEvent":
        """Build the event for a parsed result."""
        return cls(id=result.id, passed=result.passed, duration=result.duration)


class ResultPayload(WireModel):
    """Result as embedded in the terminal event."""

    id: int
    passed: bool
    duration: str


class DoneEvent(WireModel):
    """Terminal event of every run stream."""

    type: Literal["done"] = "done"
    results: Sequence[ResultPayload] = Field(default_factory=list)
    report_id: str | None = None
    total_ms: int = 0

    @classmethod
    def from_results(
        cls,
        results: Sequence[RunResult],
        total_ms: int,
        report_id: str | None = None,
    ) -> "DoneEvent":
        """Build the terminal event for a finished run."""
        return cls(
            results=[
                ResultPayload(id=r.id, passed=r.passed, duration=r.duration)
                for r in results
            ],
            report_id=report_id,
            total_ms=total_ms,
        )


type RunEvent = LineEvent | StartEvent | ResultEvent | DoneEvent


def encode_event(event: RunEvent) -> str:
    """Serialize an event as JSON, omitting unset optional fields."""
    return event.model_dump_json(by_alias=True, exclude_none=True)
