"""Models for archived run reports."""

from collections.abc import Sequence

from testpilot.models.base import WireModel


class ReportEntry(WireModel):
    """Per-test line of an archived report."""

    id: int
    label: str
    passed: bool
    duration: str


class ReportRecord(WireModel):
    """Metadata persisted for one completed run."""

    id: str
    timestamp: str
    all_passed: bool
    total_ms: int
    has_html: bool
    results: Sequence[ReportEntry]

    def to_wire(self) -> dict[str, object]:
        """Serialize with camelCase keys, as stored on disk."""
        return self.model_dump(mode="json", by_alias=True)
