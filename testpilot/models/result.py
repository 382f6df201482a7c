"""Models for test execution results."""

from dataclasses import dataclass

NO_DURATION = "—"


@dataclass(frozen=True, kw_only=True)
class RunResult:
    """Verdict for a single logical test after a run.

    Contains only the outcome - the caller knows the label from the registry.
    """

    __test__ = False

    id: int
    passed: bool
    duration: str = NO_DURATION
