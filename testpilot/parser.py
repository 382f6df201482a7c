"""Recover per-test verdicts from free-form runner output.

The runner's line reporter prints one line per finished test, e.g.::

    ✓  1 [chromium] › login.spec.ts:23:3 › Login › access account page (13.9s)
    ✘  2 [chromium] › login.spec.ts:41:3 › Login › invalid credentials (4.1s)

Each test's filter expression doubles as the key that attributes such a line
to the logical test. The reporter format is not a stable contract, so every
test is resolved by an ordered chain of strategies and the first conclusive
one wins; the last strategy always concludes from the exit code.
"""

import logging
import re
from collections.abc import Callable, Sequence

from testpilot.models.registry import TestSpec
from testpilot.models.result import NO_DURATION, RunResult

log = logging.getLogger(__name__)

PASS_MARKER = re.compile(r"[✓✔]")
FAIL_MARKER = re.compile(r"[✘\xd7]")
TRAILING_DURATION = re.compile(r"\(([^)]+)\)\s*$")
SUMMARY_DURATION = re.compile(r"\d+\s+(?:passed|failed)[^(]*\(([^)]+)\)")

type VerdictStrategy = Callable[[TestSpec, Sequence[str], int], RunResult | None]


def explicit_marker(
    spec: TestSpec, lines: Sequence[str], exit_code: int
) -> RunResult | None:
    """Use the first line matching the test's filter with a pass/fail marker."""
    try:
        selector = re.compile(spec.grep)
    except re.error:
        log.warning("Filter for test %d is not a valid pattern: %r", spec.id, spec.grep)
        return None

    for line in lines:
        if not selector.search(line):
            continue
        passed = PASS_MARKER.search(line) is not None
        if not passed and FAIL_MARKER.search(line) is None:
            continue
        match = TRAILING_DURATION.search(line)
        return RunResult(
            id=spec.id,
            passed=passed,
            duration=match.group(1) if match else NO_DURATION,
        )
    return None


def exit_code_fallback(
    spec: TestSpec, lines: Sequence[str], exit_code: int
) -> RunResult:
    """Trust the exit code, taking the duration from the summary line."""
    duration = NO_DURATION
    for line in lines:
        if match := SUMMARY_DURATION.search(line):
            duration = match.group(1)
            break
    return RunResult(id=spec.id, passed=exit_code == 0, duration=duration)


DEFAULT_STRATEGIES: Sequence[VerdictStrategy] = (explicit_marker, exit_code_fallback)


def parse_results(
    output: str,
    specs: Sequence[TestSpec],
    exit_code: int,
    strategies: Sequence[VerdictStrategy] = DEFAULT_STRATEGIES,
) -> Sequence[RunResult]:
    """Produce exactly one result per test, in the order given.

    Args:
        output: Accumulated runner output, control sequences already stripped
        specs: Tests included in the run
        exit_code: Exit status of the runner process
        strategies: Verdict strategies, tried in order for each test

    Returns:
        One result per spec, in ``specs`` order

    """
    lines = output.split("\n")
    return [_resolve(spec, lines, exit_code, strategies) for spec in specs]


def _resolve(
    spec: TestSpec,
    lines: Sequence[str],
    exit_code: int,
    strategies: Sequence[VerdictStrategy],
) -> RunResult:
    for strategy in strategies:
        if (result := strategy(spec, lines, exit_code)) is not None:
            return result
    return exit_code_fallback(spec, lines, exit_code)
