"""Shared fixtures."""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest

from testpilot.archive import ReportArchive
from testpilot.models.registry import TestSpec
from testpilot.registry import TestRegistry

FIXED_NOW = datetime(2026, 2, 19, 14, 32, 15, 123000, tzinfo=timezone.utc)


@pytest.fixture
def registry() -> TestRegistry:
    """Registry with two tests, matching the runner output used in tests."""
    return TestRegistry.from_specs(
        [
            TestSpec(
                id=1,
                label="Search by book title",
                spec_file="tests/search.spec.ts",
                grep="searching.by.title",
            ),
            TestSpec(
                id=2,
                label="Invalid credentials error",
                spec_file="tests/login.spec.ts",
                grep="invalid.credentials",
            ),
        ]
    )


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock frozen at a known instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def report_source_dir(tmp_path: Path) -> Path:
    """Location where the runner would write its HTML report."""
    return tmp_path / "playwright-report"


@pytest.fixture
def archive(
    tmp_path: Path,
    report_source_dir: Path,
    registry: TestRegistry,
    clock: Callable[[], datetime],
) -> ReportArchive:
    """Archive rooted in a temporary directory."""
    return ReportArchive(
        reports_dir=tmp_path / "reports",
        report_source_dir=report_source_dir,
        registry=registry,
        clock=clock,
    )
