"""Fixtures for integration tests using a scripted stand-in for the runner."""

import sys
import textwrap
from pathlib import Path

import pytest

from testpilot.config import RunnerConfig

FAKE_RUNNER = textwrap.dedent(
    """
    import os
    import pathlib
    import sys
    import time

    grep = next(a.split("=", 1)[1] for a in sys.argv[1:] if a.startswith("--grep="))
    mode = os.environ.get("FAKE_RUNNER_MODE", "pass")
    pathlib.Path("runner.pid").write_text(str(os.getpid()))

    print(f"Running tests matching {grep} using 1 worker", flush=True)
    print(f"color={os.environ.get('FORCE_COLOR')}", flush=True)
    if mode == "hang":
        time.sleep(60)
    if mode == "silent":
        sys.exit(1)

    if "searching.by.title" in grep:
        print(
            "\\x1b[32m✓\\x1b[39m  1 [chromium] › search.spec.ts:5:3 › "
            f"searching by title for {os.environ.get('SEARCH_QUERY', '')} (3.2s)",
            flush=True,
        )
    if "invalid.credentials" in grep:
        marker = "✘" if mode == "fail" else "✓"
        print(
            f"{marker}  2 [chromium] › login.spec.ts:9:3 › invalid credentials (1.5s)",
            flush=True,
        )
        if mode == "fail":
            print("Error: expected error banner to be visible", file=sys.stderr, flush=True)

    report = pathlib.Path("playwright-report")
    report.mkdir(exist_ok=True)
    (report / "index.html").write_text("<html>report</html>")

    print("  2 passed (4.7s)", flush=True)
    sys.exit(1 if mode == "fail" else 0)
    """
)


@pytest.fixture
def runner_dir(tmp_path: Path) -> Path:
    """Working directory of the fake runner, holding its script."""
    directory = tmp_path / "e2e"
    directory.mkdir()
    (directory / "fake_runner.py").write_text(FAKE_RUNNER, encoding="utf-8")
    return directory


@pytest.fixture
def runner_config(runner_dir: Path) -> RunnerConfig:
    """Runner configuration invoking the fake runner with this interpreter."""
    return RunnerConfig(
        command=[sys.executable, str(runner_dir / "fake_runner.py")],
        cwd=runner_dir,
    )
