"""Configuration for the dashboard server and the external test runner."""

from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field


class RunnerConfig(BaseModel):
    """How to invoke the external test runner."""

    command: Sequence[str] = Field(
        default=("npx", "playwright", "test"), min_length=1
    )
    project: str = "chromium"
    # "list" prints one line per test, "html" writes the browsable report
    reporter: str = "list,html"
    cwd: Path = Path(".")
    report_dir: Path = Path("playwright-report")

    @property
    def report_path(self) -> Path:
        """Location where the runner writes its HTML report."""
        return self.cwd / self.report_dir

    def build_command(self, grep: str) -> Sequence[str]:
        """Build the full argument vector for a run filtered by ``grep``."""
        return [
            *self.command,
            f"--grep={grep}",
            f"--project={self.project}",
            f"--reporter={self.reporter}",
        ]


class ServerConfig(BaseModel):
    """Configuration for the dashboard HTTP server."""

    host: str = "127.0.0.1"
    port: int = Field(default=3001, ge=1, le=65535)
    reports_dir: Path = Path("reports")
    registry_path: Path | None = None
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
