"""Durable history of completed runs and their HTML reports.

Storage layout::

    <reports_dir>/index.json          all records, newest first
    <reports_dir>/<id>/meta.json      record of one run
    <reports_dir>/<id>/html/          copy of the runner's HTML report
"""

import json
import logging
import os
import re
import shutil
import tempfile
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from testpilot.models.report import ReportEntry, ReportRecord
from testpilot.models.result import RunResult
from testpilot.registry import TestRegistry

log = logging.getLogger(__name__)

REPORT_ID_FORMAT = "%Y-%m-%d_%H-%M-%S"
REPORT_ID_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}$")
INDEX_FILE = "index.json"
META_FILE = "meta.json"
HTML_DIR = "html"

_RECORD_ADAPTER = TypeAdapter(ReportRecord)


class InvalidReportIdError(ValueError):
    """Raised when a report id does not have the timestamp shape."""


def validate_report_id(report_id: str) -> str:
    """Return ``report_id`` unchanged if it is a well-formed report id."""
    if not REPORT_ID_PATTERN.fullmatch(report_id):
        raise InvalidReportIdError(f"Invalid report ID: {report_id!r}")
    return report_id


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class ReportArchive:
    """Store of report records with an index kept consistent with disk.

    Every mutation of the index is a locked read-modify-write that replaces
    the index file atomically, so readers only ever see a complete index.
    """

    reports_dir: Path
    report_source_dir: Path
    registry: TestRegistry
    clock: Callable[[], datetime] = _utc_now
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def index_path(self) -> Path:
        return self.reports_dir / INDEX_FILE

    def report_dir(self, report_id: str) -> Path:
        """Directory holding the artifacts of ``report_id``."""
        return self.reports_dir / validate_report_id(report_id)

    def archive(
        self,
        results: Sequence[RunResult],
        total_ms: int,
        artifact_since: float | None = None,
    ) -> str:
        """Persist a completed run and return its report id.

        Args:
            results: Parsed results of the run, in request order
            total_ms: Wall-clock duration of the run in milliseconds
            artifact_since: If set, the HTML report is only copied when it was
                modified at or after this POSIX timestamp

        Returns:
            The new report id

        """
        with self._lock:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            index = self._read_index()
            now, report_id = self._allocate_id({record.id for record in index})
            target = self.reports_dir / report_id
            target.mkdir(parents=True)
            try:
                has_html = self._copy_artifact(target / HTML_DIR, artifact_since)
                record = ReportRecord(
                    id=report_id,
                    timestamp=now.isoformat(timespec="milliseconds").replace(
                        "+00:00", "Z"
                    ),
                    all_passed=all(result.passed for result in results),
                    total_ms=total_ms,
                    has_html=has_html,
                    results=[
                        ReportEntry(
                            id=result.id,
                            label=self.registry.label_for(result.id),
                            passed=result.passed,
                            duration=result.duration,
                        )
                        for result in results
                    ],
                )
                _write_json(target / META_FILE, record.to_wire())
                self._write_index([record, *index])
            except BaseException:
                # An unindexed report directory must not outlive a failed write
                shutil.rmtree(target, ignore_errors=True)
                raise

        log.info("Report archived: %s (html=%s)", report_id, has_html)
        return report_id

    def list_reports(self) -> Sequence[ReportRecord]:
        """Return all archived records, newest first."""
        return self._read_index()

    def get_report(self, report_id: str) -> ReportRecord | None:
        """Return the record for ``report_id`` if it is indexed."""
        validate_report_id(report_id)
        for record in self._read_index():
            if record.id == report_id:
                return record
        return None

    def delete(self, report_id: str) -> bool:
        """Delete a report's artifacts and index entry.

        Both removals are attempted even if one of them fails.

        Returns:
            True if anything was removed, False if the report was not found

        Raises:
            InvalidReportIdError: If ``report_id`` is not a report id; raised
                before any storage access

        """
        target = self.report_dir(report_id)

        with self._lock:
            removed_dir = False
            if target.is_dir():
                try:
                    shutil.rmtree(target)
                    removed_dir = True
                except OSError:
                    log.exception("Failed to remove report directory %s", target)

            index = self._read_index()
            remaining = [record for record in index if record.id != report_id]
            removed_entry = len(remaining) != len(index)
            if removed_entry:
                try:
                    self._write_index(remaining)
                except OSError:
                    log.exception("Failed to update report index")

        if removed_dir or removed_entry:
            log.info("Report deleted: %s", report_id)
            return True
        log.info("Report not found: %s", report_id)
        return False

    def _allocate_id(self, taken: set[str]) -> tuple[datetime, str]:
        # Ids have second precision, so a run archived within the same second
        # as the previous one is moved to the next free second.
        now = self.clock().astimezone(timezone.utc)
        report_id = now.strftime(REPORT_ID_FORMAT)
        while report_id in taken or (self.reports_dir / report_id).exists():
            now = now.replace(microsecond=0) + timedelta(seconds=1)
            report_id = now.strftime(REPORT_ID_FORMAT)
        return now, report_id

    def _copy_artifact(self, destination: Path, since: float | None) -> bool:
        source = self.report_source_dir
        if not source.is_dir():
            return False
        if since is not None and _latest_mtime(source) < since:
            log.info("Ignoring stale report artifact at %s", source)
            return False
        try:
            shutil.copytree(source, destination)
        except OSError:
            log.exception("Failed to copy report artifact from %s", source)
            return False
        return True

    def _read_index(self) -> list[ReportRecord]:
        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError):
            log.warning("Report index %s is unreadable, treating as empty", self.index_path)
            return []

        if not isinstance(raw, list):
            log.warning("Report index %s is not a list, treating as empty", self.index_path)
            return []

        records: list[ReportRecord] = []
        for entry in raw:
            try:
                records.append(_RECORD_ADAPTER.validate_python(entry))
            except ValidationError:
                log.warning("Skipping invalid report index entry: %r", entry)
        return records

    def _write_index(self, records: Sequence[ReportRecord]) -> None:
        _write_json(self.index_path, [record.to_wire() for record in records])


def _write_json(path: Path, data: Any) -> None:
    """Write JSON to ``path`` via a temporary file and an atomic rename."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _latest_mtime(directory: Path) -> float:
    # Rewriting a file in place does not touch its directory's mtime.
    return max(
        [directory.stat().st_mtime]
        + [entry.stat().st_mtime for entry in directory.iterdir()]
    )
