"""Tests for the report archive."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from testpilot.archive import InvalidReportIdError, ReportArchive, validate_report_id
from testpilot.models.result import RunResult

RESULTS = [
    RunResult(id=1, passed=True, duration="3.2s"),
    RunResult(id=2, passed=False, duration="1.4s"),
]


class TestArchive:
    """Tests for ReportArchive.archive."""

    def test_writes_record_and_index(self, archive: ReportArchive) -> None:
        """Persists metadata and prepends it to the index."""
        report_id = archive.archive(RESULTS, total_ms=4200)

        assert report_id == "2026-02-19_14-32-15"
        meta = json.loads((archive.reports_dir / report_id / "meta.json").read_text())
        assert meta == {
            "id": "2026-02-19_14-32-15",
            "timestamp": "2026-02-19T14:32:15.123Z",
            "allPassed": False,
            "totalMs": 4200,
            "hasHtml": False,
            "results": [
                {
                    "id": 1,
                    "label": "Search by book title",
                    "passed": True,
                    "duration": "3.2s",
                },
                {
                    "id": 2,
                    "label": "Invalid credentials error",
                    "passed": False,
                    "duration": "1.4s",
                },
            ],
        }
        index = json.loads(archive.index_path.read_text())
        assert index == [meta]

    def test_all_passed(self, archive: ReportArchive) -> None:
        """allPassed is true only when every result passed."""
        archive.archive([RunResult(id=1, passed=True)], total_ms=10)

        assert archive.list_reports()[0].all_passed is True

    def test_unknown_id_gets_placeholder_label(self, archive: ReportArchive) -> None:
        """Results for unregistered ids are labelled generically."""
        archive.archive([RunResult(id=99, passed=True)], total_ms=10)

        assert archive.list_reports()[0].results[0].label == "Test #99"

    def test_copies_html_report(
        self, archive: ReportArchive, report_source_dir: Path
    ) -> None:
        """Copies the runner's report bundle next to the metadata."""
        (report_source_dir / "data").mkdir(parents=True)
        (report_source_dir / "index.html").write_text("<html>report</html>")
        (report_source_dir / "data" / "trace.zip").write_bytes(b"PK")

        report_id = archive.archive(RESULTS, total_ms=100)

        html_dir = archive.reports_dir / report_id / "html"
        assert (html_dir / "index.html").read_text() == "<html>report</html>"
        assert (html_dir / "data" / "trace.zip").read_bytes() == b"PK"
        assert archive.list_reports()[0].has_html is True

    def test_skips_stale_html_report(
        self, archive: ReportArchive, report_source_dir: Path
    ) -> None:
        """A report older than the run is not attached to the record."""
        report_source_dir.mkdir()
        (report_source_dir / "index.html").write_text("old")
        mtime = report_source_dir.stat().st_mtime

        report_id = archive.archive(RESULTS, total_ms=100, artifact_since=mtime + 60)

        assert not (archive.reports_dir / report_id / "html").exists()
        assert archive.list_reports()[0].has_html is False

    def test_back_to_back_archives_get_distinct_ids(
        self, archive: ReportArchive
    ) -> None:
        """Runs archived within the same second still get unique ids."""
        first = archive.archive(RESULTS, total_ms=1)
        second = archive.archive(RESULTS, total_ms=2)
        third = archive.archive(RESULTS, total_ms=3)

        assert first == "2026-02-19_14-32-15"
        assert second == "2026-02-19_14-32-16"
        assert third == "2026-02-19_14-32-17"
        assert [r.id for r in archive.list_reports()] == [third, second, first]

    def test_round_trip_through_listing(self, archive: ReportArchive) -> None:
        """A record read back from the index keeps every field and order."""
        report_id = archive.archive(list(reversed(RESULTS)), total_ms=77)

        (record,) = archive.list_reports()

        assert record.id == report_id
        assert record.total_ms == 77
        assert [(r.id, r.passed, r.duration) for r in record.results] == [
            (2, False, "1.4s"),
            (1, True, "3.2s"),
        ]
        stored = json.loads((archive.reports_dir / report_id / "meta.json").read_text())
        assert record.to_wire() == stored

    def test_recovers_from_corrupt_index(self, archive: ReportArchive) -> None:
        """A corrupt index is treated as empty and replaced."""
        archive.reports_dir.mkdir(parents=True)
        archive.index_path.write_text("{not json")

        report_id = archive.archive(RESULTS, total_ms=1)

        assert [r.id for r in archive.list_reports()] == [report_id]

    def test_index_write_leaves_no_temporary_files(
        self, archive: ReportArchive
    ) -> None:
        """Index and metadata are replaced atomically via renamed temp files."""
        report_id = archive.archive(RESULTS, total_ms=1)

        assert sorted(os.listdir(archive.reports_dir)) == ["index.json", report_id]
        assert os.listdir(archive.reports_dir / report_id) == ["meta.json"]

    def test_failed_index_write_removes_report_directory(
        self, archive: ReportArchive
    ) -> None:
        """A run that cannot be indexed leaves nothing behind on disk."""
        archive.archive(RESULTS, total_ms=1)

        with patch.object(
            ReportArchive, "_write_index", side_effect=OSError("disk full")
        ):
            with pytest.raises(OSError, match="disk full"):
                archive.archive(RESULTS, total_ms=2)

        assert sorted(os.listdir(archive.reports_dir)) == [
            "2026-02-19_14-32-15",
            "index.json",
        ]
        assert [r.total_ms for r in archive.list_reports()] == [1]


class TestListReports:
    """Tests for ReportArchive.list_reports and get_report."""

    def test_empty_without_index(self, archive: ReportArchive) -> None:
        """No index file means no reports."""
        assert archive.list_reports() == []

    @pytest.mark.parametrize("content", ["{not json", '{"id": 1}', "42"])
    def test_empty_for_unusable_index(
        self, archive: ReportArchive, content: str
    ) -> None:
        """Unreadable or non-list indexes are treated as empty."""
        archive.reports_dir.mkdir(parents=True)
        archive.index_path.write_text(content)

        assert archive.list_reports() == []

    def test_skips_invalid_entries(self, archive: ReportArchive) -> None:
        """Entries that fail validation are dropped from the listing."""
        report_id = archive.archive(RESULTS, total_ms=1)
        index = json.loads(archive.index_path.read_text())
        archive.index_path.write_text(json.dumps([{"bogus": True}, *index]))

        assert [r.id for r in archive.list_reports()] == [report_id]

    def test_get_report(self, archive: ReportArchive) -> None:
        """Looks up a single record by id."""
        report_id = archive.archive(RESULTS, total_ms=1)

        record = archive.get_report(report_id)

        assert record is not None
        assert record.id == report_id
        assert archive.get_report("2020-01-01_00-00-00") is None


class TestDelete:
    """Tests for ReportArchive.delete."""

    def test_removes_directory_and_index_entry(self, archive: ReportArchive) -> None:
        """Deleting removes both the artifacts and the index entry."""
        kept = archive.archive(RESULTS, total_ms=1)
        deleted = archive.archive(RESULTS, total_ms=2)

        assert archive.delete(deleted) is True

        assert not (archive.reports_dir / deleted).exists()
        assert (archive.reports_dir / kept).is_dir()
        assert [r.id for r in archive.list_reports()] == [kept]

    def test_second_delete_reports_not_found(self, archive: ReportArchive) -> None:
        """Deleting twice is harmless and reports not found."""
        report_id = archive.archive(RESULTS, total_ms=1)

        assert archive.delete(report_id) is True
        assert archive.delete(report_id) is False
        assert archive.list_reports() == []

    def test_removes_index_entry_without_directory(
        self, archive: ReportArchive
    ) -> None:
        """An index entry whose directory is gone is still removed."""
        report_id = archive.archive(RESULTS, total_ms=1)
        (archive.reports_dir / report_id / "meta.json").unlink()
        (archive.reports_dir / report_id).rmdir()

        assert archive.delete(report_id) is True
        assert archive.list_reports() == []

    def test_removes_directory_missing_from_index(
        self, archive: ReportArchive
    ) -> None:
        """A directory without an index entry is still removed."""
        orphan = archive.reports_dir / "2026-01-01_00-00-00"
        orphan.mkdir(parents=True)

        assert archive.delete("2026-01-01_00-00-00") is True
        assert not orphan.exists()

    @pytest.mark.parametrize(
        "report_id",
        ["not-a-timestamp", "../index", "2026-02-19_14-32-15/../..", ""],
    )
    def test_rejects_invalid_id_before_touching_storage(
        self, archive: ReportArchive, report_id: str
    ) -> None:
        """Ids without the timestamp shape are rejected up front."""
        with pytest.raises(InvalidReportIdError):
            archive.delete(report_id)

        assert not archive.reports_dir.exists()


def test_validate_report_id() -> None:
    """Accepts exactly the timestamp shape."""
    assert validate_report_id("2026-02-19_14-32-15") == "2026-02-19_14-32-15"
    with pytest.raises(InvalidReportIdError):
        validate_report_id("2026-02-19 14:32:15")
