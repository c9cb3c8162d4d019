# tests/unit/tracking/test_unit_report.py — v1
"""Tests for tracking/report.py — JSON export and summary text."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from mirbatch.discovery.models import DiscoveryStatistics, RejectedFile
from mirbatch.merge.models import FileValidation, MergeReport, MergeStats
from mirbatch.orchestrator.models import OrchestrationResult
from mirbatch.tracking.models import ProgressSnapshot, WorkflowReport
from mirbatch.tracking.report import (
    export_report_json,
    format_merge_summary,
    format_progress_summary,
    format_workflow_summary,
)


@pytest.fixture
def merge_report() -> MergeReport:
    return MergeReport(
        output_path="/results/music_analysis_results_01.csv",
        started_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        duration_seconds=0.5,
        rows_per_second=8.0,
        stats=MergeStats(
            batch_files_found=3, batch_files_processed=2,
            total_rows_read=5, total_rows=4, duplicates_found=1,
        ),
        excluded_files=[FileValidation(
            path="/exports/batch_003_a.csv", valid=False,
            error_type="schema", error="batch_003_a.csv: missing required columns: bpm",
        )],
    )


@pytest.fixture
def workflow_report(merge_report) -> WorkflowReport:
    return WorkflowReport(
        run_id="abc123",
        root="/music",
        status="partial",
        started_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        duration_seconds=75,
        discovery=DiscoveryStatistics(total_files=7, total_size_formatted="14 KB"),
        rejected_files=[RejectedFile(path="/music/x.mp3", reason="file too small (3 bytes)")],
        orchestration=OrchestrationResult(
            batches_total=3, batches_completed=2, batches_failed=1,
            files_total=7, files_processed=6, files_failed=1,
            batches_missing_export=[3],
        ),
        merge=merge_report,
    )


class TestExportReportJson:
    def test_writes_json(self, workflow_report, tmp_path):
        path = export_report_json(workflow_report, tmp_path / "reports")
        assert path.name == "run_20260301T120000_abc123.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["status"] == "partial"
        assert data["orchestration"]["files_processed"] == 6
        assert data["merge"]["stats"]["total_rows"] == 4


class TestSummaries:
    def test_merge_summary(self, merge_report):
        text = format_merge_summary(merge_report)
        assert "Batch files : 2/3 (66.7%)" in text
        assert "Rows        : 4 written, 5 read" in text
        assert "batch_003_a.csv: missing required columns: bpm" in text

    def test_progress_summary(self):
        text = format_progress_summary(ProgressSnapshot(
            total_files=10, processed_count=4, failed_count=2, remaining_count=4,
            progress_pct=40.0, total_batches=5, completed_batches=2,
            failed_batches=1, pending_batches=2, missing_exports=[2],
        ))
        assert "4/10 processed (40.0%)" in text
        assert "Completed without export: 002" in text

    def test_workflow_summary(self, workflow_report):
        text = format_workflow_summary(workflow_report)
        assert "Status    : partial" in text
        assert "Duration  : 1m 15s" in text
        assert "7 files (14 KB), 1 rejected" in text
        assert "Missing exports: [3]" in text
        assert "=== Merge Summary ===" in text
