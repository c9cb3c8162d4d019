# src/tracking/report.py — v1
"""Run report export to JSON and human-readable summary text."""

from __future__ import annotations

import logging
from pathlib import Path

from mirbatch.merge.models import MergeReport
from mirbatch.tracking.models import ProgressSnapshot, WorkflowReport
from mirbatch.tracking.progress import format_duration

logger = logging.getLogger(__name__)


def export_report_json(report: WorkflowReport, report_dir: Path) -> Path:
    """Write report as formatted JSON under report_dir.

    Args:
        report: Workflow report to export.
        report_dir: Destination directory, created if missing.

    Returns:
        Path of the written file.
    """
    report_dir.mkdir(parents=True, exist_ok=True)
    stamp = report.started_at.strftime("%Y%m%dT%H%M%S")
    path = report_dir / f"run_{stamp}_{report.run_id}.json"
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Run report written to %s", path)
    return path


def format_merge_summary(report: MergeReport) -> str:
    """Human-readable summary of a merge run."""
    stats = report.stats
    lines: list[str] = [
        "=== Merge Summary ===",
        f"Output      : {report.output_path or '-'}",
        f"Strategy    : {report.duplicate_strategy}",
        f"Batch files : {stats.batch_files_processed}/{stats.batch_files_found} "
        f"({report.success_rate:.1f}%)",
        f"Rows        : {stats.total_rows:,} written, {stats.total_rows_read:,} read",
        f"Duplicates  : {stats.duplicates_found}",
        f"Duration    : {report.duration_seconds:.2f}s "
        f"({report.rows_per_second:,.1f} rows/s)",
    ]
    if stats.row_errors:
        lines.append(f"Row errors  : {stats.row_errors}")
    if stats.out_of_range_values:
        lines.append(f"Out of range: {stats.out_of_range_values} values")
    if report.attempts > 1:
        lines.append(f"Attempts    : {report.attempts}")
    if report.cleaned_up_files:
        lines.append(f"Cleaned up  : {report.cleaned_up_files} batch files")

    if report.excluded_files:
        lines.append("\n--- Excluded Files ---")
        for item in report.excluded_files:
            lines.append(f"  ✗ {Path(item.path).name}: {item.error}")

    return "\n".join(lines)


def format_progress_summary(snapshot: ProgressSnapshot) -> str:
    """Human-readable summary of persisted progress."""
    lines: list[str] = [
        "=== Processing Status ===",
        f"Files     : {snapshot.processed_count}/{snapshot.total_files} processed "
        f"({snapshot.progress_pct:.1f}%), {snapshot.failed_count} failed, "
        f"{snapshot.remaining_count} remaining",
        f"Batches   : {snapshot.completed_batches} completed, "
        f"{snapshot.failed_batches} failed, {snapshot.pending_batches} pending "
        f"of {snapshot.total_batches}",
        f"Elapsed   : {format_duration(snapshot.elapsed_seconds)}",
    ]
    if snapshot.est_remaining_seconds is not None and snapshot.remaining_count:
        lines.append(f"Remaining : ~{format_duration(snapshot.est_remaining_seconds)}")

    if snapshot.failed:
        lines.append("\n--- Failed Batches ---")
        for info in snapshot.failed:
            lines.append(
                f"  batch {info.id:03d} | {info.file_count:3d} files | "
                f"attempt {info.attempts}/{info.max_attempts} | {info.error or '-'}"
            )
    if snapshot.missing_exports:
        ids = ", ".join(f"{i:03d}" for i in snapshot.missing_exports)
        lines.append(f"\n⚠ Completed without export: {ids}")

    return "\n".join(lines)


def format_workflow_summary(report: WorkflowReport) -> str:
    """Human-readable summary of a full workflow run."""
    lines: list[str] = [
        f"=== Run Summary: {report.root} ===",
        f"Run ID    : {report.run_id}",
        f"Status    : {report.status}" + (" (resumed)" if report.resumed else ""),
        f"Duration  : {format_duration(report.duration_seconds)}",
        f"Discovered: {report.discovery.total_files} files "
        f"({report.discovery.total_size_formatted}), {len(report.rejected_files)} rejected",
    ]

    orch = report.orchestration
    if orch is not None:
        lines += [
            f"Files     : {orch.files_processed}/{orch.files_total} processed, "
            f"{orch.files_failed} failed, {orch.files_skipped} skipped by engine",
            f"Batches   : {orch.batches_completed} completed, {orch.batches_failed} "
            f"failed, {orch.batches_pending} pending of {orch.batches_total}",
        ]
        if orch.recovered_batches:
            lines.append(f"Recovered : {orch.recovered_batches} (interrupted)")
        if orch.batches_missing_export:
            lines.append(f"⚠ Missing exports: {orch.batches_missing_export}")
        if orch.aborted_reason:
            lines.append(f"✗ Aborted: {orch.aborted_reason}")

    if report.merge is not None:
        lines += ["", format_merge_summary(report.merge)]
    if report.merge_error:
        lines.append(f"✗ Merge failed: {report.merge_error}")
    if report.error:
        lines.append(f"✗ Error: {report.error}")

    return "\n".join(lines)
