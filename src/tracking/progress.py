# src/tracking/progress.py — v2
"""Progress snapshots and merge-readiness checks over a ProcessingState."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from mirbatch.batch.models import ProcessingState
from mirbatch.merge.engine import find_batch_artifacts
from mirbatch.merge.models import DEFAULT_ARTIFACT_PATTERN
from mirbatch.tracking.models import FailedBatchInfo, MergeReadiness, ProgressSnapshot


def build_progress(
    state: ProcessingState,
    now: datetime | None = None,
) -> ProgressSnapshot:
    """Compute counters, percentages and time estimates for state."""
    counts = state.count_by_status()
    remaining = max(state.total_files - state.processed_count - state.failed_count, 0)
    pct = (
        round(state.processed_count / state.total_files * 100, 1)
        if state.total_files > 0 else 0.0
    )

    elapsed = 0.0
    if state.start_time is not None:
        current = now or datetime.now(timezone.utc)
        elapsed = max((current - state.start_time).total_seconds(), 0.0)

    avg = est = None
    if elapsed > 0 and state.processed_count > 0:
        avg = elapsed / state.processed_count
        est = avg * remaining

    return ProgressSnapshot(
        total_files=state.total_files,
        processed_count=state.processed_count,
        failed_count=state.failed_count,
        remaining_count=remaining,
        progress_pct=pct,
        total_batches=len(state.batches),
        completed_batches=counts["completed"],
        failed_batches=counts["failed"],
        pending_batches=counts["pending"],
        processing_batches=counts["processing"],
        current_batch=state.current_batch,
        start_time=state.start_time,
        elapsed_seconds=round(elapsed, 2),
        avg_seconds_per_file=avg,
        est_remaining_seconds=est,
        failed=[
            FailedBatchInfo(
                id=b.id,
                file_count=len(b.files),
                attempts=b.attempts,
                max_attempts=b.max_attempts,
                error=b.error,
            )
            for b in state.batches if b.status == "failed"
        ],
        missing_exports=[
            b.id for b in state.batches if b.status == "completed" and b.export_missing
        ],
    )


def format_duration(seconds: float | None) -> str:
    """Render seconds as '1h 2m 3s', '2m 3s' or '3s'."""
    if not seconds or seconds < 0:
        return "0s"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_progress_line(snapshot: ProgressSnapshot) -> str:
    """One-line progress summary for logs."""
    line = (
        f"Progress: {snapshot.processed_count}/{snapshot.total_files} files "
        f"({snapshot.progress_pct:.1f}%), batches {snapshot.completed_batches}"
        f"/{snapshot.total_batches} completed"
    )
    if snapshot.failed_count:
        line += f", {snapshot.failed_count} files failed"
    if snapshot.est_remaining_seconds and snapshot.remaining_count:
        line += f", ~{format_duration(snapshot.est_remaining_seconds)} remaining"
    return line


def merge_readiness(state: ProcessingState | None, export_dir: Path) -> MergeReadiness:
    """Check whether artifacts exist, cover every batch, and no work is outstanding.

    With a state, every completed batch must have an artifact on disk; without
    one, artifact batch ids must form an unbroken 1..N sequence.
    """
    artifacts = find_batch_artifacts(export_dir)
    names = [p.name for p in artifacts]

    if not artifacts:
        return MergeReadiness(reason="no batch artifacts found", artifact_names=names)

    found = _artifact_batch_ids(artifacts)
    if state is not None:
        expected = {b.id for b in state.batches if b.status == "completed"}
    else:
        expected = set(range(1, max(found) + 1))
    missing = sorted(expected - found)

    readiness = MergeReadiness(
        artifacts_found=len(artifacts),
        artifact_names=names,
        missing_batches=missing,
    )

    if state is not None:
        counts = state.count_by_status()
        if counts["pending"] or counts["processing"]:
            readiness.reason = (
                f"{counts['pending'] + counts['processing']} batches still "
                "pending; merge would be partial"
            )
            return readiness
        retryable = [b.id for b in state.batches if b.can_retry]
        if retryable:
            readiness.reason = f"failed batches with attempts left: {retryable}"
            return readiness

    if missing:
        readiness.reason = f"no artifact for batches {missing}; merge would be partial"
        return readiness

    readiness.ready = True
    readiness.reason = "all batches settled"
    return readiness


def _artifact_batch_ids(artifacts: list[Path]) -> set[int]:
    regex = re.compile(DEFAULT_ARTIFACT_PATTERN)
    ids: set[int] = set()
    for path in artifacts:
        match = regex.match(path.name)
        if match:
            ids.add(int(match.group(1)))
    return ids
