# src/batch/models.py — v2
"""Batch lifecycle models: Batch, ProcessingState.

A Batch moves pending -> processing -> completed | failed. Failed batches
with attempts left re-enter processing on the next dequeue; once
attempts == max_attempts, failed is terminal.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

BatchStatus = Literal["pending", "processing", "completed", "failed"]

INTERRUPTED_ERROR = "interrupted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Batch(BaseModel):
    """A bounded group of audio files processed as one upload/analyze/export cycle."""

    id: int
    files: list[str]
    status: BatchStatus = "pending"
    attempts: int = 0
    max_attempts: int = 3
    start_time: datetime | None = None
    end_time: datetime | None = None
    error: str | None = None
    artifact_path: str | None = None
    export_missing: bool = False
    uploaded_count: int = 0
    skipped_count: int = 0

    @property
    def can_retry(self) -> bool:
        return self.status == "failed" and self.attempts < self.max_attempts

    @property
    def is_terminal(self) -> bool:
        return self.status == "completed" or (
            self.status == "failed" and self.attempts >= self.max_attempts
        )

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def start_processing(self) -> None:
        """pending|failed -> processing; consumes one attempt."""
        if self.status not in ("pending", "failed"):
            raise ValueError(f"Batch {self.id} cannot start from status {self.status!r}")
        if self.status == "failed" and not self.can_retry:
            raise ValueError(f"Batch {self.id} has no attempts left")
        self.status = "processing"
        self.attempts += 1
        self.start_time = _utcnow()
        self.end_time = None
        self.error = None

    def mark_completed(self, artifact_path: str | None = None) -> None:
        """processing -> completed."""
        self.status = "completed"
        self.end_time = _utcnow()
        self.error = None
        self.artifact_path = artifact_path
        self.export_missing = artifact_path is None

    def mark_failed(self, error: str) -> None:
        """processing -> failed."""
        self.status = "failed"
        self.end_time = _utcnow()
        self.error = error


class ProcessingState(BaseModel):
    """Aggregate, durable progress record for one collection.

    processed/failed counters are derived from the path sets on every
    mutation so processed_count + failed_count <= total_files holds.
    """

    total_files: int = 0
    processed_count: int = 0
    failed_count: int = 0
    current_batch: int = 0
    start_time: datetime | None = None
    batches: list[Batch] = Field(default_factory=list)
    processed_files: set[str] = Field(default_factory=set)
    failed_files: set[str] = Field(default_factory=set)
    fingerprint: str = ""
    saved_at: datetime | None = None

    # --- Queries ---

    def get_batch(self, batch_id: int) -> Batch:
        for batch in self.batches:
            if batch.id == batch_id:
                return batch
        raise KeyError(f"Unknown batch id: {batch_id}")

    def next_eligible_batch(self) -> Batch | None:
        """First pending batch, else first failed batch with attempts left."""
        for batch in self.batches:
            if batch.status == "pending":
                return batch
        for batch in self.batches:
            if batch.can_retry:
                return batch
        return None

    def count_by_status(self) -> dict[str, int]:
        counts = {"pending": 0, "processing": 0, "completed": 0, "failed": 0}
        for batch in self.batches:
            counts[batch.status] += 1
        return counts

    @property
    def is_finished(self) -> bool:
        """True when no batch is pending, processing or retryable."""
        return all(b.is_terminal for b in self.batches)

    # --- Mutations ---

    def mark_batch_started(self, batch_id: int) -> Batch:
        batch = self.get_batch(batch_id)
        batch.start_processing()
        self.current_batch = batch.id
        if self.start_time is None:
            self.start_time = batch.start_time
        return batch

    def mark_batch_completed(self, batch_id: int, artifact_path: str | None = None) -> Batch:
        batch = self.get_batch(batch_id)
        batch.mark_completed(artifact_path)
        self.failed_files.difference_update(batch.files)
        self.processed_files.update(batch.files)
        self._sync_counts()
        return batch

    def mark_batch_failed(self, batch_id: int, error: str) -> Batch:
        batch = self.get_batch(batch_id)
        batch.mark_failed(error)
        self.failed_files.update(batch.files)
        self._sync_counts()
        return batch

    def recover_interrupted(self) -> list[int]:
        """Turn batches left in processing by a crash into failed ones.

        The consumed attempt stays counted, so the retry budget still
        bounds a batch that keeps crashing the process.
        """
        recovered = []
        for batch in self.batches:
            if batch.status == "processing":
                self.mark_batch_failed(batch.id, INTERRUPTED_ERROR)
                recovered.append(batch.id)
        return recovered

    def _sync_counts(self) -> None:
        self.processed_count = len(self.processed_files)
        self.failed_count = len(self.failed_files)
