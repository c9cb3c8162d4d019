# src/orchestrator/models.py — v1
"""Orchestration result models: BatchAttempt, OrchestrationResult."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class BatchAttempt(BaseModel):
    """One dequeue of one batch, in the order it happened."""

    batch_id: int
    attempt: int
    outcome: Literal["completed", "failed"]
    error: str | None = None
    artifact_path: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class OrchestrationResult(BaseModel):
    """Summary of one orchestrator run over a ProcessingState."""

    batches_total: int = 0
    batches_completed: int = 0
    batches_failed: int = 0
    batches_pending: int = 0
    files_total: int = 0
    files_processed: int = 0
    files_failed: int = 0
    files_skipped: int = 0
    artifacts: list[str] = Field(default_factory=list)
    batches_missing_export: list[int] = Field(default_factory=list)
    completion_order: list[int] = Field(default_factory=list)
    attempts: list[BatchAttempt] = Field(default_factory=list)
    recovered_batches: list[int] = Field(default_factory=list)
    cancelled: bool = False
    aborted_reason: str | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return (
            not self.cancelled
            and self.aborted_reason is None
            and self.batches_failed == 0
            and self.batches_pending == 0
        )
