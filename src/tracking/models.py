# src/tracking/models.py — v2
"""Tracking models: ProgressSnapshot, MergeReadiness, WorkflowReport."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from mirbatch.discovery.models import DiscoveryStatistics, RejectedFile
from mirbatch.merge.models import MergeReport
from mirbatch.orchestrator.models import OrchestrationResult


class FailedBatchInfo(BaseModel):
    """A failed batch as shown in progress reports."""

    id: int
    file_count: int
    attempts: int
    max_attempts: int
    error: str | None = None


class ProgressSnapshot(BaseModel):
    """Point-in-time view of a ProcessingState."""

    total_files: int = 0
    processed_count: int = 0
    failed_count: int = 0
    remaining_count: int = 0
    progress_pct: float = 0.0
    total_batches: int = 0
    completed_batches: int = 0
    failed_batches: int = 0
    pending_batches: int = 0
    processing_batches: int = 0
    current_batch: int = 0
    start_time: datetime | None = None
    elapsed_seconds: float = 0.0
    avg_seconds_per_file: float | None = None
    est_remaining_seconds: float | None = None
    failed: list[FailedBatchInfo] = Field(default_factory=list)
    missing_exports: list[int] = Field(default_factory=list)


class MergeReadiness(BaseModel):
    """Whether the batch artifacts on disk are ready to be merged."""

    artifacts_found: int = 0
    artifact_names: list[str] = Field(default_factory=list)
    missing_batches: list[int] = Field(default_factory=list)
    ready: bool = False
    reason: str = ""


class WorkflowReport(BaseModel):
    """End-to-end report of a discover → process → merge run."""

    run_id: str
    root: str
    status: Literal["completed", "partial", "aborted", "cancelled", "empty", "failed"]
    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    resumed: bool = False
    discovery: DiscoveryStatistics = Field(default_factory=DiscoveryStatistics)
    rejected_files: list[RejectedFile] = Field(default_factory=list)
    orchestration: OrchestrationResult | None = None
    merge: MergeReport | None = None
    merge_error: str | None = None
    error: str | None = None
