# src/engine/models.py — v1
"""Analysis engine driver results: UploadResult, ExportResult."""

from __future__ import annotations

from pydantic import BaseModel


class UploadResult(BaseModel):
    """Outcome of uploading one batch to the analysis engine.

    skipped_count covers files the engine refused inside an otherwise
    successful upload; they are reported, never retried individually.
    """

    success: bool
    uploaded_count: int = 0
    skipped_count: int = 0
    error: str | None = None


class ExportResult(BaseModel):
    """Outcome of asking the engine for its CSV export."""

    success: bool
    file_path: str | None = None
    error: str | None = None
