# src/merge/models.py — v1
"""Merge models: options, consolidated records, validation and reports."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from mirbatch.merge.schema import CSV_SCHEMA

if TYPE_CHECKING:
    from mirbatch.config.settings import Settings

DuplicateStrategy = Literal["keep_first", "keep_last", "flag_duplicates"]

DEFAULT_ARTIFACT_PATTERN = r"^batch_(\d+)_.+\.csv$"


class MergeOptions(BaseModel):
    """How one merge run discovers, deduplicates and writes rows."""

    duplicate_strategy: DuplicateStrategy = "keep_first"
    required_columns: list[str] = Field(default_factory=lambda: list(CSV_SCHEMA))
    output_basename: str = "music_analysis_results"
    include_metadata: bool = False
    cleanup_batch_files: bool = False
    artifact_pattern: str = DEFAULT_ARTIFACT_PATTERN
    encoding: str = "utf-8"

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: object) -> MergeOptions:
        values: dict[str, object] = {
            "duplicate_strategy": settings.merge_duplicate_strategy,
            "output_basename": settings.merge_output_basename,
            "include_metadata": settings.merge_include_metadata,
            "cleanup_batch_files": settings.merge_cleanup_batch_files,
        }
        if settings.merge_required_columns_list:
            values["required_columns"] = settings.merge_required_columns_list
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]


class MergedRecord(BaseModel):
    """One consolidated output row, keyed by filename."""

    filename: str
    values: dict[str, str]
    source_file: str
    processing_order: int
    duplicate: bool = False
    first_seen_in: str | None = None


class FileValidation(BaseModel):
    """Validation outcome for one batch artifact."""

    path: str
    valid: bool
    row_count: int = 0
    size_bytes: int = 0
    error_type: Literal["empty", "schema", "corrupt"] | None = None
    error: str | None = None
    missing_columns: list[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    """Validation outcomes for every discovered artifact."""

    files: list[FileValidation] = Field(default_factory=list)

    @property
    def valid_files(self) -> list[FileValidation]:
        return [f for f in self.files if f.valid]

    @property
    def invalid_files(self) -> list[FileValidation]:
        return [f for f in self.files if not f.valid]

    @property
    def schema_errors(self) -> list[FileValidation]:
        return [f for f in self.files if f.error_type == "schema"]

    @property
    def corrupt_files(self) -> list[FileValidation]:
        return [f for f in self.files if f.error_type in ("corrupt", "empty")]

    @property
    def total_rows(self) -> int:
        return sum(f.row_count for f in self.valid_files)


class MergeStats(BaseModel):
    """Counters accumulated during one merge run."""

    batch_files_found: int = 0
    batch_files_processed: int = 0
    total_rows_read: int = 0
    total_rows: int = 0
    duplicates_found: int = 0
    duplicates_resolved: int = 0
    validation_errors: int = 0
    processing_errors: int = 0
    row_errors: int = 0
    out_of_range_values: int = 0


class MergeReport(BaseModel):
    """Derived summary of a merge run; not a source of truth."""

    output_path: str | None = None
    duplicate_strategy: DuplicateStrategy = "keep_first"
    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    rows_per_second: float = 0.0
    stats: MergeStats = Field(default_factory=MergeStats)
    excluded_files: list[FileValidation] = Field(default_factory=list)
    cleaned_up_files: int = 0
    attempts: int = 1

    @property
    def success_rate(self) -> float:
        if self.stats.batch_files_found == 0:
            return 0.0
        return self.stats.batch_files_processed / self.stats.batch_files_found * 100


class MergeResult(BaseModel):
    """Outcome of merge(); failures raise instead of returning success=False."""

    success: bool
    output_path: str | None = None
    report: MergeReport
