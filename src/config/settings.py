# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for every tunable of the discovery, batching,
orchestration, merge and logging layers. Each retry budget is configured
here independently:

  - driver layer: ``driver_max_retries`` (per upload/export call)
  - batch layer: ``batch_max_attempts`` (whole upload/wait/export cycle)
  - merge layer: ``merge_max_attempts`` (whole merge run)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Discovery ===
    supported_formats: str = ".mp3,.wav,.flac,.ogg,.m4a,.aac"
    scan_recursive: bool = True
    exclude_patterns: str = ".*,node_modules,temp,tmp,__pycache__,build"
    min_file_size: int = 1024
    max_file_size: int = 104_857_600

    # === Batching ===
    batch_size: int = 30
    batch_max_attempts: int = 3

    # === Orchestration ===
    consecutive_failure_threshold: int = 3
    strict_mode: bool = False
    inter_batch_delay_s: float = 30.0
    upload_timeout_s: float = 120.0
    analysis_timeout_s: float = 300.0
    export_timeout_s: float = 60.0
    export_ready_checks: int = 3
    export_ready_interval_s: float = 2.0
    fail_batch_on_missing_export: bool = False

    # === Analysis engine driver ===
    engine_driver: str = ""
    driver_max_retries: int = 0
    driver_retry_base_delay_s: float = 5.0
    driver_retry_backoff_factor: float = 2.0

    # === Storage ===
    state_file: Path = Path("./file-processing-state.json")
    export_dir: Path = Path("./csv_exports/batch_csvs")
    results_dir: Path = Path("./results")
    report_dir: Path = Path("./reports")

    # === Merge ===
    merge_output_basename: str = "music_analysis_results"
    merge_duplicate_strategy: Literal["keep_first", "keep_last", "flag_duplicates"] = (
        "keep_first"
    )
    merge_required_columns: str = ""
    merge_include_metadata: bool = False
    merge_cleanup_batch_files: bool = False
    merge_max_attempts: int = 1
    merge_retry_delay_s: float = 5.0
    auto_merge: bool = True

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "batch_size",
        "batch_max_attempts",
        "consecutive_failure_threshold",
        "export_ready_checks",
        "merge_max_attempts",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("driver_max_retries", "min_file_size")
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.min_file_size > self.max_file_size:
            errors.append("MIN_FILE_SIZE must be <= MAX_FILE_SIZE")

        for name in ("upload_timeout_s", "analysis_timeout_s", "export_timeout_s"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be > 0")

        if self.inter_batch_delay_s < 0 or self.export_ready_interval_s < 0:
            errors.append("Delays must be >= 0")

        if not self.supported_formats_list:
            errors.append("SUPPORTED_FORMATS must list at least one extension")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def supported_formats_list(self) -> list[str]:
        """Parse comma-separated extensions, normalized to lowercase with a dot."""
        formats = []
        for f in self.supported_formats.split(","):
            f = f.strip().lower()
            if not f:
                continue
            formats.append(f if f.startswith(".") else f".{f}")
        return formats

    @property
    def exclude_patterns_list(self) -> list[str]:
        """Parse comma-separated exclusion patterns."""
        return [p.strip() for p in self.exclude_patterns.split(",") if p.strip()]

    @property
    def merge_required_columns_list(self) -> list[str]:
        """Parse comma-separated required merge columns (empty = full schema)."""
        return [c.strip() for c in self.merge_required_columns.split(",") if c.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
