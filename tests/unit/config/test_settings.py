# tests/unit/config/test_settings.py — v2
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from mirbatch.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_batching(self):
        s = Settings(_env_file=None)
        assert s.batch_size == 30
        assert s.batch_max_attempts == 3

    def test_default_orchestration(self):
        s = Settings(_env_file=None)
        assert s.consecutive_failure_threshold == 3
        assert s.strict_mode is False
        assert s.inter_batch_delay_s == 30.0
        assert s.export_ready_checks == 3

    def test_default_size_bounds(self):
        s = Settings(_env_file=None)
        assert s.min_file_size == 1024
        assert s.max_file_size == 100 * 1024 * 1024

    def test_default_merge(self):
        s = Settings(_env_file=None)
        assert s.merge_duplicate_strategy == "keep_first"
        assert s.merge_output_basename == "music_analysis_results"
        assert s.merge_max_attempts == 1
        assert s.auto_merge is True

    def test_default_paths(self):
        s = Settings(_env_file=None)
        assert s.state_file == Path("./file-processing-state.json")
        assert s.export_dir == Path("./csv_exports/batch_csvs")

    def test_retry_budgets_independent(self):
        s = Settings(_env_file=None, driver_max_retries=2, batch_max_attempts=5)
        assert s.driver_max_retries == 2
        assert s.batch_max_attempts == 5
        assert s.merge_max_attempts == 1


class TestSettingsValidation:
    @pytest.mark.parametrize("field", [
        "batch_size", "batch_max_attempts", "consecutive_failure_threshold",
        "export_ready_checks", "merge_max_attempts",
    ])
    def test_positive_fields_reject_zero(self, field):
        with pytest.raises(ValidationError, match=field):
            Settings(_env_file=None, **{field: 0})

    def test_negative_driver_retries(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, driver_max_retries=-1)

    def test_min_above_max_size(self):
        with pytest.raises(ConfigurationError, match="MIN_FILE_SIZE"):
            Settings(_env_file=None, min_file_size=2000, max_file_size=1000)

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigurationError, match="UPLOAD_TIMEOUT_S"):
            Settings(_env_file=None, upload_timeout_s=0)

    def test_negative_delay(self):
        with pytest.raises(ConfigurationError, match="Delays"):
            Settings(_env_file=None, inter_batch_delay_s=-1)

    def test_empty_formats(self):
        with pytest.raises(ConfigurationError, match="SUPPORTED_FORMATS"):
            Settings(_env_file=None, supported_formats=" , ")

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, merge_duplicate_strategy="keep_random")


class TestSettingsHelpers:
    def test_formats_normalized(self):
        s = Settings(_env_file=None, supported_formats="MP3, .Wav,flac")
        assert s.supported_formats_list == [".mp3", ".wav", ".flac"]

    def test_exclude_patterns(self):
        s = Settings(_env_file=None, exclude_patterns=".*, temp ,")
        assert s.exclude_patterns_list == [".*", "temp"]

    def test_required_columns_empty_by_default(self):
        assert Settings(_env_file=None).merge_required_columns_list == []

    def test_required_columns_parsed(self):
        s = Settings(_env_file=None, merge_required_columns="filename, bpm")
        assert s.merge_required_columns_list == ["filename", "bpm"]


class TestLoadSettings:
    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "12")
        monkeypatch.setenv("STRICT_MODE", "true")
        s = load_settings(_env_file=None)
        assert s.batch_size == 12
        assert s.strict_mode is True

    def test_explicit_override_wins(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "12")
        s = load_settings(_env_file=None, batch_size=4)
        assert s.batch_size == 4

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("EXPORT_READY_CHECKS=7\nUNRELATED_KEY=x\n", encoding="utf-8")
        s = Settings(_env_file=str(env))
        assert s.export_ready_checks == 7
