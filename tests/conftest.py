# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a scripted analysis driver, a settings factory, audio and CSV
file writers. No external engine is involved: the scripted driver writes
its export CSV straight into the destination directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from mirbatch.config.settings import Settings
from mirbatch.engine.base_driver import BaseAnalysisDriver
from mirbatch.engine.models import ExportResult, UploadResult
from mirbatch.merge.schema import CSV_SCHEMA, GENRE_COLUMNS, MOOD_COLUMNS


# === Scripted driver ===


class ScriptedDriver(BaseAnalysisDriver):
    """In-memory driver whose per-upload outcome follows a script.

    Outcomes (one per upload call, "ok" once the script is exhausted):
        ok           full cycle, export CSV with one row per file
        upload_fail  upload returns success=False
        timeout      wait_for_completion returns False
        error_state  wait_for_completion raises
        no_export    export never becomes ready
        skip_one     upload reports one skipped file
    """

    def __init__(self, outcomes: list[str] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.uploads: list[list[str]] = []
        self.resets = 0
        self.export_checks = 0
        self.opened = False
        self.closed = False
        self._outcome = "ok"

    async def upload(self, files: list[str]) -> UploadResult:
        index = len(self.uploads)
        self.uploads.append(list(files))
        self._outcome = self.outcomes[index] if index < len(self.outcomes) else "ok"
        if self._outcome == "upload_fail":
            return UploadResult(success=False, error="engine rejected the upload")
        if self._outcome == "skip_one":
            return UploadResult(
                success=True, uploaded_count=len(files) - 1, skipped_count=1,
            )
        return UploadResult(success=True, uploaded_count=len(files))

    async def wait_for_completion(self, timeout_s: float) -> bool:
        if self._outcome == "error_state":
            raise RuntimeError("engine shows an error banner")
        return self._outcome != "timeout"

    async def is_export_ready(self) -> bool:
        self.export_checks += 1
        return self._outcome != "no_export"

    async def export_results(self, destination_dir: Path) -> ExportResult:
        path = Path(destination_dir) / "analysis_results.csv"
        rows = [feature_row(Path(f).name) for f in self.uploads[-1]]
        write_csv(path, CSV_SCHEMA, rows)
        return ExportResult(success=True, file_path=str(path))

    async def reset_session(self) -> None:
        self.resets += 1

    async def open(self) -> None:
        self.opened = True

    async def close(self) -> None:
        self.closed = True


# === Helpers ===


def feature_row(filename: str, score: str = "0.5", bpm: str = "120.4") -> list[str]:
    """One artifact row in CSV_SCHEMA order."""
    scores = [score] * (len(MOOD_COLUMNS) + len(GENRE_COLUMNS) + 1)
    return [filename, bpm, "C major", *scores]


def write_csv(path: Path, header: list[str], rows: list[list[str]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [",".join(header)] + [",".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_audio(directory: Path, name: str, size: int = 2048) -> Path:
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\0" * size)
    return path


# === FIXTURES ===


@pytest.fixture
def scripted_driver() -> Callable[..., ScriptedDriver]:
    """Factory: scripted_driver(["ok", "upload_fail", ...])."""
    return ScriptedDriver


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Settings isolated from any .env, with all paths under tmp_path and no waits."""

    def _make(**overrides: object) -> Settings:
        values: dict[str, object] = {
            "inter_batch_delay_s": 0,
            "export_ready_interval_s": 0,
            "state_file": tmp_path / "state" / "progress.json",
            "export_dir": tmp_path / "exports",
            "results_dir": tmp_path / "results",
            "report_dir": tmp_path / "reports",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def csv_writer() -> Callable[[Path, list[str], list[list[str]]], Path]:
    return write_csv


@pytest.fixture
def row_factory() -> Callable[..., list[str]]:
    return feature_row


@pytest.fixture
def audio_writer() -> Callable[..., Path]:
    return write_audio


@pytest.fixture
def music_dir(tmp_path: Path) -> Path:
    """Seven valid .mp3 files (track_01..07) in a flat directory."""
    root = tmp_path / "music"
    for i in range(1, 8):
        write_audio(root, f"track_{i:02d}.mp3")
    return root
