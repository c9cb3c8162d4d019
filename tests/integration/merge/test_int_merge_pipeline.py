# tests/integration/merge/test_int_merge_pipeline.py — v1
"""Integration tests for CSV consolidation across duplicate policies.

Covers: merge/engine.py, merge/schema.py, merge/formatting.py
No Docker required — uses filesystem.
"""

from __future__ import annotations

import csv
from pathlib import Path

import pytest

from mirbatch.merge.engine import CsvMergeEngine
from mirbatch.merge.models import MergeOptions
from mirbatch.merge.schema import CSV_SCHEMA


def _rows(path: str | Path) -> list[dict[str, str]]:
    with Path(path).open(newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


@pytest.fixture
def artifacts(tmp_path, csv_writer, row_factory) -> Path:
    """batch_001_x: a, b, c; batch_002_x: a (other values), d; plus drift and junk."""
    exports = tmp_path / "exports"
    csv_writer(exports / "batch_001_x.csv", CSV_SCHEMA, [
        row_factory("a.mp3", score="0.8523", bpm="127.6"),
        row_factory("b.mp3"),
        row_factory("c.mp3"),
    ])
    csv_writer(exports / "batch_002_x.csv", CSV_SCHEMA, [
        row_factory("a.mp3", score="0.25", bpm="90"),
        row_factory("d.mp3"),
    ])
    return exports


# =====================================================================
#  DUPLICATE POLICIES
# =====================================================================

class TestDuplicatePolicies:

    def test_keep_first(self, artifacts, tmp_path):
        result = CsvMergeEngine(MergeOptions(duplicate_strategy="keep_first")).merge(
            artifacts, tmp_path / "out",
        )
        rows = _rows(result.output_path)
        assert len(rows) == 4
        a = rows[0]
        assert (a["filename"], a["bpm"], a["mood_happy"]) == ("a.mp3", "128", "0.852")

    def test_keep_last(self, artifacts, tmp_path):
        result = CsvMergeEngine(MergeOptions(duplicate_strategy="keep_last")).merge(
            artifacts, tmp_path / "out",
        )
        a = _rows(result.output_path)[0]
        assert (a["bpm"], a["mood_happy"]) == ("90", "0.250")

    def test_flag_duplicates(self, artifacts, tmp_path):
        result = CsvMergeEngine(MergeOptions(duplicate_strategy="flag_duplicates")).merge(
            artifacts, tmp_path / "out",
        )
        rows = _rows(result.output_path)
        assert len(rows) == 5
        flagged = [(r["filename"], r["_duplicate"], r["_first_seen_in"]) for r in rows[:2]]
        assert flagged == [("a.mp3", "", ""), ("a.mp3", "true", "batch_001_x.csv")]


# =====================================================================
#  SCHEMA DRIFT AND BAD INPUT
# =====================================================================

class TestMixedInputs:

    def test_drifted_headers_and_junk_files(self, artifacts, csv_writer, tmp_path):
        csv_writer(artifacts / "batch_003_x.csv", [
            "File Name", "Tempo", "Key", "Happy", "Sad", "Relaxed", "Aggressive",
            "Electronic", "Acoustic", "Party", "Alternative", "Blues",
            "Electronic Genre", "FolkCountry", "FunkSoulRnB", "Jazz", "Pop",
            "RapHipHop", "Rock", "Danceability", "Comment",
        ], [["e.mp3", "100.5", "D minor", *(["0.1"] * 17), "drifted"]])
        csv_writer(artifacts / "batch_004_x.csv", ["filename", "bpm"], [["zzz.mp3", "1"]])
        (artifacts / "batch_005_x.csv").write_bytes(b"")
        (artifacts / "summary.csv").write_text("filename\nignored.mp3\n", encoding="utf-8")

        result = CsvMergeEngine().merge(artifacts, tmp_path / "out")

        names = [r["filename"] for r in _rows(result.output_path)]
        assert names == ["a.mp3", "b.mp3", "c.mp3", "d.mp3", "e.mp3"]
        e = _rows(result.output_path)[-1]
        assert (e["bpm"], e["key"], e["genre_rock"]) == ("101", "D minor", "0.100")
        assert "Comment" not in e and "comment" not in e

        stats = result.report.stats
        assert stats.batch_files_found == 5
        assert stats.batch_files_processed == 3
        assert stats.validation_errors == 2
        assert sorted(f.error_type for f in result.report.excluded_files) == ["empty", "schema"]

    def test_repeat_merges_identical(self, artifacts, tmp_path):
        engine = CsvMergeEngine(MergeOptions(include_metadata=True))
        first = engine.merge(artifacts, tmp_path / "out")
        second = engine.merge(artifacts, tmp_path / "out")
        assert Path(first.output_path).name == "music_analysis_results_01.csv"
        assert Path(second.output_path).name == "music_analysis_results_02.csv"
        assert Path(first.output_path).read_bytes() == Path(second.output_path).read_bytes()
