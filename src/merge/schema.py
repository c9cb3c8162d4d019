# src/merge/schema.py — v1
"""Batch artifact column schema and alias normalization.

Artifacts exported by different engine versions spell columns
differently (Filename / filename / file, BPM / tempo, Happy / mood_happy).
Every header is mapped to canonical names right after parsing so the
rest of the merge only sees the canonical form.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

FILENAME_COLUMN = "filename"

MOOD_COLUMNS: list[str] = [
    "mood_happy",
    "mood_sad",
    "mood_relaxed",
    "mood_aggressive",
    "mood_electronic",
    "mood_acoustic",
    "mood_party",
]

GENRE_COLUMNS: list[str] = [
    "genre_alternative",
    "genre_blues",
    "genre_electronic_genre",
    "genre_folkcountry",
    "genre_funksoulrnb",
    "genre_jazz",
    "genre_pop",
    "genre_raphiphop",
    "genre_rock",
]

CSV_SCHEMA: list[str] = [
    FILENAME_COLUMN,
    "bpm",
    "key",
    *MOOD_COLUMNS,
    *GENRE_COLUMNS,
    "danceability",
]

# Scores are probabilities expected in [0, 1].
SCORE_COLUMNS: frozenset[str] = frozenset([*MOOD_COLUMNS, *GENRE_COLUMNS, "danceability"])

# Normalized spelling -> canonical column.
COLUMN_ALIASES: dict[str, str] = {
    "file": FILENAME_COLUMN,
    "file_name": FILENAME_COLUMN,
    "track": FILENAME_COLUMN,
    "track_name": FILENAME_COLUMN,
    "path": FILENAME_COLUMN,
    "tempo": "bpm",
    "musical_key": "key",
    "happy": "mood_happy",
    "sad": "mood_sad",
    "relaxed": "mood_relaxed",
    "aggressive": "mood_aggressive",
    "electronic": "mood_electronic",
    "acoustic": "mood_acoustic",
    "party": "mood_party",
    "alternative": "genre_alternative",
    "blues": "genre_blues",
    "electronic_genre": "genre_electronic_genre",
    "folkcountry": "genre_folkcountry",
    "funksoulrnb": "genre_funksoulrnb",
    "jazz": "genre_jazz",
    "pop": "genre_pop",
    "raphiphop": "genre_raphiphop",
    "rock": "genre_rock",
    "danceable": "danceability",
}


def _normalize_name(name: str) -> str:
    cleaned = name.replace("\ufeff", "").strip().lower()
    for ch in (" ", "-", "."):
        cleaned = cleaned.replace(ch, "_")
    return cleaned


def canonical_column(name: str) -> str:
    """Map a raw header cell to its canonical column name.

    Unknown columns come back normalized; they are ignored by the merge.
    """
    normalized = _normalize_name(name)
    return COLUMN_ALIASES.get(normalized, normalized)


def normalize_header(header: Sequence[str]) -> list[str]:
    """Canonical name for every raw header cell, position preserved."""
    return [canonical_column(cell) for cell in header]


def missing_columns(header: Sequence[str], required: Iterable[str]) -> list[str]:
    """Required canonical columns absent from a raw header (case-insensitive)."""
    present = set(normalize_header(header))
    return [col for col in required if canonical_column(col) not in present]


def normalize_row(header: Sequence[str], cells: Sequence[str]) -> dict[str, str]:
    """Build a canonical-name row from raw cells.

    When several raw columns map to the same canonical name, the first
    non-empty value wins. Short rows are padded with empty values.
    """
    row: dict[str, str] = {}
    for index, column in enumerate(normalize_header(header)):
        value = cells[index].strip() if index < len(cells) else ""
        if not row.get(column):
            row[column] = value
    return row
