# src/merge/formatting.py — v1
"""Feature value formatting and RFC 4180 field escaping.

- bpm: nearest integer, halves rounded up ("127.6" -> "128")
- scores: exactly three decimals ("0.8523" -> "0.852"); values outside
  [0, 1] are kept and reported
- missing or unparseable values: empty field
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from mirbatch.merge.schema import SCORE_COLUMNS

_ONE = Decimal("1")
_MILLI = Decimal("0.001")


def _to_decimal(value: object) -> Decimal | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return number


def format_bpm(value: object) -> str:
    """Round a tempo to the nearest integer, or '' if unparseable."""
    number = _to_decimal(value)
    if number is None:
        return ""
    rounded = number.quantize(_ONE, rounding=ROUND_HALF_UP)
    return str(int(rounded))


def format_score(value: object) -> str:
    """Format a probability to three decimals, or '' if unparseable."""
    number = _to_decimal(value)
    if number is None:
        return ""
    rounded = number.quantize(_MILLI, rounding=ROUND_HALF_UP)
    if rounded == 0:
        rounded = abs(rounded)
    return f"{rounded:.3f}"


def score_in_range(text: str) -> bool:
    """True if a formatted score is empty or within [0, 1]."""
    number = _to_decimal(text)
    return number is None or Decimal(0) <= number <= _ONE


def format_key(value: object) -> str:
    """Collapse whitespace in a key label such as 'C#  minor'."""
    if value is None:
        return ""
    return " ".join(str(value).split())


def format_field(column: str, value: object) -> str:
    """Format one canonical column value for output."""
    if column == "bpm":
        return format_bpm(value)
    if column == "key":
        return format_key(value)
    if column in SCORE_COLUMNS:
        return format_score(value)
    return "" if value is None else str(value)


def format_row(values: dict[str, str], columns: list[str]) -> tuple[dict[str, str], list[str]]:
    """Format the given columns of a row.

    Returns:
        (formatted values, score columns whose value lies outside [0, 1]).
    """
    formatted: dict[str, str] = {}
    out_of_range: list[str] = []
    for column in columns:
        text = format_field(column, values.get(column, ""))
        if column in SCORE_COLUMNS and not score_in_range(text):
            out_of_range.append(column)
        formatted[column] = text
    return formatted, out_of_range


def escape_csv_field(value: object) -> str:
    """Quote a field containing a comma, quote or line break; double inner quotes."""
    text = "" if value is None else str(value)
    if any(ch in text for ch in (",", '"', "\n", "\r")):
        return '"' + text.replace('"', '""') + '"'
    return text


def format_csv_line(values: list[object]) -> str:
    """Join escaped fields into one CSV line (without terminator)."""
    return ",".join(escape_csv_field(v) for v in values)
