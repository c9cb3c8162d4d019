# src/merge/engine.py — v1
"""CSV merge engine — consolidate per-batch exports into one dataset.

Steps:
  1. discover  batch_<id>_*.csv artifacts, sorted by numeric batch id
  2. validate  non-empty, parseable, header covers required columns
  3. consolidate rows in discovery order with a duplicate policy,
               then sort by filename
  4. write     <basename>_<NN>.csv, NN = highest existing + 1
  5. verify    re-read row count and header
  6. cleanup   optionally delete the merged artifacts

Invalid artifacts are excluded and reported; only an empty input set and
a failed verification abort the merge.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path

from mirbatch.core.errors import (
    CorruptArtifactError,
    MergeVerificationError,
    NoArtifactsError,
    SchemaValidationError,
)
from mirbatch.merge.formatting import format_csv_line, format_row
from mirbatch.merge.models import (
    DEFAULT_ARTIFACT_PATTERN,
    FileValidation,
    MergedRecord,
    MergeOptions,
    MergeReport,
    MergeResult,
    MergeStats,
    ValidationReport,
)
from mirbatch.merge.schema import CSV_SCHEMA, FILENAME_COLUMN, missing_columns, normalize_row

logger = logging.getLogger(__name__)

DUPLICATE_COLUMNS = ["_duplicate", "_first_seen_in"]
METADATA_COLUMNS = ["_batch_source", "_processing_order"]


def find_batch_artifacts(
    input_dir: Path | str,
    pattern: str = DEFAULT_ARTIFACT_PATTERN,
) -> list[Path]:
    """Batch artifacts in input_dir, ordered by embedded batch id (numeric)."""
    directory = Path(input_dir)
    if not directory.is_dir():
        return []

    regex = re.compile(pattern)
    found: list[tuple[int, str, Path]] = []
    for path in directory.iterdir():
        if not path.is_file():
            continue
        match = regex.match(path.name)
        if match:
            found.append((int(match.group(1)), path.name, path))
    return [path for _, _, path in sorted(found)]


def _is_blank(cells: list[str]) -> bool:
    return not any(cell.strip() for cell in cells)


class CsvMergeEngine:
    """Merge batch export artifacts into one validated, deduplicated CSV.

    A fresh MergeStats is kept per merge() call; the step methods can also
    be driven individually.
    """

    def __init__(self, options: MergeOptions | None = None) -> None:
        self._options = options or MergeOptions()
        self._stats = MergeStats()

    @property
    def options(self) -> MergeOptions:
        return self._options

    @property
    def stats(self) -> MergeStats:
        return self._stats

    @property
    def output_columns(self) -> list[str]:
        columns = list(CSV_SCHEMA)
        if self._options.duplicate_strategy == "flag_duplicates":
            columns += DUPLICATE_COLUMNS
        if self._options.include_metadata:
            columns += METADATA_COLUMNS
        return columns

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def merge(self, input_dir: Path | str, output_dir: Path | str) -> MergeResult:
        """Run discover → validate → consolidate → write → verify → cleanup.

        Raises:
            NoArtifactsError: Nothing valid to merge.
            MergeVerificationError: The written file failed verification.
        """
        self._stats = MergeStats()
        started_at = datetime.now(timezone.utc)
        t0 = time.perf_counter()

        files = self.discover(input_dir)
        if not files:
            raise NoArtifactsError(f"No batch CSV files found in {input_dir}")

        validation = self.validate(files)
        self._log_validation(validation)
        valid = [Path(v.path) for v in validation.valid_files]
        if not valid:
            raise NoArtifactsError("No valid batch CSV files to merge")

        records = self.consolidate(valid)
        if not records:
            raise NoArtifactsError("Batch CSV files contain no data rows")

        output = self.write_output(records, output_dir)
        self.verify(output, len(records))

        cleaned = self.cleanup(valid) if self._options.cleanup_batch_files else 0

        duration = time.perf_counter() - t0
        report = MergeReport(
            output_path=str(output),
            duplicate_strategy=self._options.duplicate_strategy,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_seconds=round(duration, 3),
            rows_per_second=round(len(records) / duration, 1) if duration > 0 else 0.0,
            stats=self._stats.model_copy(),
            excluded_files=validation.invalid_files,
            cleaned_up_files=cleaned,
        )
        logger.info(
            "Merge complete: %d rows from %d/%d files → %s (%d duplicates, %s)",
            self._stats.total_rows, self._stats.batch_files_processed,
            self._stats.batch_files_found, output.name,
            self._stats.duplicates_found, self._options.duplicate_strategy,
        )
        return MergeResult(success=True, output_path=str(output), report=report)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def discover(self, input_dir: Path | str) -> list[Path]:
        files = find_batch_artifacts(input_dir, self._options.artifact_pattern)
        self._stats.batch_files_found = len(files)
        logger.info("Found %d batch CSV files in %s", len(files), input_dir)
        for index, path in enumerate(files, start=1):
            logger.debug("  %d. %s", index, path.name)
        return files

    def validate(self, files: list[Path]) -> ValidationReport:
        report = ValidationReport()
        for path in files:
            try:
                report.files.append(self._validate_file(path))
            except SchemaValidationError as e:
                self._stats.validation_errors += 1
                report.files.append(FileValidation(
                    path=str(path), valid=False, error_type="schema",
                    error=str(e), missing_columns=e.missing,
                ))
            except CorruptArtifactError as e:
                self._stats.validation_errors += 1
                report.files.append(FileValidation(
                    path=str(path), valid=False,
                    error_type="empty" if e.reason == "file is empty" else "corrupt",
                    error=str(e),
                ))
        return report

    def _validate_file(self, path: Path) -> FileValidation:
        try:
            size = path.stat().st_size
        except OSError as e:
            raise CorruptArtifactError(path, f"cannot stat: {e}") from e
        if size == 0:
            raise CorruptArtifactError(path, "file is empty")

        header, rows = self._read_csv(path)
        missing = missing_columns(header, self._options.required_columns)
        if missing:
            raise SchemaValidationError(path, missing)

        return FileValidation(
            path=str(path), valid=True, row_count=len(rows), size_bytes=size,
        )

    def _read_csv(self, path: Path) -> tuple[list[str], list[list[str]]]:
        """Header and non-blank data rows of an artifact."""
        try:
            with path.open(newline="", encoding=self._options.encoding) as f:
                rows = [row for row in csv.reader(f) if not _is_blank(row)]
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise CorruptArtifactError(path, f"unreadable CSV: {e}") from e
        if not rows:
            raise CorruptArtifactError(path, "no header row")
        return rows[0], rows[1:]

    def consolidate(self, files: list[Path]) -> list[MergedRecord]:
        """Apply the duplicate policy across files in order, then sort by filename."""
        strategy = self._options.duplicate_strategy
        records: list[MergedRecord] = []
        first_index: dict[str, int] = {}
        order = 0

        for path in files:
            try:
                header, rows = self._read_csv(path)
            except CorruptArtifactError as e:
                self._stats.processing_errors += 1
                logger.error("Skipping %s: %s", path.name, e)
                continue

            added = 0
            for cells in rows:
                order += 1
                self._stats.total_rows_read += 1
                record = self._build_record(header, cells, path.name, order)
                if record is None:
                    continue

                seen_at = first_index.get(record.filename)
                if seen_at is None:
                    first_index[record.filename] = len(records)
                    records.append(record)
                    added += 1
                    continue

                self._stats.duplicates_found += 1
                self._stats.duplicates_resolved += 1
                if strategy == "keep_first":
                    continue
                if strategy == "keep_last":
                    records[seen_at] = record
                    continue
                record.duplicate = True
                record.first_seen_in = records[seen_at].source_file
                records.append(record)
                added += 1

            self._stats.batch_files_processed += 1
            logger.debug("Added %d rows from %s", added, path.name)

        records.sort(key=lambda r: r.filename)
        self._stats.total_rows = len(records)
        if self._stats.duplicates_found:
            logger.warning(
                "Found %d duplicate filenames (%s)",
                self._stats.duplicates_found, strategy,
            )
        return records

    def _build_record(
        self,
        header: list[str],
        cells: list[str],
        source: str,
        order: int,
    ) -> MergedRecord | None:
        row = normalize_row(header, cells)
        filename = row.get(FILENAME_COLUMN, "").strip()
        if not filename:
            self._stats.row_errors += 1
            logger.warning("Row %d of %s has no filename; dropped", order, source)
            return None

        values, out_of_range = format_row(row, CSV_SCHEMA)
        values[FILENAME_COLUMN] = filename
        if out_of_range:
            self._stats.out_of_range_values += len(out_of_range)
            logger.warning(
                "%s (%s): values outside [0, 1] kept for %s",
                filename, source, ", ".join(out_of_range),
            )
        return MergedRecord(
            filename=filename, values=values, source_file=source, processing_order=order,
        )

    def write_output(self, records: list[MergedRecord], output_dir: Path | str) -> Path:
        """Write records to the next numbered output file."""
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        number = self.next_output_number(directory)
        path = directory / f"{self._options.output_basename}_{number:02d}.csv"

        columns = self.output_columns
        with path.open("w", newline="", encoding=self._options.encoding) as f:
            f.write(format_csv_line(columns) + "\n")
            for record in records:
                f.write(format_csv_line(self._row_values(record, columns)) + "\n")

        logger.info("Wrote %d rows to %s", len(records), path)
        return path

    @staticmethod
    def _row_values(record: MergedRecord, columns: list[str]) -> list[str]:
        extra = {
            "_duplicate": "true" if record.duplicate else "",
            "_first_seen_in": record.first_seen_in or "",
            "_batch_source": record.source_file,
            "_processing_order": str(record.processing_order),
        }
        return [record.values.get(c, extra.get(c, "")) for c in columns]

    def next_output_number(self, output_dir: Path | str) -> int:
        """Highest existing <basename>_<NN>.csv number + 1, starting at 1."""
        directory = Path(output_dir)
        if not directory.is_dir():
            return 1
        regex = re.compile(rf"^{re.escape(self._options.output_basename)}_(\d+)\.csv$")
        numbers = [
            int(m.group(1))
            for p in directory.iterdir()
            if (m := regex.match(p.name))
        ]
        return max(numbers, default=0) + 1

    def verify(self, path: Path, expected_rows: int) -> None:
        """Re-read the output and check row count and header.

        Raises:
            MergeVerificationError: On any mismatch or read failure.
        """
        try:
            if path.stat().st_size == 0:
                raise MergeVerificationError(path, "output file is empty")
            header, rows = self._read_csv(path)
        except (OSError, CorruptArtifactError) as e:
            raise MergeVerificationError(path, str(e)) from e

        if len(rows) != expected_rows:
            raise MergeVerificationError(
                path, f"row count mismatch: expected {expected_rows}, got {len(rows)}",
            )
        missing = missing_columns(header, self._options.required_columns)
        if missing:
            raise MergeVerificationError(
                path, f"missing required columns: {', '.join(missing)}",
            )
        logger.info("Output verification passed (%d rows)", len(rows))

    def cleanup(self, files: list[Path]) -> int:
        """Delete merged artifacts; returns how many were removed."""
        removed = 0
        for path in files:
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.error("Failed to remove %s: %s", path.name, e)
        logger.info("Cleaned up %d/%d batch files", removed, len(files))
        return removed

    @staticmethod
    def _log_validation(validation: ValidationReport) -> None:
        logger.info(
            "Validation: %d valid files, %d rows to merge",
            len(validation.valid_files), validation.total_rows,
        )
        for item in validation.invalid_files:
            logger.warning("Excluded %s", item.error)


async def merge_with_retry(
    engine: CsvMergeEngine,
    input_dir: Path | str,
    output_dir: Path | str,
    max_attempts: int = 1,
    delay_s: float = 5.0,
) -> MergeResult:
    """Merge-layer retry budget: repeat a merge whose verification failed.

    NoArtifactsError is deterministic and never retried.
    """
    attempt = 1
    while True:
        try:
            result = engine.merge(input_dir, output_dir)
            result.report.attempts = attempt
            return result
        except MergeVerificationError as e:
            if attempt >= max_attempts:
                raise
            logger.warning(
                "Merge attempt %d/%d failed: %s; retrying in %.1fs",
                attempt, max_attempts, e, delay_s,
            )
            attempt += 1
            await asyncio.sleep(delay_s)
