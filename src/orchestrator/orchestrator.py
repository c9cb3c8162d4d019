# src/orchestrator/orchestrator.py — v2
"""Batch orchestrator — drives each batch through upload → wait → export.

Batches run strictly one at a time: the analysis engine is a single
session that cannot serve overlapping uploads. Per batch:

  1. dequeue: first pending batch, else first failed batch with attempts left
  2. mark processing (attempt += 1), persist
  3. upload → wait_for_completion → export (bounded readiness polling)
  4. mark completed / failed, persist
  5. between batches: reset the engine session, inter-batch delay

First-pass batches therefore complete in id order, and retries of failed
batches only happen after every pending batch was tried once.

A run stops early on cancellation (after the in-flight batch), on
``consecutive_failure_threshold`` failures in a row (circuit breaker), or
on the first failure in strict mode.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import shutil
import time
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from mirbatch.core.errors import (
    AnalysisErrorStateDetected,
    AnalysisTimeoutError,
    BatchProcessingError,
    CircuitBreakerTripped,
    ExportError,
    StrictModeAbort,
    UploadError,
)
from mirbatch.logging.context import set_batch_context, set_stage
from mirbatch.orchestrator.models import BatchAttempt, OrchestrationResult
from mirbatch.tracking.progress import build_progress, format_progress_line

if TYPE_CHECKING:
    from mirbatch.batch.models import Batch, ProcessingState
    from mirbatch.batch.state_store import BaseStateStore
    from mirbatch.config.settings import Settings
    from mirbatch.engine.base_driver import BaseAnalysisDriver
    from mirbatch.engine.models import UploadResult

logger = logging.getLogger(__name__)

INCOMING_DIRNAME = ".incoming"

# Extra time granted on top of the driver's own completion timeout.
_WAIT_GRACE_S = 10.0

# Artifact row count outside this share of the batch size is suspicious.
_ROW_COUNT_TOLERANCE = (0.8, 1.2)


def artifact_filename(batch_id: int, export_name: str) -> str:
    """Name under which a batch export is stored: batch_<id:03d>_<name>."""
    return f"batch_{batch_id:03d}_{export_name}"


class BatchOrchestrator:
    """Sequential state machine over the batches of one ProcessingState.

    Args:
        settings: Application settings (timeouts, thresholds, delays).
        driver: Analysis engine driver, exclusively owned for the run.
        state_store: Where state is persisted after every batch transition.
        cancel_event: Set externally to stop dequeuing further batches.
        sleep: Awaitable used between export readiness checks.
    """

    def __init__(
        self,
        settings: Settings,
        driver: BaseAnalysisDriver,
        state_store: BaseStateStore,
        cancel_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._sleep = sleep
        self._driver = driver
        self._state_store = state_store
        self._cancel_event = cancel_event or asyncio.Event()
        self._export_dir = Path(settings.export_dir)

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    def cancel(self) -> None:
        """Stop after the in-flight batch; safe to call from a signal handler."""
        self._cancel_event.set()

    async def run(self, state: ProcessingState) -> OrchestrationResult:
        """Process every eligible batch of state.

        Returns:
            OrchestrationResult for a drained queue or a cancelled run.

        Raises:
            CircuitBreakerTripped: Consecutive failures reached the threshold
                while batches were still queued.
            StrictModeAbort: A batch failed while strict mode is on.
        """
        t0 = time.monotonic()
        result = OrchestrationResult()

        recovered = state.recover_interrupted()
        if recovered:
            logger.warning("Recovered interrupted batches as failed: %s", recovered)
            result.recovered_batches = recovered
            await self._state_store.save(state)

        if not state.batches:
            logger.info("No batches to process")
            return self._finalize(result, state, t0)

        threshold = self._settings.consecutive_failure_threshold
        consecutive_failures = 0

        while not self._cancelled():
            batch = state.next_eligible_batch()
            if batch is None:
                break

            ok = await self._process_batch(state, batch, result)

            if ok:
                consecutive_failures = 0
            else:
                consecutive_failures += 1
                if self._settings.strict_mode:
                    result.aborted_reason = "strict_mode"
                    self._finalize(result, state, t0)
                    raise StrictModeAbort(batch.id, batch.error or "", result)
                if (
                    consecutive_failures >= threshold
                    and state.next_eligible_batch() is not None
                ):
                    result.aborted_reason = "circuit_breaker"
                    self._finalize(result, state, t0)
                    logger.error(
                        "Too many consecutive failures (%d), stopping run",
                        consecutive_failures,
                    )
                    raise CircuitBreakerTripped(consecutive_failures, threshold, result)

            if state.next_eligible_batch() is not None:
                await self._between_batches()

        if self._cancelled():
            result.cancelled = True
            logger.warning("Run cancelled; remaining batches left for resume")

        return self._finalize(result, state, t0)

    # ------------------------------------------------------------------
    # Single batch
    # ------------------------------------------------------------------

    async def _process_batch(
        self,
        state: ProcessingState,
        batch: Batch,
        result: OrchestrationResult,
    ) -> bool:
        """Run one upload/wait/export cycle. Returns True on completion."""
        set_batch_context(batch.id, "start")
        state.mark_batch_started(batch.id)
        await self._state_store.save(state)
        logger.info(
            "Processing batch %d/%d (%d files, attempt %d/%d)",
            batch.id, len(state.batches), len(batch.files),
            batch.attempts, batch.max_attempts,
        )

        try:
            set_stage("upload")
            upload = await self._upload(batch)
            batch.uploaded_count = upload.uploaded_count
            batch.skipped_count = upload.skipped_count
            result.files_skipped += upload.skipped_count
            if upload.skipped_count:
                logger.warning("Engine skipped %d files", upload.skipped_count)

            set_stage("analysis")
            await self._wait_for_analysis()

            set_stage("export")
            artifact = await self._export(batch)
            if artifact is None and self._settings.fail_batch_on_missing_export:
                raise ExportError("export artifact missing")

        except BatchProcessingError as e:
            state.mark_batch_failed(batch.id, str(e))
            await self._state_store.save(state)
            logger.error("Batch %d failed: %s", batch.id, e)
            result.attempts.append(self._attempt(batch, "failed"))
            set_batch_context(None)
            return False

        state.mark_batch_completed(batch.id, str(artifact) if artifact else None)
        await self._state_store.save(state)
        result.completion_order.append(batch.id)
        result.attempts.append(self._attempt(batch, "completed"))
        logger.info(format_progress_line(build_progress(state)))
        set_batch_context(None)
        return True

    async def _upload(self, batch: Batch) -> UploadResult:
        timeout = self._settings.upload_timeout_s
        try:
            upload = await asyncio.wait_for(
                self._driver.upload(list(batch.files)), timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise UploadError(f"upload timed out after {timeout:.0f}s") from e
        except BatchProcessingError:
            raise
        except Exception as e:
            raise UploadError(f"upload failed: {e}") from e

        if not upload.success:
            raise UploadError(f"upload failed: {upload.error or 'unknown error'}")
        if upload.uploaded_count <= 0:
            raise UploadError("no files were uploaded successfully")
        logger.info("Uploaded %d files", upload.uploaded_count)
        return upload

    async def _wait_for_analysis(self) -> None:
        timeout = self._settings.analysis_timeout_s
        try:
            completed = await asyncio.wait_for(
                self._driver.wait_for_completion(timeout),
                timeout=timeout + _WAIT_GRACE_S,
            )
        except asyncio.TimeoutError:
            completed = False
        except BatchProcessingError:
            raise
        except Exception as e:
            raise AnalysisErrorStateDetected(f"analysis error state: {e}") from e

        if not completed:
            raise AnalysisTimeoutError(
                f"analysis did not complete within {timeout:.0f}s"
            )
        logger.info("Analysis completed")

    async def _export(self, batch: Batch) -> Path | None:
        """Poll readiness and export within a bounded budget.

        Returns the stored artifact path, or None if export never became
        available (the batch still completes unless configured otherwise).
        """
        checks = self._settings.export_ready_checks
        interval = self._settings.export_ready_interval_s
        timeout = self._settings.export_timeout_s
        incoming = self._export_dir / INCOMING_DIRNAME

        for check in range(1, checks + 1):
            try:
                ready = await asyncio.wait_for(
                    self._driver.is_export_ready(), timeout=timeout,
                )
                if ready:
                    incoming.mkdir(parents=True, exist_ok=True)
                    exported = await asyncio.wait_for(
                        self._driver.export_results(incoming), timeout=timeout,
                    )
                    if exported.success and exported.file_path:
                        return self._store_artifact(batch, Path(exported.file_path))
                    logger.warning(
                        "Export attempt %d/%d failed: %s",
                        check, checks, exported.error or "no file produced",
                    )
                else:
                    logger.debug("Export not ready (check %d/%d)", check, checks)
            except asyncio.TimeoutError:
                logger.warning("Export check %d/%d timed out", check, checks)
            except ExportError as e:
                logger.warning("Export check %d/%d: %s", check, checks, e)
            except BatchProcessingError:
                raise
            except Exception as e:
                logger.warning("Export check %d/%d raised: %s", check, checks, e)

            if check < checks and interval > 0:
                await self._sleep(interval)

        logger.warning(
            "Export not available for batch %d after %d checks; "
            "completing without an artifact",
            batch.id, checks,
        )
        return None

    def _store_artifact(self, batch: Batch, exported: Path) -> Path:
        """Move the engine's export under its batch-tagged name."""
        if not exported.is_file():
            raise ExportError(f"export file not found: {exported}")

        self._export_dir.mkdir(parents=True, exist_ok=True)
        target = self._export_dir / artifact_filename(batch.id, exported.name)
        shutil.move(str(exported), str(target))
        logger.info("Stored export artifact %s", target.name)
        self._check_artifact_rows(target, len(batch.files))
        return target

    @staticmethod
    def _check_artifact_rows(path: Path, expected: int) -> None:
        """Warn when the artifact row count is far from the batch size."""
        try:
            with path.open(newline="", encoding="utf-8") as f:
                rows = sum(1 for row in csv.reader(f) if any(cell.strip() for cell in row))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.warning("Cannot inspect artifact %s: %s", path.name, e)
            return

        data_rows = max(rows - 1, 0)
        low, high = _ROW_COUNT_TOLERANCE
        if data_rows == 0:
            logger.warning("Artifact %s has no data rows", path.name)
        elif not (expected * low <= data_rows <= expected * high):
            logger.warning(
                "Artifact %s row count looks off: %d rows, expected ~%d",
                path.name, data_rows, expected,
            )

    # ------------------------------------------------------------------
    # Between batches
    # ------------------------------------------------------------------

    async def _between_batches(self) -> None:
        """Reset the engine session, then wait the inter-batch delay."""
        set_batch_context(None, "maintenance")
        try:
            await asyncio.wait_for(
                self._driver.reset_session(), timeout=self._settings.export_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("Session reset timed out")
        except Exception as e:
            logger.warning("Session reset failed: %s", e)

        delay = self._settings.inter_batch_delay_s
        if delay > 0 and not self._cancelled():
            logger.debug("Waiting %.1fs between batches", delay)
            try:
                await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        set_stage(None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @staticmethod
    def _attempt(batch: Batch, outcome: str) -> BatchAttempt:
        return BatchAttempt(
            batch_id=batch.id,
            attempt=batch.attempts,
            outcome=outcome,  # type: ignore[arg-type]
            error=batch.error,
            artifact_path=batch.artifact_path,
            started_at=batch.start_time,
            finished_at=batch.end_time,
        )

    @staticmethod
    def _finalize(
        result: OrchestrationResult,
        state: ProcessingState,
        t0: float,
    ) -> OrchestrationResult:
        counts = state.count_by_status()
        result.batches_total = len(state.batches)
        result.batches_completed = counts["completed"]
        result.batches_failed = counts["failed"]
        result.batches_pending = counts["pending"] + counts["processing"]
        result.files_total = state.total_files
        result.files_processed = state.processed_count
        result.files_failed = state.failed_count
        result.artifacts = [
            b.artifact_path for b in state.batches
            if b.status == "completed" and b.artifact_path
        ]
        result.batches_missing_export = [
            b.id for b in state.batches if b.status == "completed" and b.export_missing
        ]
        result.duration_seconds = round(time.monotonic() - t0, 2)
        return result
