# src/workflow/coordinator.py — v2
"""Workflow coordinator — discover → plan/resume → orchestrate → merge → report.

A run report is written for every run that got past discovery, including
aborted ones; abort exceptions are re-raised once it is on disk.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

from mirbatch.batch.models import ProcessingState
from mirbatch.batch.planner import build_state, collection_fingerprint
from mirbatch.batch.state_store import BaseStateStore, JsonStateStore
from mirbatch.config.settings import Settings
from mirbatch.core.errors import MergeVerificationError, NoArtifactsError, RunAbortedError
from mirbatch.discovery.models import DiscoveryResult
from mirbatch.discovery.scanner import FileScanner
from mirbatch.engine.base_driver import BaseAnalysisDriver
from mirbatch.logging.context import clear_context, set_run_context
from mirbatch.merge.engine import CsvMergeEngine, find_batch_artifacts, merge_with_retry
from mirbatch.merge.models import MergeOptions, MergeResult
from mirbatch.orchestrator.orchestrator import BatchOrchestrator
from mirbatch.tracking.models import WorkflowReport
from mirbatch.tracking.report import export_report_json

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


class WorkflowCoordinator:
    """Sequence discovery, batch processing and merge for one directory.

    Args:
        settings: Application settings.
        driver: Analysis engine driver; opened and closed around processing.
        state_store: Durable progress store (defaults to JSON at STATE_FILE).
        scanner: File scanner (defaults to one built from settings).
        merge_engine: Merge engine (defaults to one built from settings).
        cancel_event: Shared cancellation flag, e.g. set by signal handlers.
    """

    def __init__(
        self,
        settings: Settings,
        driver: BaseAnalysisDriver,
        state_store: BaseStateStore | None = None,
        scanner: FileScanner | None = None,
        merge_engine: CsvMergeEngine | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._settings = settings
        self._driver = driver
        self._state_store = state_store or JsonStateStore(settings.state_file)
        self._scanner = scanner or FileScanner(settings)
        self._merge_engine = merge_engine or CsvMergeEngine(MergeOptions.from_settings(settings))
        self._cancel_event = cancel_event or asyncio.Event()

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    async def run(
        self,
        root: Path | str,
        resume: bool = True,
        batch_size: int | None = None,
        auto_merge: bool | None = None,
    ) -> WorkflowReport:
        """Run the full pipeline over root.

        Raises:
            InvalidRootError: root is missing or not a directory.
            RunAbortedError: Circuit breaker or strict mode stopped the run.
            MergeVerificationError: The merged output failed verification.
        """
        run_id = new_run_id()
        set_run_context(run_id)
        t0 = time.monotonic()
        report = WorkflowReport(
            run_id=run_id,
            root=str(root),
            status="completed",
            started_at=datetime.now(timezone.utc),
        )
        try:
            return await self._run(report, root, resume, batch_size, auto_merge, t0)
        finally:
            clear_context()

    async def _run(
        self,
        report: WorkflowReport,
        root: Path | str,
        resume: bool,
        batch_size: int | None,
        auto_merge: bool | None,
        t0: float,
    ) -> WorkflowReport:
        logger.info("Starting run %s on %s", report.run_id, root)
        discovery = self._scanner.discover(root)
        report.discovery = discovery.statistics
        report.rejected_files = discovery.rejected

        if not discovery.files:
            logger.warning("No supported audio files found in %s", root)
            report.status = "empty"
            return self._finish(report, t0)

        size = batch_size or self._settings.batch_size
        state, report.resumed = await self._load_or_plan(discovery, size, resume)

        orchestrator = BatchOrchestrator(
            self._settings, self._driver, self._state_store, self._cancel_event,
        )
        try:
            async with self._driver:
                report.orchestration = await orchestrator.run(state)
        except RunAbortedError as e:
            report.status = "aborted"
            report.orchestration = e.result
            report.error = str(e)
            self._finish(report, t0)
            raise

        orch = report.orchestration
        if orch.cancelled:
            report.status = "cancelled"
            return self._finish(report, t0)
        report.status = "completed" if orch.success else "partial"

        merge_enabled = self._settings.auto_merge if auto_merge is None else auto_merge
        if merge_enabled:
            try:
                merged = await self._merge()
                report.merge = merged.report
            except NoArtifactsError as e:
                logger.warning("Nothing to merge: %s", e)
                report.merge_error = str(e)
            except MergeVerificationError as e:
                report.status = "failed"
                report.merge_error = str(e)
                self._finish(report, t0)
                raise

        return self._finish(report, t0)

    async def _load_or_plan(
        self,
        discovery: DiscoveryResult,
        batch_size: int,
        resume: bool,
    ) -> tuple[ProcessingState, bool]:
        """Resume persisted progress when it matches the discovered set."""
        if resume:
            state = await self._state_store.load()
            if state is not None:
                expected = collection_fingerprint(discovery.file_paths, batch_size)
                if state.fingerprint == expected:
                    counts = state.count_by_status()
                    logger.info(
                        "Resuming: %d/%d files processed, %d batches pending, %d failed",
                        state.processed_count, state.total_files,
                        counts["pending"] + counts["processing"], counts["failed"],
                    )
                    return state, True
                logger.warning(
                    "Saved progress does not match the discovered files; starting fresh"
                )

        stale = find_batch_artifacts(self._settings.export_dir)
        if stale:
            logger.warning(
                "Starting a fresh plan with %d batch files already in %s; "
                "they will be merged with this run's output unless removed",
                len(stale), self._settings.export_dir,
            )

        state = build_state(
            discovery.files, batch_size, self._settings.batch_max_attempts,
        )
        await self._state_store.save(state)
        return state, False

    async def _merge(self) -> MergeResult:
        return await merge_with_retry(
            self._merge_engine,
            self._settings.export_dir,
            self._settings.results_dir,
            max_attempts=self._settings.merge_max_attempts,
            delay_s=self._settings.merge_retry_delay_s,
        )

    def _finish(self, report: WorkflowReport, t0: float) -> WorkflowReport:
        report.finished_at = datetime.now(timezone.utc)
        report.duration_seconds = round(time.monotonic() - t0, 2)
        export_report_json(report, Path(self._settings.report_dir))
        logger.info("Run %s finished: %s", report.run_id, report.status)
        return report


async def run_merge_only(
    settings: Settings,
    input_dir: Path | str | None = None,
    output_dir: Path | str | None = None,
    duplicate_strategy: str | None = None,
    cleanup: bool | None = None,
) -> MergeResult:
    """Merge existing batch artifacts without processing anything.

    Raises:
        NoArtifactsError: No valid artifacts in input_dir.
        MergeVerificationError: The merged output failed verification.
    """
    source = Path(input_dir or settings.export_dir)
    options = MergeOptions.from_settings(
        settings,
        duplicate_strategy=duplicate_strategy,
        cleanup_batch_files=cleanup,
    )
    return await merge_with_retry(
        CsvMergeEngine(options),
        source,
        output_dir or settings.results_dir,
        max_attempts=settings.merge_max_attempts,
        delay_s=settings.merge_retry_delay_s,
    )
