# src/engine/retry.py — v1
"""Driver-layer retry policy with exponential backoff.

This layer owns retries of individual driver calls (upload, export).
Whole-batch retries belong to the orchestrator (batch_max_attempts) and
merge retries to the workflow (merge_max_attempts); the budgets are
configured independently so they never compound silently.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from mirbatch.engine.base_driver import BaseAnalysisDriver
from mirbatch.engine.models import ExportResult, UploadResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for driver calls."""

    max_retries: int = 0
    base_delay_s: float = 5.0
    backoff_factor: float = 2.0
    jitter: bool = True


def compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given retry (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[[], Awaitable[Any]],
    config: RetryConfig,
    *,
    operation: str,
    is_failure: Callable[[Any], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """Call fn until it succeeds or the retry budget is spent.

    A call counts as failed if it raises, or if is_failure(result) is
    true. After the last retry the final exception is re-raised, or the
    final unsuccessful result is returned unchanged.
    """
    retries = 0
    while True:
        try:
            result = await fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if retries >= config.max_retries:
                raise
            reason: str = str(e)
        else:
            if is_failure is None or not is_failure(result) or retries >= config.max_retries:
                return result
            reason = getattr(result, "error", None) or "unsuccessful result"

        delay = compute_delay(config, retries)
        retries += 1
        logger.warning(
            "Driver %s failed (%s), retry %d/%d in %.1fs",
            operation, reason, retries, config.max_retries, delay,
        )
        await sleep(delay)


class RetryingDriver(BaseAnalysisDriver):
    """Wrap a driver so upload and export get the driver-layer retry budget."""

    def __init__(
        self,
        inner: BaseAnalysisDriver,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._inner = inner
        self._config = config
        self._sleep = sleep

    @property
    def inner(self) -> BaseAnalysisDriver:
        return self._inner

    @property
    def name(self) -> str:
        return f"Retrying({self._inner.name})"

    async def upload(self, files: list[str]) -> UploadResult:
        calls = 0

        async def _call() -> UploadResult:
            nonlocal calls
            # A half-finished upload leaves files selected in the engine.
            if calls:
                await self._inner.reset_session()
            calls += 1
            return await self._inner.upload(files)

        return await with_retry(
            _call, self._config, operation="upload",
            is_failure=lambda r: not r.success, sleep=self._sleep,
        )

    async def wait_for_completion(self, timeout_s: float) -> bool:
        return await self._inner.wait_for_completion(timeout_s)

    async def is_export_ready(self) -> bool:
        return await self._inner.is_export_ready()

    async def export_results(self, destination_dir: Path) -> ExportResult:
        return await with_retry(
            lambda: self._inner.export_results(destination_dir),
            self._config, operation="export",
            is_failure=lambda r: not r.success, sleep=self._sleep,
        )

    async def reset_session(self) -> None:
        await self._inner.reset_session()

    async def open(self) -> None:
        await self._inner.open()

    async def close(self) -> None:
        await self._inner.close()
