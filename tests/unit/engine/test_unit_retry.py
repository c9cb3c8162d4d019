# tests/unit/engine/test_unit_retry.py — v1
"""Tests for engine/retry.py — driver-layer retry with backoff."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from mirbatch.engine.models import ExportResult, UploadResult
from mirbatch.engine.retry import RetryConfig, RetryingDriver, compute_delay, with_retry


class _Sleeps:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestComputeDelay:
    def test_exponential_without_jitter(self):
        config = RetryConfig(base_delay_s=1.0, backoff_factor=2.0, jitter=False)
        assert [compute_delay(config, i) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_jitter_bounds(self):
        config = RetryConfig(base_delay_s=2.0, jitter=True)
        for _ in range(50):
            assert 1.0 <= compute_delay(config, 0) <= 3.0


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_no_retries_by_default(self):
        fn = AsyncMock(side_effect=RuntimeError("down"))
        with pytest.raises(RuntimeError):
            await with_retry(fn, RetryConfig(), operation="upload", sleep=_Sleeps())
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_exceptions_then_succeeds(self):
        fn = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])
        sleeps = _Sleeps()
        config = RetryConfig(max_retries=2, base_delay_s=1.0, jitter=False)
        assert await with_retry(fn, config, operation="x", sleep=sleeps) == "ok"
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_unsuccessful_result_returned_after_budget(self):
        failed = UploadResult(success=False, error="busy")
        fn = AsyncMock(return_value=failed)
        config = RetryConfig(max_retries=2, jitter=False)
        result = await with_retry(
            fn, config, operation="upload",
            is_failure=lambda r: not r.success, sleep=_Sleeps(),
        )
        assert result is failed
        assert fn.await_count == 3


class TestRetryingDriver:
    @pytest.mark.asyncio
    async def test_upload_resets_session_between_attempts(self):
        inner = AsyncMock()
        inner.upload.side_effect = [
            UploadResult(success=False, error="stuck"),
            UploadResult(success=True, uploaded_count=3),
        ]
        driver = RetryingDriver(inner, RetryConfig(max_retries=1, jitter=False), sleep=_Sleeps())
        result = await driver.upload(["a", "b", "c"])
        assert result.uploaded_count == 3
        assert inner.upload.await_count == 2
        assert inner.reset_session.await_count == 1

    @pytest.mark.asyncio
    async def test_export_retried(self, tmp_path):
        inner = AsyncMock()
        inner.export_results.side_effect = [
            ExportResult(success=False, error="no download"),
            ExportResult(success=True, file_path=str(tmp_path / "r.csv")),
        ]
        driver = RetryingDriver(inner, RetryConfig(max_retries=3, jitter=False), sleep=_Sleeps())
        assert (await driver.export_results(tmp_path)).success is True
        assert inner.export_results.await_count == 2

    @pytest.mark.asyncio
    async def test_wait_is_not_retried(self):
        inner = AsyncMock()
        inner.wait_for_completion.return_value = False
        driver = RetryingDriver(inner, RetryConfig(max_retries=3), sleep=_Sleeps())
        assert await driver.wait_for_completion(5.0) is False
        assert inner.wait_for_completion.await_count == 1

    @pytest.mark.asyncio
    async def test_lifecycle_delegates(self, scripted_driver):
        inner = scripted_driver()
        async with RetryingDriver(inner, RetryConfig()) as driver:
            assert driver.name == "Retrying(ScriptedDriver)"
        assert inner.opened and inner.closed
