# src/engine/base_driver.py — v1
"""Abstract analysis engine driver interface.

The analysis engine (browser-hosted feature extraction and inference) is
an external collaborator. The orchestrator only sees this capability;
concrete drivers own launching, DOM interaction and downloads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from mirbatch.engine.models import ExportResult, UploadResult


class BaseAnalysisDriver(ABC):
    """Unified interface for analysis engine drivers.

    One instance owns one engine session and is used by a single
    orchestrator, one batch at a time.
    """

    @abstractmethod
    async def upload(self, files: list[str]) -> UploadResult:
        """Upload a batch of audio files for analysis."""

    @abstractmethod
    async def wait_for_completion(self, timeout_s: float) -> bool:
        """Block until analysis finishes.

        Returns False on timeout; may raise AnalysisErrorStateDetected
        when the engine reports an error state.
        """

    @abstractmethod
    async def is_export_ready(self) -> bool:
        """Whether the CSV export can be requested now."""

    @abstractmethod
    async def export_results(self, destination_dir: Path) -> ExportResult:
        """Write the CSV export into destination_dir."""

    @abstractmethod
    async def reset_session(self) -> None:
        """Return the engine to a clean baseline. Must be idempotent."""

    async def open(self) -> None:
        """Acquire the engine session (optional)."""

    async def close(self) -> None:
        """Release the engine session (optional)."""

    async def __aenter__(self) -> BaseAnalysisDriver:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def name(self) -> str:
        return type(self).__name__
