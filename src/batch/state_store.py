# src/batch/state_store.py — v1
"""Progress state store — durable, resumable ProcessingState persistence.

Single-writer: one orchestrator owns the state file for a run. No
cross-process locking is attempted.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from mirbatch.batch.models import ProcessingState
from mirbatch.core.errors import StateStoreError

logger = logging.getLogger(__name__)


class BaseStateStore(ABC):
    """Unified interface for progress state backends."""

    @abstractmethod
    async def save(self, state: ProcessingState) -> None:
        """Persist state atomically."""

    @abstractmethod
    async def load(self) -> ProcessingState | None:
        """Return the persisted state, or None if nothing was saved."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all persisted state."""

    @abstractmethod
    async def exists(self) -> bool:
        """True if a persisted state is available."""


class JsonStateStore(BaseStateStore):
    """State store backed by one JSON document on the local filesystem.

    save() writes a sibling temp file and swaps it in with os.replace, so
    a crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    async def save(self, state: ProcessingState) -> None:
        state.saved_at = datetime.now(timezone.utc)
        payload = state.model_dump_json(indent=2)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StateStoreError(f"Failed to save state to {self._path}: {e}") from e

    async def load(self) -> ProcessingState | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return ProcessingState.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StateStoreError(f"Failed to load state from {self._path}: {e}") from e

    async def clear(self) -> None:
        for path in (self._path, self._path.with_name(f"{self._path.name}.tmp")):
            if path.exists():
                path.unlink()
        logger.info("Cleared processing state at %s", self._path)

    async def exists(self) -> bool:
        return self._path.exists()
