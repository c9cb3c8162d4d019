# src/logging/context.py — v1
"""Contextual logging support — attach run_id, batch_id, stage to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging — set per run and per batch.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_batch_id: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "batch_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    batch_id: int | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        batch_id=_batch_id.get(),
        stage=_stage.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per workflow run)."""
    _run_id.set(run_id)


def set_batch_context(batch_id: int | None, stage: str | None = None) -> None:
    """Set batch-level context (called per batch and per stage)."""
    _batch_id.set(batch_id)
    _stage.set(stage)


def set_stage(stage: str | None) -> None:
    """Update only the stage, keeping the current batch."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _batch_id.set(None)
    _stage.set(None)
