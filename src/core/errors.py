# src/core/errors.py — v1
"""Exception hierarchy shared by discovery, orchestration, state and merge.

Propagation policy:
  - file- and batch-level errors are absorbed by the orchestrator and
    recorded on the Batch / report structures;
  - InvalidRootError, RunAbortedError subclasses and MergeVerificationError
    terminate the run and reach the CLI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


class MirBatchError(Exception):
    """Base class for all mirbatch errors."""


# === Discovery ===


class DiscoveryError(MirBatchError):
    """File discovery could not start."""


class InvalidRootError(DiscoveryError):
    """Scan root does not exist or is not a directory."""

    def __init__(self, root: Path, reason: str) -> None:
        self.root = root
        self.reason = reason
        super().__init__(f"Invalid scan root {root}: {reason}")


# === Batch processing (absorbed into the retry path) ===


class BatchProcessingError(MirBatchError):
    """A single batch cycle failed; the batch is marked failed."""


class UploadError(BatchProcessingError):
    """The analysis engine rejected or failed the batch upload."""


class AnalysisTimeoutError(BatchProcessingError):
    """Analysis did not complete within the configured timeout."""


class AnalysisErrorStateDetected(BatchProcessingError):
    """The analysis engine reported an error state while processing."""


class ExportError(BatchProcessingError):
    """Export artifact could not be produced or stored."""


# === Run-level aborts ===


class RunAbortedError(MirBatchError):
    """The orchestrator stopped before the queue was drained.

    Carries the partial orchestration result so callers can still report.
    """

    def __init__(self, message: str, result: Any = None) -> None:
        self.result = result
        super().__init__(message)


class CircuitBreakerTripped(RunAbortedError):
    """Too many consecutive batch failures."""

    def __init__(self, failures: int, threshold: int, result: Any = None) -> None:
        self.failures = failures
        self.threshold = threshold
        super().__init__(
            f"Circuit breaker tripped after {failures} consecutive batch failures "
            f"(threshold {threshold})",
            result,
        )


class StrictModeAbort(RunAbortedError):
    """A batch failed while strict mode was enabled."""

    def __init__(self, batch_id: int, error: str, result: Any = None) -> None:
        self.batch_id = batch_id
        self.error = error
        super().__init__(f"Batch {batch_id} failed in strict mode: {error}", result)


# === State and configuration ===


class StateStoreError(MirBatchError):
    """Persisted progress state exists but cannot be read or written."""


class DriverConfigurationError(MirBatchError):
    """The analysis engine driver cannot be resolved or instantiated."""


# === Merge ===


class MergeError(MirBatchError):
    """Base class for merge failures."""


class NoArtifactsError(MergeError):
    """No usable batch artifacts (or rows) were found to merge."""


class SchemaValidationError(MergeError):
    """A batch artifact header lacks required columns."""

    def __init__(self, path: Path, missing: list[str]) -> None:
        self.path = path
        self.missing = missing
        super().__init__(f"{path.name}: missing required columns: {', '.join(missing)}")


class CorruptArtifactError(MergeError):
    """A batch artifact is empty or cannot be parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path.name}: {reason}")


class MergeVerificationError(MergeError):
    """The written output file failed re-read verification."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Output verification failed for {path.name}: {reason}")
