# src/batch/planner.py — v1
"""Batch planner — partition a discovered file list into fixed-size batches."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence

from mirbatch.batch.models import Batch, ProcessingState
from mirbatch.discovery.models import AudioFileRef

logger = logging.getLogger(__name__)


def plan_batches(
    files: Sequence[AudioFileRef | str],
    batch_size: int,
    max_attempts: int = 3,
) -> list[Batch]:
    """Split files into contiguous batches of at most batch_size.

    Discovery order is preserved, ids are 1-based in creation order, and
    concatenating batch files in id order reproduces the input exactly.

    Raises:
        ValueError: If batch_size or max_attempts is < 1.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    paths = [f.path if isinstance(f, AudioFileRef) else str(f) for f in files]
    batches = [
        Batch(id=index + 1, files=paths[start:start + batch_size], max_attempts=max_attempts)
        for index, start in enumerate(range(0, len(paths), batch_size))
    ]
    logger.info(
        "Planned %d batches for %d files (batch size %d)",
        len(batches), len(paths), batch_size,
    )
    return batches


def build_state(
    files: Sequence[AudioFileRef | str],
    batch_size: int,
    max_attempts: int = 3,
) -> ProcessingState:
    """Create a fresh ProcessingState for a planned run."""
    batches = plan_batches(files, batch_size, max_attempts)
    paths = [f for b in batches for f in b.files]
    return ProcessingState(
        total_files=len(paths),
        batches=batches,
        fingerprint=collection_fingerprint(paths, batch_size),
    )


def collection_fingerprint(paths: Sequence[str], batch_size: int) -> str:
    """Stable hash of the planned file list, used to detect resume mismatches."""
    digest = hashlib.sha256()
    digest.update(f"batch_size={batch_size}\n".encode())
    for path in paths:
        digest.update(path.encode("utf-8", errors="surrogateescape"))
        digest.update(b"\n")
    return digest.hexdigest()[:16]
