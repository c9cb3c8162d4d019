# src/discovery/scanner.py — v1
"""File scanner — audio discovery, validation and statistics.

Walks a root directory in sorted order, prunes excluded names, and keeps
files whose extension is supported and whose size lies within
[min_file_size, max_file_size]. Rejections are logged and recorded but
never abort the scan.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING

from mirbatch.core.errors import InvalidRootError
from mirbatch.discovery.models import (
    AudioFileRef,
    DiscoveryResult,
    DiscoveryStatistics,
    FormatShare,
    RejectedFile,
)

if TYPE_CHECKING:
    from mirbatch.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_FORMATS = [".mp3", ".wav", ".flac", ".ogg", ".m4a", ".aac"]
DEFAULT_EXCLUDES = [".*", "node_modules", "temp", "tmp", "__pycache__", "build"]

# Number of individual rejections echoed to the log before summarizing.
_MAX_LOGGED_REJECTIONS = 10


class FileScanner:
    """Discover supported audio files beneath a root directory.

    Workflow:
        1. Walk the tree (recursive if enabled), pruning excluded names
        2. Keep files with a supported extension
        3. Validate size bounds and readability
        4. Return DiscoveryResult with statistics
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        supported_formats: list[str] | None = None,
        exclude_patterns: list[str] | None = None,
        min_file_size: int | None = None,
        max_file_size: int | None = None,
        recursive: bool | None = None,
    ) -> None:
        self._formats = set(
            supported_formats
            or (settings.supported_formats_list if settings else DEFAULT_FORMATS)
        )
        self._excludes = (
            exclude_patterns
            if exclude_patterns is not None
            else (settings.exclude_patterns_list if settings else DEFAULT_EXCLUDES)
        )
        self._min_size = (
            min_file_size if min_file_size is not None
            else (settings.min_file_size if settings else 1024)
        )
        self._max_size = (
            max_file_size if max_file_size is not None
            else (settings.max_file_size if settings else 104_857_600)
        )
        self._recursive = (
            recursive if recursive is not None
            else (settings.scan_recursive if settings else True)
        )

    def discover(self, root: Path | str) -> DiscoveryResult:
        """Scan root and return accepted files plus rejection records.

        Raises:
            InvalidRootError: If root does not exist or is not a directory.
        """
        scan_root = Path(root)
        if not scan_root.exists():
            raise InvalidRootError(scan_root, "directory does not exist")
        if not scan_root.is_dir():
            raise InvalidRootError(scan_root, "path is not a directory")

        files: list[AudioFileRef] = []
        rejected: list[RejectedFile] = []

        for path in self._candidates(scan_root):
            ext = path.suffix.lower()
            reason = self._check(path)
            if reason is not None:
                rejected.append(RejectedFile(path=str(path), reason=reason))
                continue
            files.append(
                AudioFileRef(path=str(path), size_bytes=path.stat().st_size, format=ext)
            )

        self._log_rejections(rejected)
        statistics = compute_statistics(files)
        logger.info(
            "Scanned %s: %d audio files accepted (%s), %d rejected",
            scan_root, len(files), statistics.total_size_formatted, len(rejected),
        )
        return DiscoveryResult(
            root=str(scan_root), files=files, rejected=rejected, statistics=statistics,
        )

    def is_excluded(self, name: str) -> bool:
        """True if a file or directory name matches an exclusion pattern."""
        return any(fnmatch.fnmatch(name, pattern) for pattern in self._excludes)

    def _candidates(self, scan_root: Path) -> list[Path]:
        """Supported-extension files under scan_root, in sorted order."""
        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(scan_root):
            # Prune in place so excluded subtrees are never visited.
            dirnames[:] = sorted(d for d in dirnames if not self.is_excluded(d))
            if not self._recursive:
                dirnames[:] = []
            for name in filenames:
                if self.is_excluded(name):
                    continue
                if Path(name).suffix.lower() in self._formats:
                    found.append(Path(dirpath) / name)
        return sorted(found)

    def _check(self, path: Path) -> str | None:
        """Return a rejection reason, or None if the file is acceptable."""
        try:
            size = path.stat().st_size
        except OSError as e:
            return f"cannot stat file: {e}"
        if size < self._min_size:
            return f"file too small ({size} bytes)"
        if size > self._max_size:
            return f"file too large ({size} bytes)"
        if not os.access(path, os.R_OK):
            return "file is not readable"
        return None

    @staticmethod
    def _log_rejections(rejected: list[RejectedFile]) -> None:
        if not rejected:
            return
        logger.warning("Validation warnings (%d files excluded)", len(rejected))
        for item in rejected[:_MAX_LOGGED_REJECTIONS]:
            logger.warning("  %s: %s", item.path, item.reason)
        if len(rejected) > _MAX_LOGGED_REJECTIONS:
            logger.warning("  ... and %d more", len(rejected) - _MAX_LOGGED_REJECTIONS)


def compute_statistics(files: list[AudioFileRef]) -> DiscoveryStatistics:
    """Per-format counts, percentages and total size."""
    if not files:
        return DiscoveryStatistics()

    total_size = sum(f.size_bytes for f in files)
    counts = Counter(f.format for f in files)
    breakdown = [
        FormatShare(
            format=fmt,
            count=count,
            percentage=round(count / len(files) * 100, 1),
        )
        for fmt, count in sorted(counts.items())
    ]
    return DiscoveryStatistics(
        total_files=len(files),
        total_size_bytes=total_size,
        total_size_formatted=format_bytes(total_size),
        format_breakdown=breakdown,
    )


def format_bytes(num_bytes: int) -> str:
    """Human-readable size, e.g. 1536 -> '1.5 KB'."""
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    i = 0
    while i < len(units) - 1 and num_bytes >= 1024 ** (i + 1):
        i += 1
    value = round(num_bytes / (1024**i), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[i]}"
