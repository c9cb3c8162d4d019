# src/discovery/models.py — v1
"""Discovery models: AudioFileRef, RejectedFile, DiscoveryStatistics, DiscoveryResult."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AudioFileRef(BaseModel):
    """A single audio file accepted by discovery. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    path: str
    size_bytes: int
    format: str


class RejectedFile(BaseModel):
    """A candidate file excluded by size, format or access checks."""

    path: str
    reason: str


class FormatShare(BaseModel):
    """Per-format count and share of the accepted files."""

    format: str
    count: int
    percentage: float


class DiscoveryStatistics(BaseModel):
    """Informational aggregate over the accepted files."""

    total_files: int = 0
    total_size_bytes: int = 0
    total_size_formatted: str = "0 Bytes"
    format_breakdown: list[FormatShare] = Field(default_factory=list)


class DiscoveryResult(BaseModel):
    """Outcome of scanning one root directory."""

    root: str
    files: list[AudioFileRef] = Field(default_factory=list)
    rejected: list[RejectedFile] = Field(default_factory=list)
    statistics: DiscoveryStatistics = Field(default_factory=DiscoveryStatistics)

    @property
    def file_paths(self) -> list[str]:
        return [f.path for f in self.files]
