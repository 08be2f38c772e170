"""
Models for manifests and partitions.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class FileEntry(BaseModel):
    """One file in the source tree. ``path`` is relative and ``/``-separated."""

    model_config = ConfigDict(frozen=True)

    path: str
    size: int = Field(ge=0)
    mtime: int = 0


class ManifestJob(BaseModel):
    """Stored manifest job: metadata plus the reassembled file list."""

    job_id: str
    created_at: int
    total_files: int
    total_bytes: int
    chunk_count: int
    files: list[FileEntry] = Field(default_factory=list)


class ManifestPage(BaseModel):
    """One page of a manifest job."""

    job_id: str
    offset: int
    limit: int
    total_files: int
    total_bytes: int
    files: list[FileEntry]


class TransferUnit(BaseModel):
    """
    Atomic unit of concurrent retrieval.

    ``file`` units carry exactly one large file; ``batch`` units group small files.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["file", "batch"]
    index: int
    files: tuple[FileEntry, ...]

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files)

    @property
    def label(self) -> str:
        if self.kind == "file":
            return self.files[0].path
        return f"batch #{self.index} ({len(self.files)} files)"


class Partition(BaseModel):
    """Manifest split into large-file units and batches."""

    large: list[FileEntry] = Field(default_factory=list)
    batches: list[list[FileEntry]] = Field(default_factory=list)
    total_files: int = 0
    total_bytes: int = 0

    def units(self) -> list[TransferUnit]:
        """Large files first (they take longest), then batches."""
        units = [
            TransferUnit(kind="file", index=i, files=(entry,))
            for i, entry in enumerate(self.large)
        ]
        units += [
            TransferUnit(kind="batch", index=i, files=tuple(batch))
            for i, batch in enumerate(self.batches)
        ]
        return units
