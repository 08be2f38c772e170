"""
Manifest partitioning.
"""

from __future__ import annotations

from collections.abc import Iterable

from sitepull.services.manifest._models import FileEntry, Partition


def partition(
    entries: Iterable[FileEntry],
    large_threshold: int,
    batch_byte_cap: int,
    batch_count_cap: int,
) -> Partition:
    """
    Split a manifest into large-file units and batches of small files.

    Single pass in manifest order. Files bigger than ``large_threshold`` get
    their own unit; the rest are packed greedily, closing a batch when the
    next file would push it past ``batch_byte_cap`` bytes or
    ``batch_count_cap`` files. A batch always holds at least one file, so a
    small file bigger than the byte cap still lands in a batch of its own.

    The same input and caps always yield the same batch boundaries.
    """
    if batch_count_cap < 1:
        raise ValueError("batch_count_cap must be at least 1")

    result = Partition()
    batch: list[FileEntry] = []
    batch_bytes = 0

    for entry in entries:
        result.total_files += 1
        result.total_bytes += entry.size

        if entry.size > large_threshold:
            result.large.append(entry)
            continue

        if batch and (
            batch_bytes + entry.size > batch_byte_cap
            or len(batch) + 1 > batch_count_cap
        ):
            result.batches.append(batch)
            batch = []
            batch_bytes = 0

        batch.append(entry)
        batch_bytes += entry.size

    if batch:
        result.batches.append(batch)
    return result
