"""
Download service for sitepull.

Retrieves a partitioned file manifest from the server with bounded
parallelism.

Features:
- Worker pool over a shared queue of large-file and batch units
- Per-unit retry with exponential backoff on transport errors
- Partial-failure isolation (one failed unit never cancels the rest)
- Thread-safe progress counters for renderers
"""

from sitepull.services.download._aio import RetrievalEngine
from sitepull.services.download._models import ProgressSnapshot, TransferResult
from sitepull.services.download._progress import ProgressAggregator
from sitepull.services.download._transfer import UnitTransfer, local_destination

__all__ = [
    "RetrievalEngine",
    "ProgressAggregator",
    "ProgressSnapshot",
    "TransferResult",
    "UnitTransfer",
    "local_destination",
]
