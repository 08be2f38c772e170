"""
Database export service for sitepull.

Exports a relational database as a SQL dump in bounded time slices so it can
run behind a stateless HTTP endpoint.

Features:
- Opaque, versioned cursor carried between requests
- Keyset pagination for large tables, offset pagination otherwise
- Adaptive chunk sizing from per-step timing
- Optional gzip of emitted slices
"""

from sitepull.services.export._cursor import Cursor, TableInfo, decode_cursor, encode_cursor
from sitepull.services.export._engine import ExportEngine, adapt_chunk_size, clamp_chunk_size
from sitepull.services.export._jobs import DatabaseJobManager, DatabaseJobProgress
from sitepull.services.export._models import (
    ChunkPerformance,
    ChunkProgress,
    ExportChunk,
    ExportInit,
    ExportMetadata,
)
from sitepull.services.export._source import SQLiteSource, TableSource, TableStats
from sitepull.services.export._sql import SqlWriter, escape_value

__all__ = [
    "Cursor",
    "TableInfo",
    "encode_cursor",
    "decode_cursor",
    "ExportEngine",
    "adapt_chunk_size",
    "clamp_chunk_size",
    "DatabaseJobManager",
    "DatabaseJobProgress",
    "ExportInit",
    "ExportChunk",
    "ExportMetadata",
    "ChunkProgress",
    "ChunkPerformance",
    "TableSource",
    "TableStats",
    "SQLiteSource",
    "SqlWriter",
    "escape_value",
]
