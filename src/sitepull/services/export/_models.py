"""
Models for the export engine.
"""

from __future__ import annotations

from pydantic import BaseModel

from sitepull.services.export._cursor import Cursor, encode_cursor


class ExportMetadata(BaseModel):
    """Summary returned when an export session starts."""

    tables: list[str]
    total_tables: int
    total_rows: int
    total_bytes: int
    chunk_size: int


class ExportInit(BaseModel):
    """Result of ``ExportEngine.init``."""

    cursor: Cursor
    preamble: str
    metadata: ExportMetadata

    @property
    def token(self) -> str:
        return encode_cursor(self.cursor)


class ChunkProgress(BaseModel):
    current_table: str
    current_table_index: int
    tables_completed: int
    rows_in_chunk: int = 0
    bytes_in_chunk: int = 0


class ChunkPerformance(BaseModel):
    query_time_ms: float = 0.0
    total_time_ms: float = 0.0
    compression: str = "none"
    chunk_size_used: int = 0


class ExportChunk(BaseModel):
    """Result of one ``ExportEngine.next`` step."""

    data: bytes
    cursor: Cursor
    is_complete: bool
    progress: ChunkProgress
    performance: ChunkPerformance

    @property
    def token(self) -> str:
        return encode_cursor(self.cursor)
