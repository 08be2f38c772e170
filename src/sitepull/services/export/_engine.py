"""
Export pagination engine.

Turns a relational database into a SQL dump one bounded step at a time. All
state between steps lives in the ``Cursor``, so the engine can run behind a
stateless HTTP endpoint that is restarted between requests.
"""

from __future__ import annotations

import gzip
import time
from typing import Callable

from sitepull.exceptions import InvalidArgumentError
from sitepull.logging import get_logger
from sitepull.services.export._config import (
    DEFAULT_CHUNK_ROWS,
    DEFAULT_TIME_BUDGET,
    GROWTH_FACTOR,
    GZIP_LEVEL,
    KEYSET_THRESHOLD_BYTES,
    KEYSET_THRESHOLD_ROWS,
    MAX_CHUNK_ROWS,
    MIN_CHUNK_ROWS,
    SHRINK_FACTOR,
    SLOW_DOWN_ABOVE_SECONDS,
    SPEED_UP_BELOW_SECONDS,
)
from sitepull.services.export._cursor import Cursor, TableInfo, decode_cursor
from sitepull.services.export._models import (
    ChunkPerformance,
    ChunkProgress,
    ExportChunk,
    ExportInit,
    ExportMetadata,
)
from sitepull.services.export._source import TableSource
from sitepull.services.export._sql import SqlWriter

logger = get_logger(__name__)

COMPRESSIONS = ("none", "gzip")


def clamp_chunk_size(hint: int | None) -> int:
    """Clamp a requested chunk size into ``[MIN_CHUNK_ROWS, MAX_CHUNK_ROWS]``."""
    if hint is None:
        return DEFAULT_CHUNK_ROWS
    return max(MIN_CHUNK_ROWS, min(int(hint), MAX_CHUNK_ROWS))


def adapt_chunk_size(chunk_size: int, elapsed: float) -> int:
    """
    Grow the chunk after fast steps, shrink it after slow ones.

    Under ``SPEED_UP_BELOW_SECONDS`` the size grows by half, over
    ``SLOW_DOWN_ABOVE_SECONDS`` it shrinks by a quarter. The result always
    stays within ``[MIN_CHUNK_ROWS, MAX_CHUNK_ROWS]``.
    """
    if elapsed < SPEED_UP_BELOW_SECONDS and chunk_size < MAX_CHUNK_ROWS:
        chunk_size = min(MAX_CHUNK_ROWS, int(chunk_size * GROWTH_FACTOR))
    elif elapsed > SLOW_DOWN_ABOVE_SECONDS and chunk_size > MIN_CHUNK_ROWS:
        chunk_size = max(MIN_CHUNK_ROWS, int(chunk_size * SHRINK_FACTOR))
    return chunk_size


class ExportEngine:
    """
    Resumable, time-sliced SQL export over a ``TableSource``.

    Example:
        >>> engine = ExportEngine(SQLiteSource("site.db"))
        >>> start = engine.init()
        >>> token = start.token
        >>> while True:
        ...     chunk = engine.next(token, time_budget=5)
        ...     out.write(chunk.data)
        ...     token = chunk.token
        ...     if chunk.is_complete:
        ...         break
    """

    def __init__(
        self,
        source: TableSource,
        adaptive: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._writer = SqlWriter(getattr(source, "dialect", "mysql"))
        self._adaptive = adaptive
        self._clock = clock

    @property
    def writer(self) -> SqlWriter:
        return self._writer

    def init(self, chunk_size_hint: int | None = None) -> ExportInit:
        """
        Start an export session.

        Enumerates tables once and picks a pagination strategy per table from
        the size estimates.

        Args:
            chunk_size_hint: Requested rows per step (clamped).

        Returns:
            ExportInit with the initial cursor, the dump preamble and metadata.
        """
        chunk_size = clamp_chunk_size(chunk_size_hint)
        tables = self._source.list_tables()

        infos: dict[str, TableInfo] = {}
        total_rows = 0
        total_bytes = 0
        for table in tables:
            stats = self._source.table_stats(table)
            total_rows += stats.rows
            total_bytes += stats.bytes
            large = (
                stats.rows > KEYSET_THRESHOLD_ROWS
                or stats.bytes > KEYSET_THRESHOLD_BYTES
            )
            key = self._source.primary_key(table) if large else None
            infos[table] = TableInfo(
                row_count_estimate=stats.rows,
                byte_size_estimate=stats.bytes,
                use_keyset=key is not None,
                primary_key_column=key,
            )

        cursor = Cursor.start(tables, infos, chunk_size)
        preamble = self._writer.header()
        if cursor.is_complete:
            preamble += self._writer.footer()

        logger.debug(
            f"Export {cursor.session_id}: {len(tables)} tables, ~{total_rows} rows, "
            f"keyset for {sum(1 for i in infos.values() if i.use_keyset)}"
        )
        return ExportInit(
            cursor=cursor,
            preamble=preamble,
            metadata=ExportMetadata(
                tables=tables,
                total_tables=len(tables),
                total_rows=total_rows,
                total_bytes=total_bytes,
                chunk_size=chunk_size,
            ),
        )

    def next(
        self,
        cursor: Cursor | str,
        time_budget: float = DEFAULT_TIME_BUDGET,
        compression: str = "none",
    ) -> ExportChunk:
        """
        Produce the next slice of the dump.

        The input cursor is never modified; the advanced cursor is returned in
        the chunk. A source failure therefore leaves the caller free to retry
        the same step.

        Args:
            cursor: Cursor or encoded cursor token.
            time_budget: Seconds after which row emission stops.
            compression: "none" or "gzip" (applies to the slice only).

        Raises:
            InvalidCursorError: Token cannot be decoded.
            InvalidArgumentError: Unknown compression.
            SourceReadError: Source failed reading the current table.
        """
        if compression not in COMPRESSIONS:
            raise InvalidArgumentError(f"Unsupported compression: {compression}")

        start = self._clock()
        if isinstance(cursor, str):
            cursor = decode_cursor(cursor)
        else:
            cursor = cursor.model_copy(deep=True)

        table = cursor.table_name
        table_index = cursor.table_index
        parts: list[str] = []
        rows_sent = 0
        query_time = 0.0

        if not cursor.is_complete:
            info = cursor.current_info

            # Structure always precedes data
            if not cursor.schema_sent:
                parts.append(
                    self._writer.table_open(table, self._source.create_statement(table))
                )
                cursor.schema_sent = True

            # One extra row tells us whether the table continues
            limit = cursor.chunk_size + 1
            query_start = self._clock()
            if info.use_keyset:
                rows = self._source.fetch_after(
                    table, info.primary_key_column, cursor.last_primary_key, limit
                )
            else:
                rows = self._source.fetch_offset(table, cursor.offset, limit)
            query_time = self._clock() - query_start

            page = rows[: cursor.chunk_size]
            for row in page:
                # At least one row per step so slow rows cannot stall the export
                if rows_sent and self._clock() - start > time_budget:
                    break
                parts.append(self._writer.insert(table, list(row.keys()), row.values()))
                rows_sent += 1
                if info.use_keyset:
                    cursor.last_primary_key = row[info.primary_key_column]

            if not info.use_keyset:
                cursor.offset += rows_sent

            if len(rows) <= cursor.chunk_size and rows_sent == len(page):
                parts.append(self._writer.table_close(table))
                cursor.advance_table()
                if cursor.is_complete:
                    parts.append(self._writer.footer())

        elapsed = self._clock() - start
        if self._adaptive:
            cursor.chunk_size = adapt_chunk_size(cursor.chunk_size, elapsed)

        text = "".join(parts).encode("utf-8")
        data = gzip.compress(text, GZIP_LEVEL) if compression == "gzip" else text

        return ExportChunk(
            data=data,
            cursor=cursor,
            is_complete=cursor.is_complete,
            progress=ChunkProgress(
                current_table=table,
                current_table_index=table_index,
                tables_completed=cursor.table_index,
                rows_in_chunk=rows_sent,
                bytes_in_chunk=len(text),
            ),
            performance=ChunkPerformance(
                query_time_ms=query_time * 1000,
                total_time_ms=elapsed * 1000,
                compression=compression,
                chunk_size_used=cursor.chunk_size,
            ),
        )
