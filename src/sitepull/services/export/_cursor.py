"""
Cursor model and codec.

The cursor is the whole resume state of an export. It travels between
requests as an opaque token: URL-safe base64 of its JSON form.
"""

from __future__ import annotations

import base64
import binascii
import uuid

from pydantic import BaseModel, ValidationError, model_validator

from sitepull.exceptions import InvalidCursorError
from sitepull.services.export._config import (
    MAX_CHUNK_ROWS,
    MIN_CHUNK_ROWS,
    STREAM_VERSION,
)


class TableInfo(BaseModel):
    """Size estimates and pagination strategy for one table."""

    row_count_estimate: int = 0
    byte_size_estimate: int = 0
    use_keyset: bool = False
    primary_key_column: str | None = None


class Cursor(BaseModel):
    """Progress of one export session."""

    version: str = STREAM_VERSION
    session_id: str
    tables: list[str]
    table_index: int = 0
    table_name: str = ""
    offset: int = 0
    last_primary_key: int | float | str | None = None
    schema_sent: bool = False
    chunk_size: int
    is_complete: bool = False
    per_table_info: dict[str, TableInfo]

    @model_validator(mode="after")
    def _check_consistency(self) -> Cursor:
        if self.version != STREAM_VERSION:
            raise ValueError(f"unsupported cursor version {self.version!r}")
        if not MIN_CHUNK_ROWS <= self.chunk_size <= MAX_CHUNK_ROWS:
            raise ValueError(f"chunk_size {self.chunk_size} out of range")
        if not 0 <= self.table_index <= len(self.tables):
            raise ValueError(f"table_index {self.table_index} out of range")
        if self.offset < 0:
            raise ValueError("offset must not be negative")
        if self.is_complete != (self.table_index == len(self.tables)):
            raise ValueError("is_complete disagrees with table_index")
        if not self.is_complete:
            if self.table_name != self.tables[self.table_index]:
                raise ValueError("table_name disagrees with table_index")
            if self.table_name not in self.per_table_info:
                raise ValueError(f"no table info for {self.table_name!r}")
        return self

    @classmethod
    def start(
        cls,
        tables: list[str],
        per_table_info: dict[str, TableInfo],
        chunk_size: int,
    ) -> Cursor:
        """Create the cursor for a fresh export session."""
        return cls(
            session_id=f"exp_{uuid.uuid4().hex[:16]}",
            tables=list(tables),
            table_name=tables[0] if tables else "",
            chunk_size=chunk_size,
            is_complete=not tables,
            per_table_info=per_table_info,
        )

    @property
    def current_info(self) -> TableInfo:
        return self.per_table_info[self.table_name]

    def advance_table(self) -> None:
        """Move to the next table, resetting per-table position."""
        self.table_index += 1
        self.offset = 0
        self.last_primary_key = None
        self.schema_sent = False
        if self.table_index < len(self.tables):
            self.table_name = self.tables[self.table_index]
        else:
            self.table_name = ""
            self.is_complete = True


def encode_cursor(cursor: Cursor) -> str:
    """Encode a cursor into an opaque token."""
    raw = cursor.model_dump_json().encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(token: str) -> Cursor:
    """
    Decode a token produced by ``encode_cursor``.

    Raises:
        InvalidCursorError: Token is not base64, not JSON, or fails validation.
    """
    if not token:
        raise InvalidCursorError("Cursor is required")
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        return Cursor.model_validate_json(raw)
    except (binascii.Error, UnicodeError, ValueError, ValidationError) as e:
        raise InvalidCursorError(f"Invalid cursor: {e}", cause=e) from e
