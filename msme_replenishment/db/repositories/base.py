"""
Base repository shared by every table gateway.

Repositories receive an open ``sqlite3.Connection`` (normally from
``get_connection()``) and never manage its lifetime themselves: the caller
decides the transaction boundary.

Conventions:
  - Plain SQL, no ORM. Each statement lives in the method that needs it.
  - Public methods accept and return pydantic models, not rows.
  - Dates cross the boundary as ISO-8601 strings (see ``to_iso_date``).
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

Params = tuple[Any, ...] | dict[str, Any]


class BaseRepository:
    """Thin SQL helpers over one connection.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, params_list: list[Params]) -> sqlite3.Cursor:
        logger.debug("SQL (many): %s | count: %d", sql.strip(), len(params_list))
        return self.conn.executemany(sql, params_list)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        """Run a query and return its first row, or ``None``."""
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        """Run a query and return every row."""
        return self.execute(sql, params).fetchall()

    def scalar(self, sql: str, params: Params = ()) -> Any:
        """Run a query and return the first column of the first row."""
        row = self.fetchone(sql, params)
        return row[0] if row is not None else None

    def last_insert_rowid(self) -> int:
        """Rowid assigned by the most recent INSERT on this connection."""
        return int(self.scalar("SELECT last_insert_rowid();"))


def to_iso_date(value: date) -> str:
    """``date`` → ``YYYY-MM-DD``."""
    return value.isoformat()


def to_iso_timestamp(value: datetime) -> str:
    """``datetime`` → UTC ``YYYY-MM-DDTHH:MM:SSZ``; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ``...Z`` timestamp back into an aware UTC ``datetime``."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
