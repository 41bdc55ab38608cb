"""
Short-lived SQLite connections for the catalog, sales and rule stores.

Every provider call and every service write opens its own connection with
``get_connection()`` (or ``connect(config.database)``) and closes it on the
way out. A connection never crosses threads, so the batch aggregator can
plan several products at once, each worker reading on its own handle.

Each connection is opened with:
  - ``foreign_keys = ON``: invoice lines, rules and predictions must point at
    a real product.
  - WAL journal mode: forecasts keep reading while ``set-rule`` or
    ``aggregate-sales`` write.
  - ``busy_timeout``: a writer holding the lock makes readers wait instead of
    failing straight away.
  - ``sqlite3.Row`` rows, read by column name in the repositories.

The block commits on success and rolls back if it raises::

    with connect(config.database) as conn:
        ReorderRuleRepository(conn).upsert(rule)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from msme_replenishment.config import DatabaseConfig

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Open ``db_path``, yield the connection, then commit or roll back.

    Missing parent directories are created, so ``init-db`` works on a fresh
    checkout.

    Args:
        db_path:         Database file, or ``":memory:"`` for a throwaway one.
        wal_mode:        Switch the file to WAL journaling.
        busy_timeout_ms: How long to wait on a locked database.

    Raises:
        sqlite3.OperationalError: The file cannot be opened, or the lock was
            not released within ``busy_timeout_ms``.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
        if wal_mode:
            conn.execute("PRAGMA journal_mode = WAL;")

        yield conn
        conn.commit()
    except Exception:
        logger.debug("Rolling back uncommitted changes to %s", db_path)
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def connect(config: DatabaseConfig) -> Generator[sqlite3.Connection, None, None]:
    """``get_connection()`` with the path and pragmas of a ``[database]`` section."""
    with get_connection(
        config.db_path,
        wal_mode=config.wal_mode,
        busy_timeout_ms=config.busy_timeout_ms,
    ) as conn:
        yield conn
