"""
SQLite schema DDL: all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. products             (no FKs)
  2. invoices             (no FKs)
  3. invoice_items        (→ invoices, products)
  4. sales_history_daily  (→ products)
  5. reorder_rules        (→ products)
  6. stock_predictions    (→ products)

Dates are stored as ISO-8601 TEXT (``YYYY-MM-DD`` for calendar days,
``YYYY-MM-DDTHH:MM:SSZ`` for timestamps) so ``date()`` and lexical
comparisons agree.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_PRODUCTS = """
CREATE TABLE IF NOT EXISTS products (
    product_id          TEXT    PRIMARY KEY,
    owner_id            TEXT    NOT NULL,
    name                TEXT    NOT NULL,
    quantity            REAL    NOT NULL DEFAULT 0,
    low_stock_threshold REAL    NOT NULL DEFAULT 10,
    unit                TEXT,
    created_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_products_owner
    ON products(owner_id);
"""

_DDL_INVOICES = """
CREATE TABLE IF NOT EXISTS invoices (
    invoice_id  TEXT    PRIMARY KEY,
    owner_id    TEXT    NOT NULL,
    status      TEXT    NOT NULL DEFAULT 'pending',
    created_at  TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_invoices_owner_created
    ON invoices(owner_id, created_at);
"""

_DDL_INVOICE_ITEMS = """
CREATE TABLE IF NOT EXISTS invoice_items (
    line_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id  TEXT    NOT NULL REFERENCES invoices(invoice_id) ON DELETE CASCADE,
    product_id  TEXT    NOT NULL REFERENCES products(product_id),
    quantity    REAL    NOT NULL CHECK (quantity >= 0),
    unit_price  REAL
);
CREATE INDEX IF NOT EXISTS idx_invoice_items_product
    ON invoice_items(product_id);
"""

_DDL_SALES_HISTORY_DAILY = """
CREATE TABLE IF NOT EXISTS sales_history_daily (
    owner_id       TEXT    NOT NULL,
    product_id     TEXT    NOT NULL REFERENCES products(product_id),
    sale_date      TEXT    NOT NULL,
    quantity_sold  REAL    NOT NULL DEFAULT 0 CHECK (quantity_sold >= 0),
    aggregated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (owner_id, product_id, sale_date)
);
"""

_DDL_REORDER_RULES = """
CREATE TABLE IF NOT EXISTS reorder_rules (
    owner_id               TEXT    NOT NULL,
    product_id             TEXT    NOT NULL REFERENCES products(product_id),
    auto_reorder           INTEGER NOT NULL DEFAULT 0,
    reorder_point          REAL    NOT NULL,
    reorder_quantity       REAL    NOT NULL,
    preferred_supplier_id  TEXT,
    lead_time_days         INTEGER NOT NULL DEFAULT 7,
    safety_stock           REAL    NOT NULL DEFAULT 0,
    created_at             TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at             TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (owner_id, product_id)
);
"""

_DDL_STOCK_PREDICTIONS = """
CREATE TABLE IF NOT EXISTS stock_predictions (
    prediction_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id            TEXT    NOT NULL,
    product_id          TEXT    NOT NULL REFERENCES products(product_id),
    predicted_date      TEXT    NOT NULL,
    predicted_quantity  INTEGER NOT NULL,
    confidence_score    REAL    NOT NULL,
    urgency             TEXT    NOT NULL,
    days_until_runout   INTEGER NOT NULL,
    created_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_stock_predictions_product
    ON stock_predictions(owner_id, product_id, created_at);
"""

_ALL_DDL = [
    _DDL_PRODUCTS,
    _DDL_INVOICES,
    _DDL_INVOICE_ITEMS,
    _DDL_SALES_HISTORY_DAILY,
    _DDL_REORDER_RULES,
    _DDL_STOCK_PREDICTIONS,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "products",
    "invoices",
    "invoice_items",
    "sales_history_daily",
    "reorder_rules",
    "stock_predictions",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent; safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of table names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of index names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
