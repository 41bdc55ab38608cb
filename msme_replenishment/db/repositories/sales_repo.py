"""
Repositories for invoices, invoice lines, and daily sales rollups.

Sales feeding the forecaster come from two places:

  - ``sales_history_daily``: one row per (owner, product, day), rebuilt by
    ``aggregate_daily_sales()``. Preferred when present.
  - ``invoice_items`` joined to ``invoices``: raw lines, summed per calendar
    day on the fly. Only invoices whose status is in ``SALE_STATUSES``
    (``paid``, ``partial``) count as sales.

The sale date of an invoice line is the UTC calendar day of the invoice's
``created_at`` (the first ten characters of the stored timestamp).
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from msme_replenishment.db.repositories.base import (
    BaseRepository,
    to_iso_date,
    to_iso_timestamp,
)
from msme_replenishment.models.sales import Invoice, SalesDataPoint, SalesLine
from msme_replenishment.taxonomy.replenishment_taxonomy import SALE_STATUSES

logger = logging.getLogger(__name__)

_SALE_STATUS_LIST = sorted(SALE_STATUSES)
_STATUS_PLACEHOLDERS = ", ".join("?" for _ in _SALE_STATUS_LIST)


class InvoiceRepository(BaseRepository):
    """Write access to ``invoices`` and ``invoice_items``."""

    def insert_invoice(self, invoice: Invoice) -> str:
        self.execute(
            "INSERT INTO invoices (invoice_id, owner_id, status, created_at) VALUES (?, ?, ?, ?);",
            (
                invoice.invoice_id,
                invoice.owner_id,
                invoice.status,
                to_iso_timestamp(invoice.created_at),
            ),
        )
        return invoice.invoice_id

    def insert_lines(self, lines: list[SalesLine]) -> int:
        """Bulk-insert invoice lines. Returns the number of lines written."""
        if not lines:
            return 0
        self.executemany(
            """
            INSERT INTO invoice_items (invoice_id, product_id, quantity, unit_price)
            VALUES (?, ?, ?, ?);
            """,
            [(l.invoice_id, l.product_id, l.quantity, l.unit_price) for l in lines],
        )
        return len(lines)

    def set_status(self, owner_id: str, invoice_id: str, status: str) -> bool:
        """Change an invoice's status. Returns ``False`` if the owner has no such invoice."""
        cur = self.execute(
            "UPDATE invoices SET status = ? WHERE owner_id = ? AND invoice_id = ?;",
            (status, owner_id, invoice_id),
        )
        return cur.rowcount > 0

    def count_for_owner(self, owner_id: str) -> int:
        return int(
            self.scalar("SELECT COUNT(*) FROM invoices WHERE owner_id = ?;", (owner_id,))
        )


class SalesHistoryRepository(BaseRepository):
    """Daily sales series for the forecaster, plus rollup maintenance."""

    def get_daily_rollup(
        self,
        owner_id: str,
        product_id: str,
        start: date,
        end: date,
    ) -> list[SalesDataPoint]:
        """Pre-aggregated daily rows with ``start <= sale_date <= end``, oldest first."""
        rows = self.fetchall(
            """
            SELECT sale_date, quantity_sold
              FROM sales_history_daily
             WHERE owner_id = ? AND product_id = ?
               AND sale_date BETWEEN ? AND ?
             ORDER BY sale_date;
            """,
            (owner_id, product_id, to_iso_date(start), to_iso_date(end)),
        )
        return [_row_to_point(r["sale_date"], r["quantity_sold"]) for r in rows]

    def get_daily_from_invoices(
        self,
        owner_id: str,
        product_id: str,
        start: date,
        end: date,
    ) -> list[SalesDataPoint]:
        """Invoice lines summed per sale day within ``[start, end]``, oldest first."""
        rows = self.fetchall(
            f"""
            SELECT substr(i.created_at, 1, 10) AS sale_date,
                   SUM(ii.quantity)            AS quantity_sold
              FROM invoice_items ii
              JOIN invoices i ON i.invoice_id = ii.invoice_id
             WHERE i.owner_id = ? AND ii.product_id = ?
               AND i.status IN ({_STATUS_PLACEHOLDERS})
               AND substr(i.created_at, 1, 10) BETWEEN ? AND ?
             GROUP BY sale_date
             ORDER BY sale_date;
            """,
            (owner_id, product_id, *_SALE_STATUS_LIST, to_iso_date(start), to_iso_date(end)),
        )
        return [_row_to_point(r["sale_date"], r["quantity_sold"]) for r in rows]

    def get_daily_sales(
        self,
        owner_id: str,
        product_id: str,
        start: date,
        end: date,
    ) -> list[SalesDataPoint]:
        """Rollup rows when any exist in the window, otherwise invoice lines."""
        series = self.get_daily_rollup(owner_id, product_id, start, end)
        if series:
            return series
        return self.get_daily_from_invoices(owner_id, product_id, start, end)

    def aggregate_daily_sales(self, owner_id: Optional[str] = None) -> int:
        """Rebuild ``sales_history_daily`` from invoice lines.

        Existing rollups in scope are deleted first, so invoices that were
        since cancelled drop out of the history.

        Args:
            owner_id: Restrict the rebuild to one owner; ``None`` rebuilds all.

        Returns:
            Number of rollup rows written.
        """
        owner_clause = "AND i.owner_id = ?" if owner_id is not None else ""
        owner_params: tuple[str, ...] = (owner_id,) if owner_id is not None else ()

        if owner_id is not None:
            self.execute("DELETE FROM sales_history_daily WHERE owner_id = ?;", (owner_id,))
        else:
            self.execute("DELETE FROM sales_history_daily;")

        cur = self.execute(
            f"""
            INSERT INTO sales_history_daily (owner_id, product_id, sale_date, quantity_sold)
            SELECT i.owner_id,
                   ii.product_id,
                   substr(i.created_at, 1, 10),
                   SUM(ii.quantity)
              FROM invoice_items ii
              JOIN invoices i ON i.invoice_id = ii.invoice_id
             WHERE i.status IN ({_STATUS_PLACEHOLDERS})
               {owner_clause}
             GROUP BY i.owner_id, ii.product_id, substr(i.created_at, 1, 10);
            """,
            (*_SALE_STATUS_LIST, *owner_params),
        )
        written = max(cur.rowcount, 0)
        logger.info(
            "Aggregated daily sales: %d rollup rows (owner=%s)", written, owner_id or "all"
        )
        return written


def _row_to_point(sale_date: str, quantity: float) -> SalesDataPoint:
    return SalesDataPoint(date=date.fromisoformat(sale_date), quantity=quantity)
