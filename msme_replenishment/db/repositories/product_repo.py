"""
Repository for the ``products`` catalog table.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from msme_replenishment.db.repositories.base import BaseRepository
from msme_replenishment.models.product import Product

logger = logging.getLogger(__name__)


class ProductRepository(BaseRepository):
    """Read/write access to the ``products`` table."""

    def upsert(self, product: Product) -> str:
        """Insert a product, or update name, stock and threshold if it exists.

        Args:
            product: The ``Product`` to persist.

        Returns:
            The product id.
        """
        self.execute(
            """
            INSERT INTO products (product_id, owner_id, name, quantity, low_stock_threshold, unit)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(product_id) DO UPDATE SET
                name                = excluded.name,
                quantity            = excluded.quantity,
                low_stock_threshold = excluded.low_stock_threshold,
                unit                = excluded.unit,
                updated_at          = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (
                product.id,
                product.owner_id,
                product.name,
                product.current_stock,
                product.low_stock_threshold,
                product.unit,
            ),
        )
        return product.id

    def get_by_id(self, owner_id: str, product_id: str) -> Optional[Product]:
        """Fetch one product, scoped to its owner.

        Returns:
            ``Product`` or ``None`` when the owner has no such product.
        """
        row = self.fetchone(
            "SELECT * FROM products WHERE owner_id = ? AND product_id = ?;",
            (owner_id, product_id),
        )
        return _row_to_product(row) if row else None

    def get_for_owner(self, owner_id: str) -> list[Product]:
        """Every product in the owner's catalog, ordered by name then id."""
        rows = self.fetchall(
            "SELECT * FROM products WHERE owner_id = ? ORDER BY name, product_id;",
            (owner_id,),
        )
        return [_row_to_product(r) for r in rows]

    def update_stock(self, owner_id: str, product_id: str, quantity: float) -> bool:
        """Set the on-hand stock level. Returns ``False`` if no row matched."""
        cur = self.execute(
            """
            UPDATE products
               SET quantity = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
             WHERE owner_id = ? AND product_id = ?;
            """,
            (quantity, owner_id, product_id),
        )
        return cur.rowcount > 0

    def count(self, owner_id: Optional[str] = None) -> int:
        if owner_id is None:
            return int(self.scalar("SELECT COUNT(*) FROM products;"))
        return int(self.scalar("SELECT COUNT(*) FROM products WHERE owner_id = ?;", (owner_id,)))


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=row["product_id"],
        owner_id=row["owner_id"],
        name=row["name"],
        current_stock=row["quantity"],
        low_stock_threshold=row["low_stock_threshold"],
        unit=row["unit"],
    )
