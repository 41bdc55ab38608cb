"""
Repository for the ``reorder_rules`` table.

Rules are keyed by ``(owner_id, product_id)``; ``upsert`` replaces the whole
row, so callers merge partial updates before writing (see
``ReorderRuleUpdate.apply_to``).
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from msme_replenishment.db.repositories.base import BaseRepository
from msme_replenishment.models.rule import ReorderRule

logger = logging.getLogger(__name__)


class ReorderRuleRepository(BaseRepository):
    """Read/write access to the ``reorder_rules`` table."""

    def get(self, owner_id: str, product_id: str) -> Optional[ReorderRule]:
        row = self.fetchone(
            "SELECT * FROM reorder_rules WHERE owner_id = ? AND product_id = ?;",
            (owner_id, product_id),
        )
        return _row_to_rule(row) if row else None

    def upsert(self, rule: ReorderRule) -> None:
        """Insert ``rule`` or overwrite the stored row for the same key."""
        self.execute(
            """
            INSERT INTO reorder_rules (
                owner_id, product_id, auto_reorder, reorder_point, reorder_quantity,
                preferred_supplier_id, lead_time_days, safety_stock
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(owner_id, product_id) DO UPDATE SET
                auto_reorder          = excluded.auto_reorder,
                reorder_point         = excluded.reorder_point,
                reorder_quantity      = excluded.reorder_quantity,
                preferred_supplier_id = excluded.preferred_supplier_id,
                lead_time_days        = excluded.lead_time_days,
                safety_stock          = excluded.safety_stock,
                updated_at            = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (
                rule.owner_id,
                rule.product_id,
                int(rule.auto_reorder),
                rule.reorder_point,
                rule.reorder_quantity,
                rule.preferred_supplier_id,
                rule.lead_time_days,
                rule.safety_stock,
            ),
        )
        logger.debug("Upserted reorder rule owner=%s product=%s", rule.owner_id, rule.product_id)

    def get_for_owner(self, owner_id: str) -> list[ReorderRule]:
        rows = self.fetchall(
            "SELECT * FROM reorder_rules WHERE owner_id = ? ORDER BY product_id;",
            (owner_id,),
        )
        return [_row_to_rule(r) for r in rows]


def _row_to_rule(row: sqlite3.Row) -> ReorderRule:
    return ReorderRule(
        owner_id=row["owner_id"],
        product_id=row["product_id"],
        auto_reorder=bool(row["auto_reorder"]),
        reorder_point=row["reorder_point"],
        reorder_quantity=row["reorder_quantity"],
        preferred_supplier_id=row["preferred_supplier_id"],
        lead_time_days=row["lead_time_days"],
        safety_stock=row["safety_stock"],
    )
