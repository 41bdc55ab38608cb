"""
Repository for saved forecast snapshots (``stock_predictions``).

Snapshots are append-only: saving the same product twice keeps both rows,
and ``get_latest`` returns the most recent one.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from msme_replenishment.db.repositories.base import (
    BaseRepository,
    parse_timestamp,
    to_iso_date,
)
from msme_replenishment.models.forecast import StockPrediction

logger = logging.getLogger(__name__)


class PredictionRepository(BaseRepository):
    """Read/write access to the ``stock_predictions`` table."""

    def insert(self, prediction: StockPrediction) -> int:
        """Persist a snapshot.

        Args:
            prediction: Unsaved ``StockPrediction`` (``prediction_id`` is ignored).

        Returns:
            The newly assigned ``prediction_id``.
        """
        self.execute(
            """
            INSERT INTO stock_predictions (
                owner_id, product_id, predicted_date, predicted_quantity,
                confidence_score, urgency, days_until_runout
            ) VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                prediction.owner_id,
                prediction.product_id,
                to_iso_date(prediction.predicted_date),
                prediction.predicted_quantity,
                prediction.confidence_score,
                prediction.urgency.value,
                prediction.days_until_runout,
            ),
        )
        return self.last_insert_rowid()

    def get_latest(self, owner_id: str, product_id: str) -> Optional[StockPrediction]:
        """Most recently saved snapshot for a product, or ``None``."""
        row = self.fetchone(
            """
            SELECT * FROM stock_predictions
             WHERE owner_id = ? AND product_id = ?
             ORDER BY created_at DESC, prediction_id DESC
             LIMIT 1;
            """,
            (owner_id, product_id),
        )
        return _row_to_prediction(row) if row else None

    def get_for_product(self, owner_id: str, product_id: str) -> list[StockPrediction]:
        """All snapshots for a product, oldest first."""
        rows = self.fetchall(
            """
            SELECT * FROM stock_predictions
             WHERE owner_id = ? AND product_id = ?
             ORDER BY created_at, prediction_id;
            """,
            (owner_id, product_id),
        )
        return [_row_to_prediction(r) for r in rows]


def _row_to_prediction(row: sqlite3.Row) -> StockPrediction:
    return StockPrediction(
        prediction_id=row["prediction_id"],
        owner_id=row["owner_id"],
        product_id=row["product_id"],
        predicted_date=date.fromisoformat(row["predicted_date"]),
        predicted_quantity=row["predicted_quantity"],
        confidence_score=row["confidence_score"],
        urgency=row["urgency"],
        days_until_runout=row["days_until_runout"],
        created_at=parse_timestamp(row["created_at"]),
    )
