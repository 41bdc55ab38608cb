"""
Catalog product model.

``Product`` is the slice of a catalog row the forecaster needs: identity,
display name, and the current on-hand stock level. Stock is a float because
MSME catalogs sell loose goods (kg, litres) alongside counted units.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Product(BaseModel):
    """A product in an owner's catalog.

    Attributes:
        id:                  Product identifier (opaque string, usually a UUID).
        owner_id:            The business (user) that owns this catalog row.
        name:                Display name.
        current_stock:       Units on hand right now.
        low_stock_threshold: Stock level at or below which the product counts
                             as "low stock" for batch pre-filtering.
        unit:                Optional unit label, e.g. ``"kg"`` or ``"pcs"``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    name: str
    current_stock: float = 0.0
    low_stock_threshold: float = 10.0
    unit: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Product name must not be empty.")
        return v.strip()

    @property
    def is_low_stock(self) -> bool:
        """``True`` when stock is at or below the low-stock threshold."""
        return self.current_stock <= self.low_stock_threshold
