"""
Sales series models.

``SalesDataPoint`` is one day of a product's sales series, the only input
the forecast engine consumes. A ``SalesHistory`` is simply a chronologically
ordered ``list[SalesDataPoint]``; days absent from the list had no sales.

``SalesLine`` is a raw invoice line (one product on one invoice), used when
no pre-aggregated daily rollup exists and to rebuild rollups.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from msme_replenishment.taxonomy.replenishment_taxonomy import InvoiceStatus


class SalesDataPoint(BaseModel):
    """Units of one product sold on one calendar day.

    Attributes:
        date:     Calendar day (local business date).
        quantity: Units sold that day; never negative.
    """

    model_config = ConfigDict(frozen=True)

    date: dt.date
    quantity: float

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"quantity must be non-negative, got {v}.")
        return v


SalesHistory = list[SalesDataPoint]


class SalesLine(BaseModel):
    """A single product line on an invoice.

    Attributes:
        line_id:    Auto-assigned DB PK; ``None`` before insertion.
        invoice_id: FK to ``invoices.invoice_id``.
        product_id: FK to ``products.product_id``.
        quantity:   Units sold on this line.
        unit_price: Optional per-unit price (not used by the forecaster).
    """

    model_config = ConfigDict(frozen=True)

    line_id: Optional[int] = None
    invoice_id: str
    product_id: str
    quantity: float
    unit_price: Optional[float] = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"quantity must be non-negative, got {v}.")
        return v


class Invoice(BaseModel):
    """Invoice header; only ``paid`` and ``partial`` invoices count as sales.

    Attributes:
        invoice_id: Invoice identifier.
        owner_id:   The business that issued the invoice.
        status:     Payment status string (see ``InvoiceStatus``).
        created_at: When the invoice was raised; its date is the sale date.
    """

    model_config = ConfigDict(frozen=True)

    invoice_id: str
    owner_id: str
    status: str
    created_at: dt.datetime

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        valid = {s.value for s in InvoiceStatus}
        if v not in valid:
            raise ValueError(f"Unknown invoice status '{v}'. Must be one of {sorted(valid)}.")
        return v
