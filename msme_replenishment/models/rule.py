"""
Reorder rule models.

``ReorderRule`` is user-owned replenishment policy for one product, keyed by
``(owner_id, product_id)``. The forecaster only reads rules; they are created
and changed exclusively through explicit rule-setting calls.

``ReorderRuleUpdate`` is the partial payload of such a call. Only the fields
the caller actually supplied are applied: on creation the remaining fields
take the rule defaults, on update they keep their stored values.

Note that ``safety_stock`` is a **unit quantity**, not a day count. The
planner converts it to days with ``ceil(safety_stock / 10)``.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_LEAD_TIME_DAYS = 7
DEFAULT_SAFETY_STOCK = 0.0


class ReorderRule(BaseModel):
    """Persisted replenishment policy for one product.

    Attributes:
        owner_id:              Business that owns the rule.
        product_id:            Product the rule applies to.
        auto_reorder:          Whether the owner wants automatic reordering.
        reorder_point:         Stock level that should trigger a reorder.
        reorder_quantity:      Quantity to order when triggered.
        preferred_supplier_id: Optional supplier identifier.
        lead_time_days:        Supplier lead time in days.
        safety_stock:          Buffer stock in units.
    """

    model_config = ConfigDict(frozen=True)

    owner_id: str
    product_id: str
    auto_reorder: bool = False
    reorder_point: float
    reorder_quantity: float
    preferred_supplier_id: Optional[str] = None
    lead_time_days: int = DEFAULT_LEAD_TIME_DAYS
    safety_stock: float = DEFAULT_SAFETY_STOCK

    @field_validator("lead_time_days")
    @classmethod
    def validate_lead_time(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"lead_time_days must be >= 0, got {v}.")
        return v

    @field_validator("safety_stock")
    @classmethod
    def validate_safety_stock(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"safety_stock must be >= 0, got {v}.")
        return v


class ReorderRuleUpdate(BaseModel):
    """Partial reorder rule supplied to an upsert.

    Every field is optional at the model level; the rule store decides which
    ones are required. Use ``supplied_fields()`` rather than checking for
    ``None`` so that omitted fields can be told apart from explicit nulls.
    """

    model_config = ConfigDict(frozen=True)

    auto_reorder: Optional[bool] = None
    reorder_point: Optional[float] = None
    reorder_quantity: Optional[float] = None
    preferred_supplier_id: Optional[str] = None
    lead_time_days: Optional[int] = None
    safety_stock: Optional[float] = None

    def supplied_fields(self) -> dict[str, Any]:
        """Return only the fields the caller explicitly set."""
        return self.model_dump(exclude_unset=True)

    def create_rule(self, owner_id: str, product_id: str) -> ReorderRule:
        """Build a brand-new rule, applying defaults for omitted fields.

        Raises:
            pydantic.ValidationError: If the merged values are invalid.
        """
        supplied = {k: v for k, v in self.supplied_fields().items() if v is not None}
        return ReorderRule(owner_id=owner_id, product_id=product_id, **supplied)

    def apply_to(self, existing: ReorderRule) -> ReorderRule:
        """Return ``existing`` with the supplied fields replaced.

        ``preferred_supplier_id`` may be explicitly cleared with ``None``;
        other fields ignore explicit nulls.

        Raises:
            pydantic.ValidationError: If the merged values are invalid.
        """
        merged = existing.model_dump()
        for key, val in self.supplied_fields().items():
            if val is None and key != "preferred_supplier_id":
                continue
            merged[key] = val
        return ReorderRule(**merged)
