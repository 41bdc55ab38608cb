"""Tests for Product, sales, and reorder rule models."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from msme_replenishment.models.product import Product
from msme_replenishment.models.rule import ReorderRule, ReorderRuleUpdate
from msme_replenishment.models.sales import Invoice, SalesDataPoint, SalesLine


class TestProduct:
    def test_name_is_stripped(self):
        p = Product(id="p1", owner_id="shop-1", name="  Rice  ")
        assert p.name == "Rice"

    def test_empty_name_raises(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            Product(id="p1", owner_id="shop-1", name="   ")

    def test_is_low_stock_inclusive(self):
        assert Product(id="p1", owner_id="o", name="R", current_stock=10, low_stock_threshold=10).is_low_stock
        assert not Product(id="p1", owner_id="o", name="R", current_stock=11, low_stock_threshold=10).is_low_stock


class TestSalesModels:
    def test_negative_quantity_raises(self):
        with pytest.raises(ValidationError, match="non-negative"):
            SalesDataPoint(date=date(2026, 3, 1), quantity=-1)

    def test_line_negative_quantity_raises(self):
        with pytest.raises(ValidationError, match="non-negative"):
            SalesLine(invoice_id="inv-1", product_id="p1", quantity=-2)

    def test_unknown_invoice_status_raises(self):
        with pytest.raises(ValidationError, match="Unknown invoice status"):
            Invoice(
                invoice_id="inv-1",
                owner_id="shop-1",
                status="refunded",
                created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            )


class TestReorderRule:
    def test_defaults(self):
        rule = ReorderRule(owner_id="o", product_id="p", reorder_point=5, reorder_quantity=50)
        assert rule.lead_time_days == 7
        assert rule.safety_stock == 0.0
        assert rule.auto_reorder is False
        assert rule.preferred_supplier_id is None

    def test_negative_lead_time_raises(self):
        with pytest.raises(ValidationError, match="lead_time_days"):
            ReorderRule(
                owner_id="o", product_id="p", reorder_point=5, reorder_quantity=50,
                lead_time_days=-1,
            )

    def test_negative_safety_stock_raises(self):
        with pytest.raises(ValidationError, match="safety_stock"):
            ReorderRule(
                owner_id="o", product_id="p", reorder_point=5, reorder_quantity=50,
                safety_stock=-3,
            )


class TestReorderRuleUpdate:
    def test_supplied_fields_excludes_omitted(self):
        update = ReorderRuleUpdate(reorder_point=5, reorder_quantity=50)
        assert update.supplied_fields() == {"reorder_point": 5.0, "reorder_quantity": 50.0}

    def test_create_rule_applies_defaults(self):
        rule = ReorderRuleUpdate(reorder_point=5, reorder_quantity=50).create_rule("o", "p")
        assert rule.lead_time_days == 7
        assert rule.owner_id == "o"

    def test_apply_to_keeps_unsupplied(self):
        existing = ReorderRule(
            owner_id="o", product_id="p", reorder_point=5, reorder_quantity=50,
            lead_time_days=3, preferred_supplier_id="sup-1",
        )
        merged = ReorderRuleUpdate(reorder_point=8, reorder_quantity=60).apply_to(existing)
        assert merged.reorder_point == 8
        assert merged.lead_time_days == 3
        assert merged.preferred_supplier_id == "sup-1"

    def test_apply_to_can_clear_supplier(self):
        existing = ReorderRule(
            owner_id="o", product_id="p", reorder_point=5, reorder_quantity=50,
            preferred_supplier_id="sup-1",
        )
        update = ReorderRuleUpdate(reorder_point=5, reorder_quantity=50, preferred_supplier_id=None)
        assert update.apply_to(existing).preferred_supplier_id is None

    def test_apply_to_ignores_explicit_null_lead_time(self):
        existing = ReorderRule(
            owner_id="o", product_id="p", reorder_point=5, reorder_quantity=50, lead_time_days=3,
        )
        update = ReorderRuleUpdate(reorder_point=5, reorder_quantity=50, lead_time_days=None)
        assert update.apply_to(existing).lead_time_days == 3
