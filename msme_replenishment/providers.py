"""
Data-access seams consumed by the planner and the service layer.

Three ``Protocol``s describe everything the forecaster reads or writes:

  - ``SalesHistoryProvider`` : daily sales series for one product.
  - ``ProductCatalog``       : products (and their stock levels) by owner.
  - ``ReorderRuleStore``     : per-product replenishment policy.

The ``Sqlite*`` classes implement them over the repositories in
``msme_replenishment.db``. Each call opens its own short-lived connection,
so one instance can be shared by every aggregator worker thread. Read
failures (``sqlite3.Error``) are re-raised as ``DataUnavailableError``.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional, Protocol

from pydantic import ValidationError

from msme_replenishment.config import DatabaseConfig, RulesConfig
from msme_replenishment.db.connection import connect
from msme_replenishment.db.repositories.product_repo import ProductRepository
from msme_replenishment.db.repositories.rule_repo import ReorderRuleRepository
from msme_replenishment.db.repositories.sales_repo import SalesHistoryRepository
from msme_replenishment.exceptions import DataUnavailableError, InvalidRuleError
from msme_replenishment.models.product import Product
from msme_replenishment.models.rule import ReorderRule, ReorderRuleUpdate
from msme_replenishment.models.sales import SalesDataPoint
from msme_replenishment.utils.time_utils import lookback_start

logger = logging.getLogger(__name__)


# ── Protocols ─────────────────────────────────────────────────────────────────


class SalesHistoryProvider(Protocol):
    def get(
        self,
        owner_id: str,
        product_id: str,
        lookback_days: int,
        today: date,
    ) -> list[SalesDataPoint]:
        """Chronological daily sales within ``[today - lookback_days, today]``.

        Raises:
            DataUnavailableError: If the history cannot be read.
        """
        ...


class ProductCatalog(Protocol):
    def get(self, owner_id: str, product_id: Optional[str] = None) -> list[Product]:
        """All of the owner's products, or the single matching product.

        An unknown ``product_id`` gives an empty list.
        """
        ...


class ReorderRuleStore(Protocol):
    def get(self, owner_id: str, product_id: str) -> Optional[ReorderRule]:
        ...

    def upsert(
        self,
        owner_id: str,
        product_id: str,
        update: ReorderRuleUpdate,
    ) -> ReorderRule:
        """Create or merge a rule and return the stored result.

        Raises:
            InvalidRuleError: If the update is rejected.
        """
        ...


# ── Rule validation ───────────────────────────────────────────────────────────


def validate_rule_update(
    product_id: str,
    update: ReorderRuleUpdate,
    strict: bool = False,
) -> None:
    """Reject an upsert payload that lacks the required fields.

    ``reorder_point`` and ``reorder_quantity`` must be supplied on every
    upsert. With ``strict`` both must also be positive.

    Raises:
        InvalidRuleError: Listing every problem found.
    """
    problems: list[str] = []
    for name in ("reorder_point", "reorder_quantity"):
        value = getattr(update, name)
        if value is None:
            problems.append(f"{name} is required")
        elif strict and value <= 0:
            problems.append(f"{name} must be > 0, got {value}")
    if problems:
        raise InvalidRuleError(product_id, problems)


def merge_rule_update(
    owner_id: str,
    product_id: str,
    existing: Optional[ReorderRule],
    update: ReorderRuleUpdate,
) -> ReorderRule:
    """Create a new rule or apply ``update`` over ``existing``.

    Raises:
        InvalidRuleError: If the merged rule fails model validation.
    """
    try:
        if existing is None:
            return update.create_rule(owner_id, product_id)
        return update.apply_to(existing)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'rule'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise InvalidRuleError(product_id, problems) from exc


# ── SQLite implementations ────────────────────────────────────────────────────


class SqliteSalesHistoryProvider:
    """``SalesHistoryProvider`` over ``sales_history_daily`` / ``invoice_items``."""

    def __init__(self, db_config: DatabaseConfig) -> None:
        self.db_config = db_config

    def get(
        self,
        owner_id: str,
        product_id: str,
        lookback_days: int,
        today: date,
    ) -> list[SalesDataPoint]:
        start = lookback_start(today, lookback_days)
        try:
            with connect(self.db_config) as conn:
                return SalesHistoryRepository(conn).get_daily_sales(
                    owner_id, product_id, start, today
                )
        except sqlite3.Error as exc:
            raise DataUnavailableError(
                f"Sales history read failed for product '{product_id}': {exc}",
                product_id=product_id,
            ) from exc


class SqliteProductCatalog:
    """``ProductCatalog`` over the ``products`` table."""

    def __init__(self, db_config: DatabaseConfig) -> None:
        self.db_config = db_config

    def get(self, owner_id: str, product_id: Optional[str] = None) -> list[Product]:
        try:
            with connect(self.db_config) as conn:
                repo = ProductRepository(conn)
                if product_id is None:
                    return repo.get_for_owner(owner_id)
                product = repo.get_by_id(owner_id, product_id)
                return [product] if product is not None else []
        except sqlite3.Error as exc:
            raise DataUnavailableError(
                f"Catalog read failed for owner '{owner_id}': {exc}",
                product_id=product_id,
            ) from exc


class SqliteReorderRuleStore:
    """``ReorderRuleStore`` over the ``reorder_rules`` table.

    Attributes:
        db_config:    Connection settings.
        rules_config: Validation strictness for upserts.
    """

    def __init__(
        self,
        db_config: DatabaseConfig,
        rules_config: Optional[RulesConfig] = None,
    ) -> None:
        self.db_config = db_config
        self.rules_config = rules_config or RulesConfig()

    def get(self, owner_id: str, product_id: str) -> Optional[ReorderRule]:
        try:
            with connect(self.db_config) as conn:
                return ReorderRuleRepository(conn).get(owner_id, product_id)
        except sqlite3.Error as exc:
            raise DataUnavailableError(
                f"Reorder rule read failed for product '{product_id}': {exc}",
                product_id=product_id,
            ) from exc

    def upsert(
        self,
        owner_id: str,
        product_id: str,
        update: ReorderRuleUpdate,
    ) -> ReorderRule:
        validate_rule_update(product_id, update, strict=self.rules_config.strict_validation)

        with connect(self.db_config) as conn:
            repo = ReorderRuleRepository(conn)
            existing = repo.get(owner_id, product_id)
            rule = merge_rule_update(owner_id, product_id, existing, update)
            repo.upsert(rule)

        logger.info(
            "%s reorder rule owner=%s product=%s",
            "Created" if existing is None else "Updated", owner_id, product_id,
        )
        return rule
