"""
Request-level forecasting operations.

``ForecastingService`` is the facade the CLI (or any other front end) talks
to. It owns one planner, one aggregator, and the three data providers, and
exposes the user-facing operations:

  - ``predict_stock_needs``          single product, or a ranked batch
  - ``get_restock_recommendations``  low-stock batch filtered by urgency
  - ``get_product_forecast``         single product, always
  - ``analyze_sales_trend``          trend breakdown for one product
  - ``set_reorder_rule``             validated rule upsert
  - ``save_forecast``                persist a forecast snapshot
  - ``aggregate_daily_sales``        rebuild daily sales rollups
  - ``record_sale``                  paid invoice + lines, stock decremented
  - ``adjust_stock``                 manual set/add/subtract of on-hand stock
  - ``set_invoice_status``           status change (e.g. cancel a sale)
  - ``get_forecast_history``         saved snapshots for one product
  - ``list_reorder_rules``           every rule the owner has set

Every forecasting operation takes an explicit ``today``; only the CLI
resolves the current date.

Build one with ``build_service(config)``; nothing here is a module-level
singleton.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from msme_replenishment.config import AppConfig
from msme_replenishment.db.connection import connect
from msme_replenishment.db.repositories.prediction_repo import PredictionRepository
from msme_replenishment.db.repositories.product_repo import ProductRepository
from msme_replenishment.db.repositories.rule_repo import ReorderRuleRepository
from msme_replenishment.db.repositories.sales_repo import InvoiceRepository, SalesHistoryRepository
from msme_replenishment.exceptions import InvoiceNotFoundError, ProductNotFoundError
from msme_replenishment.forecasting.aggregator import (
    AggregationResult,
    RecommendationAggregator,
    filter_by_urgency,
    parse_urgency_filter,
)
from msme_replenishment.forecasting.engine import ForecastEngine
from msme_replenishment.forecasting.planner import ReplenishmentPlanner
from msme_replenishment.models.forecast import SalesTrendAnalysis, StockForecast, StockPrediction
from msme_replenishment.models.product import Product
from msme_replenishment.models.rule import ReorderRule, ReorderRuleUpdate
from msme_replenishment.models.sales import Invoice, SalesLine
from msme_replenishment.providers import (
    ProductCatalog,
    ReorderRuleStore,
    SalesHistoryProvider,
    SqliteProductCatalog,
    SqliteReorderRuleStore,
    SqliteSalesHistoryProvider,
)
from msme_replenishment.taxonomy.replenishment_taxonomy import (
    SALE_STATUSES,
    ForecastHorizon,
    InvoiceStatus,
    StockOperation,
)
from msme_replenishment.utils.time_utils import horizon_days

logger = logging.getLogger(__name__)


class ForecastingService:
    """Facade over planner, aggregator, and persistence.

    Attributes:
        config:     Application configuration.
        catalog:    Product catalog.
        history:    Sales history provider.
        rules:      Reorder rule store.
        planner:    Per-product planner.
        aggregator: Batch fan-out.
    """

    def __init__(
        self,
        config: AppConfig,
        catalog: ProductCatalog,
        history: SalesHistoryProvider,
        rules: ReorderRuleStore,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.history = history
        self.rules = rules

        engine = ForecastEngine(config.forecast)
        self.planner = ReplenishmentPlanner(
            engine,
            history,
            catalog,
            rules,
            config=config.planner,
            forecast_config=config.forecast,
        )
        self.aggregator = RecommendationAggregator(self.planner, config.aggregator)

    # ── Forecasting ───────────────────────────────────────────────────────────

    def predict_stock_needs(
        self,
        owner_id: str,
        product_id: Optional[str] = None,
        horizon: str = ForecastHorizon.WEEK,
        only_low_stock: bool = True,
        *,
        today: date,
    ) -> StockForecast | AggregationResult:
        """Forecast one product, or every (low-stock) product of the owner.

        With ``product_id`` the single ``StockForecast`` is returned and
        ``only_low_stock`` is ignored. Without it, the whole catalog is
        forecast and returned ranked as an ``AggregationResult``.

        Raises:
            ValueError: Unknown ``horizon``.
            ProductNotFoundError: ``product_id`` given but absent.
            DataUnavailableError: Catalog unreadable, or single-product
                history unreadable with degradation disabled.
        """
        horizon_days(horizon)
        if product_id is not None:
            return self.planner.forecast_product(owner_id, product_id, today)

        products = self.catalog.get(owner_id)
        return self.aggregator.recommend(
            owner_id, products, today, horizon=horizon, only_low_stock=only_low_stock
        )

    def get_restock_recommendations(
        self,
        owner_id: str,
        min_urgency: Optional[str] = None,
        limit: Optional[int] = None,
        *,
        today: date,
    ) -> AggregationResult:
        """Low-stock products needing attention, most urgent first.

        Args:
            owner_id:    Catalog owner.
            min_urgency: Lowest tier to keep (default ``aggregator.default_min_urgency``).
            limit:       Maximum forecasts returned (default ``aggregator.default_limit``).
            today:       Reference date.

        Raises:
            ValueError: Unknown urgency filter or negative limit.
        """
        urgency = parse_urgency_filter(min_urgency or self.config.aggregator.default_min_urgency)
        max_items = self.config.aggregator.default_limit if limit is None else limit
        if max_items < 0:
            raise ValueError(f"limit must be >= 0, got {max_items}.")

        products = self.catalog.get(owner_id)
        result = self.aggregator.recommend(
            owner_id, products, today, horizon=ForecastHorizon.WEEK, only_low_stock=True
        )
        result.forecasts = filter_by_urgency(result.forecasts, urgency, max_items)
        return result

    def get_product_forecast(self, owner_id: str, product_id: str, *, today: date) -> StockForecast:
        return self.planner.forecast_product(owner_id, product_id, today)

    def analyze_sales_trend(
        self,
        owner_id: str,
        product_id: str,
        period_days: int = 30,
        *,
        today: date,
    ) -> SalesTrendAnalysis:
        return self.planner.analyze_trend(owner_id, product_id, period_days, today)

    # ── Rules & persistence ───────────────────────────────────────────────────

    def set_reorder_rule(
        self,
        owner_id: str,
        product_id: str,
        update: ReorderRuleUpdate,
    ) -> ReorderRule:
        """Create or update the reorder rule for one of the owner's products.

        Raises:
            ProductNotFoundError: The owner has no such product.
            InvalidRuleError: The update is missing required fields or
                carries out-of-range values.
        """
        if not self.catalog.get(owner_id, product_id):
            raise ProductNotFoundError(owner_id, product_id)
        return self.rules.upsert(owner_id, product_id, update)

    def save_forecast(self, owner_id: str, forecast: StockForecast) -> int:
        """Persist ``forecast`` as a ``StockPrediction`` and return its id."""
        prediction = StockPrediction.from_forecast(owner_id, forecast)
        with connect(self.config.database) as conn:
            prediction_id = PredictionRepository(conn).insert(prediction)
        logger.info(
            "Saved forecast id=%d owner=%s product=%s", prediction_id, owner_id, forecast.product_id
        )
        return prediction_id

    def aggregate_daily_sales(self, owner_id: Optional[str] = None) -> int:
        """Rebuild ``sales_history_daily``; returns the number of rollup rows."""
        with connect(self.config.database) as conn:
            return SalesHistoryRepository(conn).aggregate_daily_sales(owner_id)

    def get_forecast_history(self, owner_id: str, product_id: str) -> list[StockPrediction]:
        """Saved snapshots for a product, oldest first."""
        with connect(self.config.database) as conn:
            return PredictionRepository(conn).get_for_product(owner_id, product_id)

    def get_latest_forecast(self, owner_id: str, product_id: str) -> Optional[StockPrediction]:
        with connect(self.config.database) as conn:
            return PredictionRepository(conn).get_latest(owner_id, product_id)

    def list_reorder_rules(self, owner_id: str) -> list[ReorderRule]:
        with connect(self.config.database) as conn:
            return ReorderRuleRepository(conn).get_for_owner(owner_id)

    # ── Sales & stock ─────────────────────────────────────────────────────────

    def record_sale(
        self,
        owner_id: str,
        items: list[tuple[str, float]],
        *,
        sold_at: datetime,
        invoice_id: Optional[str] = None,
        status: str = InvoiceStatus.PAID,
    ) -> Invoice:
        """Record one sale: an invoice, its lines, and the stock it consumed.

        Everything happens in one transaction, so a missing product leaves
        no partial invoice behind.

        Args:
            owner_id:   Catalog owner.
            items:      ``(product_id, quantity)`` pairs; quantities must be > 0.
            sold_at:    Invoice timestamp; its UTC date is the sale date.
            invoice_id: Explicit id, or ``None`` for ``<owner>-INV-<yymm>-<nnnn>``.
            status:     ``paid`` or ``partial``.

        Raises:
            ValueError: No items, a non-positive quantity, or a status that
                does not count as a sale.
            ProductNotFoundError: An item names a product the owner lacks.
        """
        if not items:
            raise ValueError("A sale needs at least one item.")
        if status not in SALE_STATUSES:
            raise ValueError(
                f"Sale status must be one of {sorted(SALE_STATUSES)}, got '{status}'."
            )
        for product_id, quantity in items:
            if quantity <= 0:
                raise ValueError(f"Quantity for '{product_id}' must be > 0, got {quantity}.")

        with connect(self.config.database) as conn:
            products = ProductRepository(conn)
            invoices = InvoiceRepository(conn)

            on_hand: dict[str, float] = {}
            for product_id, _ in items:
                product = products.get_by_id(owner_id, product_id)
                if product is None:
                    raise ProductNotFoundError(owner_id, product_id)
                on_hand[product_id] = product.current_stock

            if invoice_id is None:
                serial = invoices.count_for_owner(owner_id) + 1
                invoice_id = f"{owner_id}-INV-{sold_at:%y%m}-{serial:04d}"
            invoice = Invoice(
                invoice_id=invoice_id, owner_id=owner_id, status=status, created_at=sold_at
            )
            invoices.insert_invoice(invoice)
            invoices.insert_lines([
                SalesLine(invoice_id=invoice_id, product_id=product_id, quantity=quantity)
                for product_id, quantity in items
            ])
            for product_id, quantity in items:
                on_hand[product_id] -= quantity
                products.update_stock(owner_id, product_id, on_hand[product_id])

        logger.info(
            "Recorded sale invoice=%s owner=%s lines=%d", invoice_id, owner_id, len(items),
            extra={"owner_id": owner_id},
        )
        return invoice

    def adjust_stock(
        self,
        owner_id: str,
        product_id: str,
        quantity: float,
        operation: str = StockOperation.SET,
    ) -> Product:
        """Set, add to, or subtract from a product's on-hand stock.

        Subtracting past zero is allowed; the forecaster treats negative
        stock as none.

        Raises:
            ValueError: Unknown ``operation``.
            ProductNotFoundError: The owner has no such product.
        """
        try:
            op = StockOperation(operation)
        except ValueError:
            raise ValueError(
                f"Unknown stock operation '{operation}'. "
                f"Must be one of {[o.value for o in StockOperation]}."
            ) from None

        with connect(self.config.database) as conn:
            products = ProductRepository(conn)
            product = products.get_by_id(owner_id, product_id)
            if product is None:
                raise ProductNotFoundError(owner_id, product_id)
            if op is StockOperation.ADD:
                new_stock = product.current_stock + quantity
            elif op is StockOperation.SUBTRACT:
                new_stock = product.current_stock - quantity
            else:
                new_stock = quantity
            products.update_stock(owner_id, product_id, new_stock)

        logger.info(
            "Stock %s owner=%s product=%s: %g -> %g",
            op.value, owner_id, product_id, product.current_stock, new_stock,
            extra={"owner_id": owner_id, "product_id": product_id},
        )
        return product.model_copy(update={"current_stock": new_stock})

    def set_invoice_status(self, owner_id: str, invoice_id: str, status: str) -> None:
        """Change an invoice's status; only ``paid``/``partial`` count as sales.

        Raises:
            ValueError: Unknown status.
            InvoiceNotFoundError: The owner has no such invoice.
        """
        valid = {s.value for s in InvoiceStatus}
        if status not in valid:
            raise ValueError(f"Unknown invoice status '{status}'. Must be one of {sorted(valid)}.")
        with connect(self.config.database) as conn:
            if not InvoiceRepository(conn).set_status(owner_id, invoice_id, status):
                raise InvoiceNotFoundError(owner_id, invoice_id)
        logger.info("Invoice %s owner=%s is now %s", invoice_id, owner_id, status)


def build_service(config: AppConfig) -> ForecastingService:
    """Wire a ``ForecastingService`` over the SQLite providers."""
    return ForecastingService(
        config,
        catalog=SqliteProductCatalog(config.database),
        history=SqliteSalesHistoryProvider(config.database),
        rules=SqliteReorderRuleStore(config.database, config.rules),
    )
