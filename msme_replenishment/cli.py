"""
MSME Replenishment CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Build the service and run one operation.
  5. Print the result to stdout as JSON (logs go to stderr).

Install and run::

    pip install -e .
    msme-replenish --help
    msme-replenish init-db
    msme-replenish validate-config
    msme-replenish forecast shop-1 --product rice-5kg
    msme-replenish restock shop-1 --min-urgency medium --output-dir out/
    msme-replenish trend shop-1 rice-5kg --period-days 60
    msme-replenish set-rule shop-1 rice-5kg --reorder-point 20 --reorder-quantity 100
    msme-replenish aggregate-sales
    msme-replenish record-sale shop-1 --item rice-5kg=2 --item dal-1kg=1
    msme-replenish set-stock shop-1 rice-5kg 40 --operation add
    msme-replenish invoice-status shop-1 shop-1-INV-2603-0001 cancelled
    msme-replenish history shop-1 rice-5kg --latest
    msme-replenish rules shop-1
    msme-replenish eoq --annual-demand 1200 --order-cost 50 --holding-cost 2
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, NoReturn, Optional

import typer

app = typer.Typer(
    name="msme-replenish",
    help="MSME stock forecasting and replenishment planner.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from msme_replenishment.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from msme_replenishment.utils.logging import configure_logging
    configure_logging(config.logging)


def _setup(config_path: Optional[str]):
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    return config


def _parse_today(value: Optional[str]) -> date:
    """``--today`` as a date; the current UTC date when omitted."""
    from msme_replenishment.utils.time_utils import utc_today

    if value is None:
        return utc_today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        typer.echo(f"[ERROR] --today must be YYYY-MM-DD, got '{value}'.", err=True)
        raise typer.Exit(code=1)


def _parse_items(values: List[str]) -> list[tuple[str, float]]:
    """``--item PRODUCT=QTY`` values as ``(product_id, quantity)`` pairs."""
    items = []
    for value in values:
        product_id, _, qty = value.partition("=")
        try:
            quantity = float(qty)
        except ValueError:
            quantity = None
        if not product_id or quantity is None:
            typer.echo(f"[ERROR] --item must be PRODUCT=QTY, got '{value}'.", err=True)
            raise typer.Exit(code=1)
        items.append((product_id, quantity))
    return items


def _parse_sold_at(value: Optional[str]) -> datetime:
    from msme_replenishment.utils.time_utils import utcnow

    if value is None:
        return utcnow()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        typer.echo(f"[ERROR] --sold-at must be an ISO-8601 timestamp, got '{value}'.", err=True)
        raise typer.Exit(code=1)


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"[ERROR] {exc}", err=True)
    raise typer.Exit(code=1)


def _batch_payload(result, owner_id: str, today: date) -> dict:
    return {
        "owner_id":     owner_id,
        "today":        today.isoformat(),
        "horizon_days": result.horizon_days,
        "considered":   result.considered,
        "forecasts":    [f.model_dump(mode="json") for f in result.forecasts],
        "skipped":      [{"product_id": s.product_id, "reason": s.reason} for s in result.skipped],
    }


def _write_reports(result, output_dir: str, owner_id: str, today: date) -> list[Path]:
    from msme_replenishment.reporting.reporter import (
        write_forecast_csv,
        write_forecast_json,
        write_forecast_parquet,
    )

    out = Path(output_dir)
    return [
        write_forecast_csv(result.forecasts, out, owner_id, today),
        write_forecast_json(
            result.forecasts, out, owner_id, today,
            horizon_days=result.horizon_days, skipped=result.skipped,
        ),
        write_forecast_parquet(result.forecasts, out, owner_id, today),
    ]


_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")
_TODAY_OPTION = typer.Option(
    None, "--today", help="Reference date (YYYY-MM-DD). Defaults to the current UTC date."
)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from msme_replenishment.db.connection import get_connection
    from msme_replenishment.db.repositories.product_repo import ProductRepository
    from msme_replenishment.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _setup(config_path)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)
        product_count = ProductRepository(conn).count()

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Products: {product_count} in catalog.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = _CONFIG_OPTION,
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Output dir:       {config.data.output_dir}")
    typer.echo(f"  History lookback: {config.forecast.history_lookback_days} days")
    typer.echo(f"  Max concurrency:  {config.aggregator.max_concurrency}")
    typer.echo(f"  Item timeout:     {config.aggregator.item_timeout_seconds}s")
    typer.echo(f"  Strict rules:     {config.rules.strict_validation}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("forecast")
def forecast(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    product_id: Optional[str] = typer.Option(
        None, "--product", help="Forecast a single product instead of the catalog."
    ),
    horizon: str = typer.Option("week", "--horizon", help="Planning horizon: week or month."),
    all_products: bool = typer.Option(
        False, "--all-products", help="Include products above their low-stock threshold."
    ),
    save: bool = typer.Option(
        False, "--save", help="Persist each forecast as a stock prediction snapshot."
    ),
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", help="Also write CSV/JSON/Parquet reports here."
    ),
    today: Optional[str] = _TODAY_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Predict stock runout for one product or the whole catalog."""
    from msme_replenishment.exceptions import ReplenishmentError
    from msme_replenishment.models.forecast import StockForecast
    from msme_replenishment.service import build_service

    config = _setup(config_path)
    ref_date = _parse_today(today)
    service = build_service(config)

    try:
        result = service.predict_stock_needs(
            owner_id,
            product_id=product_id,
            horizon=horizon,
            only_low_stock=not all_products,
            today=ref_date,
        )
    except (ReplenishmentError, ValueError) as exc:
        _fail(exc)

    forecasts = [result] if isinstance(result, StockForecast) else result.forecasts
    if save:
        for f in forecasts:
            service.save_forecast(owner_id, f)

    if isinstance(result, StockForecast):
        _emit(result.model_dump(mode="json"))
        return

    if output_dir:
        for path in _write_reports(result, output_dir, owner_id, ref_date):
            typer.echo(f"  Wrote {path}", err=True)
    _emit(_batch_payload(result, owner_id, ref_date))


@app.command("restock")
def restock(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    min_urgency: Optional[str] = typer.Option(
        None,
        "--min-urgency",
        help="Lowest urgency to include: critical, high, medium, low, all.",
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum recommendations."),
    output_dir: Optional[str] = typer.Option(
        None,
        "--output-dir",
        help="Write CSV/JSON/Parquet reports here ('default' uses data.output_dir).",
    ),
    today: Optional[str] = _TODAY_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List low-stock products that need reordering, most urgent first."""
    from msme_replenishment.exceptions import ReplenishmentError
    from msme_replenishment.service import build_service

    config = _setup(config_path)
    ref_date = _parse_today(today)
    service = build_service(config)

    try:
        result = service.get_restock_recommendations(
            owner_id, min_urgency=min_urgency, limit=limit, today=ref_date
        )
    except (ReplenishmentError, ValueError) as exc:
        _fail(exc)

    if output_dir:
        target = config.data.output_dir if output_dir == "default" else output_dir
        for path in _write_reports(result, target, owner_id, ref_date):
            typer.echo(f"  Wrote {path}", err=True)
    _emit(_batch_payload(result, owner_id, ref_date))


@app.command("trend")
def trend(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    product_id: str = typer.Argument(..., help="Product to analyze."),
    period_days: int = typer.Option(30, "--period-days", help="Lookback window (1-90 days)."),
    today: Optional[str] = _TODAY_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Explain the recent demand trend of one product."""
    from msme_replenishment.exceptions import ReplenishmentError
    from msme_replenishment.service import build_service

    config = _setup(config_path)
    ref_date = _parse_today(today)

    try:
        analysis = build_service(config).analyze_sales_trend(
            owner_id, product_id, period_days, today=ref_date
        )
    except ReplenishmentError as exc:
        _fail(exc)

    _emit(analysis.model_dump(mode="json"))


@app.command("set-rule")
def set_rule(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    product_id: str = typer.Argument(..., help="Product the rule applies to."),
    reorder_point: Optional[float] = typer.Option(None, "--reorder-point"),
    reorder_quantity: Optional[float] = typer.Option(None, "--reorder-quantity"),
    lead_time_days: Optional[int] = typer.Option(None, "--lead-time-days"),
    safety_stock: Optional[float] = typer.Option(
        None, "--safety-stock", help="Buffer stock in units."
    ),
    auto_reorder: Optional[bool] = typer.Option(None, "--auto-reorder/--no-auto-reorder"),
    supplier: Optional[str] = typer.Option(None, "--supplier", help="Preferred supplier id."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Create or update a product's reorder rule.

    Only the options given are changed on an existing rule.
    --reorder-point and --reorder-quantity are always required.
    """
    from msme_replenishment.exceptions import ReplenishmentError
    from msme_replenishment.models.rule import ReorderRuleUpdate
    from msme_replenishment.service import build_service

    config = _setup(config_path)

    supplied = {
        "reorder_point":         reorder_point,
        "reorder_quantity":      reorder_quantity,
        "lead_time_days":        lead_time_days,
        "safety_stock":          safety_stock,
        "auto_reorder":          auto_reorder,
        "preferred_supplier_id": supplier,
    }
    update = ReorderRuleUpdate(**{k: v for k, v in supplied.items() if v is not None})

    try:
        rule = build_service(config).set_reorder_rule(owner_id, product_id, update)
    except ReplenishmentError as exc:
        _fail(exc)

    _emit(rule.model_dump(mode="json"))


@app.command("aggregate-sales")
def aggregate_sales(
    owner_id: Optional[str] = typer.Option(
        None, "--owner", help="Rebuild rollups for one owner only."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Rebuild daily sales rollups from paid and partially paid invoices."""
    from msme_replenishment.service import build_service

    config = _setup(config_path)
    written = build_service(config).aggregate_daily_sales(owner_id)
    typer.echo(f"[OK] {written} daily rollup row(s) written.")


@app.command("record-sale")
def record_sale(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    items: List[str] = typer.Option(
        ..., "--item", help="PRODUCT=QTY sold; repeat for each line."
    ),
    invoice_id: Optional[str] = typer.Option(
        None, "--invoice-id", help="Invoice id (generated when omitted)."
    ),
    status: str = typer.Option("paid", "--status", help="paid or partial."),
    sold_at: Optional[str] = typer.Option(
        None, "--sold-at", help="Sale timestamp (ISO-8601). Defaults to now, UTC."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Record a sale and take the sold units out of stock."""
    from msme_replenishment.exceptions import ReplenishmentError
    from msme_replenishment.service import build_service

    config = _setup(config_path)
    lines = _parse_items(items)
    timestamp = _parse_sold_at(sold_at)

    try:
        invoice = build_service(config).record_sale(
            owner_id, lines, sold_at=timestamp, invoice_id=invoice_id, status=status
        )
    except (ReplenishmentError, ValueError) as exc:
        _fail(exc)

    payload = invoice.model_dump(mode="json")
    payload["items"] = [{"product_id": p, "quantity": q} for p, q in lines]
    _emit(payload)


@app.command("set-stock")
def set_stock(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    product_id: str = typer.Argument(..., help="Product to adjust."),
    quantity: float = typer.Argument(..., help="Units to set, add, or subtract."),
    operation: str = typer.Option("set", "--operation", help="set, add, or subtract."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Adjust a product's on-hand stock after a delivery or a count."""
    from msme_replenishment.exceptions import ReplenishmentError
    from msme_replenishment.service import build_service

    config = _setup(config_path)

    try:
        product = build_service(config).adjust_stock(owner_id, product_id, quantity, operation)
    except (ReplenishmentError, ValueError) as exc:
        _fail(exc)

    _emit(product.model_dump(mode="json"))


@app.command("invoice-status")
def invoice_status(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    invoice_id: str = typer.Argument(..., help="Invoice to update."),
    status: str = typer.Argument(..., help="draft, pending, partial, paid, or cancelled."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Change an invoice's status. Run aggregate-sales afterwards to refresh rollups."""
    from msme_replenishment.exceptions import ReplenishmentError
    from msme_replenishment.service import build_service

    config = _setup(config_path)

    try:
        build_service(config).set_invoice_status(owner_id, invoice_id, status)
    except (ReplenishmentError, ValueError) as exc:
        _fail(exc)

    typer.echo(f"[OK] Invoice {invoice_id} is now {status}.")


@app.command("history")
def history(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    product_id: str = typer.Argument(..., help="Product whose saved forecasts to list."),
    latest: bool = typer.Option(False, "--latest", help="Only the most recent snapshot."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show forecasts saved with ``forecast --save``."""
    from msme_replenishment.service import build_service

    config = _setup(config_path)
    service = build_service(config)

    if latest:
        snapshot = service.get_latest_forecast(owner_id, product_id)
        if snapshot is None:
            _fail(LookupError(f"No saved forecast for product '{product_id}'."))
        _emit(snapshot.model_dump(mode="json"))
        return

    _emit([p.model_dump(mode="json") for p in service.get_forecast_history(owner_id, product_id)])


@app.command("rules")
def rules(
    owner_id: str = typer.Argument(..., help="Catalog owner (business) id."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List every reorder rule the owner has set."""
    from msme_replenishment.service import build_service

    config = _setup(config_path)
    _emit([r.model_dump(mode="json") for r in build_service(config).list_reorder_rules(owner_id)])


@app.command("eoq")
def eoq(
    annual_demand: float = typer.Option(..., "--annual-demand", help="Units per year."),
    order_cost: float = typer.Option(..., "--order-cost", help="Fixed cost per order."),
    holding_cost: float = typer.Option(
        ..., "--holding-cost", help="Holding cost per unit per year."
    ),
) -> None:
    """Compute the Economic Order Quantity."""
    from msme_replenishment.forecasting.engine import economic_order_quantity

    try:
        quantity = economic_order_quantity(annual_demand, order_cost, holding_cost)
    except ValueError as exc:
        _fail(exc)

    _emit({"economic_order_quantity": quantity})


if __name__ == "__main__":
    app()
