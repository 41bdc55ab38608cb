"""
Restock report writers: CSV, JSON, and Parquet output for ranked forecasts.

All functions are pure I/O with no DB access. They take an in-memory list of
``StockForecast`` (already ranked) and write one row per product.

Output files
------------
  data/outputs/restock/
    restock_{owner}_{date}.csv      -- flat rows, spreadsheet friendly
    restock_{owner}_{date}.json     -- rows plus run metadata and skips
    restock_{owner}_{date}.parquet  -- typed columns for analysis tools
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from pathlib import Path
from typing import Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from msme_replenishment.forecasting.aggregator import SkippedProduct
from msme_replenishment.models.forecast import StockForecast

logger = logging.getLogger(__name__)

REPORT_SCHEMA_VERSION = "v1"

FIELDNAMES = [
    "rank",
    "product_id",
    "product_name",
    "current_stock",
    "predicted_runout_date",
    "days_until_runout",
    "suggested_reorder_quantity",
    "confidence",
    "urgency",
    "should_reorder",
]

PARQUET_SCHEMA = pa.schema(
    [
        pa.field("rank",                       pa.int32(),   nullable=False),
        pa.field("product_id",                 pa.string(),  nullable=False),
        pa.field("product_name",               pa.string(),  nullable=False),
        pa.field("current_stock",              pa.float64(), nullable=False),
        pa.field("predicted_runout_date",      pa.date32(),  nullable=False),
        pa.field("days_until_runout",          pa.int32(),   nullable=False),
        pa.field("suggested_reorder_quantity", pa.int32(),   nullable=False),
        pa.field("confidence",                 pa.float64(), nullable=False),
        pa.field("urgency",                    pa.string(),  nullable=False),
        pa.field("should_reorder",             pa.bool_(),   nullable=False),
    ]
)


def report_path(output_dir: Path, owner_id: str, run_date: date, ext: str) -> Path:
    """``output_dir/restock_{owner}_{date}.{ext}``."""
    return output_dir / f"restock_{_safe_slug(owner_id)}_{run_date.isoformat()}.{ext}"


def forecast_rows(forecasts: Sequence[StockForecast]) -> list[dict]:
    """Flatten forecasts into report rows, numbering ranks from 1."""
    return [
        {
            "rank":                       rank,
            "product_id":                 f.product_id,
            "product_name":               f.product_name,
            "current_stock":              f.current_stock,
            "predicted_runout_date":      f.predicted_runout_date,
            "days_until_runout":          f.days_until_runout,
            "suggested_reorder_quantity": f.suggested_reorder_quantity,
            "confidence":                 f.confidence,
            "urgency":                    f.urgency.value,
            "should_reorder":             f.should_reorder,
        }
        for rank, f in enumerate(forecasts, start=1)
    ]


def write_forecast_csv(
    forecasts: Sequence[StockForecast],
    output_dir: Path,
    owner_id: str,
    run_date: date,
) -> Path:
    """Write ranked forecasts to ``restock_{owner}_{date}.csv``.

    Args:
        forecasts:  Ranked forecasts.
        output_dir: Target directory (created if missing).
        owner_id:   Catalog owner, used in the filename.
        run_date:   Reference date of the forecasts.

    Returns:
        Path to the written CSV file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = report_path(output_dir, owner_id, run_date, "csv")

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        writer.writeheader()
        for row in forecast_rows(forecasts):
            row["predicted_runout_date"] = row["predicted_runout_date"].isoformat()
            row["should_reorder"] = "yes" if row["should_reorder"] else "no"
            writer.writerow(row)

    logger.info("Restock CSV written: %s (%d rows)", csv_path, len(forecasts))
    return csv_path


def write_forecast_json(
    forecasts: Sequence[StockForecast],
    output_dir: Path,
    owner_id: str,
    run_date: date,
    horizon_days: int | None = None,
    skipped: Sequence[SkippedProduct] = (),
) -> Path:
    """Write ranked forecasts plus run metadata to ``restock_{owner}_{date}.json``.

    Returns:
        Path to the written JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    json_path = report_path(output_dir, owner_id, run_date, "json")

    payload: dict = {
        "schema_version": REPORT_SCHEMA_VERSION,
        "owner_id":       owner_id,
        "generated_for":  run_date.isoformat(),
        "horizon_days":   horizon_days,
        "count":          len(forecasts),
        "forecasts":      forecast_rows(forecasts),
        "skipped":        [{"product_id": s.product_id, "reason": s.reason} for s in skipped],
    }

    json_path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    logger.info("Restock JSON written: %s", json_path)
    return json_path


def write_forecast_parquet(
    forecasts: Sequence[StockForecast],
    output_dir: Path,
    owner_id: str,
    run_date: date,
) -> Path:
    """Write ranked forecasts to ``restock_{owner}_{date}.parquet`` (snappy).

    Returns:
        Path to the written Parquet file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    parquet_path = report_path(output_dir, owner_id, run_date, "parquet")

    rows = forecast_rows(forecasts)
    arrays = {
        field.name: pa.array([row[field.name] for row in rows], type=field.type)
        for field in PARQUET_SCHEMA
    }
    table = pa.table(arrays, schema=PARQUET_SCHEMA)
    pq.write_table(table, parquet_path, compression="snappy")

    logger.info("Restock Parquet written: %s (%d rows)", parquet_path, table.num_rows)
    return parquet_path


def _safe_slug(value: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else "-" for c in value) or "owner"
