"""
Log setup for ``msme-replenish`` commands.

The CLI calls ``configure_logging(config.logging)`` before it builds the
service; library modules only ever ask for ``logging.getLogger(__name__)``.

Records go to stderr, so a command's JSON result on stdout can be piped
straight into another tool. A file copy is kept when ``log_file`` is set.

With ``json_format = true`` each record is one JSON line. Per-product
warnings from the planner and the batch aggregator pass ``owner_id`` and
``product_id`` through ``extra=``, so a skipped product can be found by id::

    {"ts": "2026-03-16T09:00:02Z", "level": "WARNING",
     "logger": "msme_replenishment.forecasting.aggregator",
     "msg": "Skipping product=rice-5kg: timed out after 10s",
     "owner_id": "shop-1", "product_id": "rice-5kg"}
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from msme_replenishment.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Attributes every LogRecord carries; anything else came in through extra=.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class _JsonFormatter(logging.Formatter):
    """Emit one JSON object per log line.

    Fields: ``ts``, ``level``, ``logger``, ``msg``, plus any ``extra=`` keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                LOG_DATE_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        for key, val in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = val
        return json.dumps(payload, default=str)


def _attach(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(config: "LoggingConfig") -> None:
    """Point the root logger at stderr (and ``config.log_file`` when set).

    Safe to call again: ``force=True`` replaces handlers from a previous call,
    so repeated command runs in one process never stack handlers.

    Args:
        config: ``[logging]`` section of ``AppConfig``.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    formatter: logging.Formatter
    if config.json_format:
        formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        # timestamps carry a Z suffix, so render them in UTC
        formatter.converter = time.gmtime

    handlers = [_attach(logging.StreamHandler(sys.stderr), level, formatter)]

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _attach(logging.FileHandler(log_path, encoding="utf-8"), level, formatter)
        )

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Worker-pool and Parquet internals are noisy at DEBUG.
    for name in ("asyncio", "concurrent.futures", "pyarrow"):
        logging.getLogger(name).setLevel(logging.WARNING)
