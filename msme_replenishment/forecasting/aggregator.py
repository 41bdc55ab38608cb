"""
Batch recommendation aggregator.

Forecasts many products concurrently and returns them ranked most urgent
first. Each product is planned on a thread of a per-batch
``ThreadPoolExecutor`` (``max_workers = max_concurrency``) because planner
calls block on SQLite reads. An ``asyncio.Semaphore`` slot is taken before a
product is submitted and given back only when its thread finishes, and
``asyncio.wait_for`` bounds how long the batch waits for each product.

A product that raises or times out is logged, recorded in
``AggregationResult.skipped``, and left out of the ranking; the batch itself
never fails because of one product. A timed-out thread cannot be
cancelled: it keeps its slot until it finishes and its result is discarded.
The executor is shut down without waiting, so ``recommend`` returns as soon
as every product has either finished or timed out.

Ranking
-------
    key = (URGENCY_RANK[urgency], days_until_runout, product_id)

``filter_by_urgency`` then keeps tiers at or above a minimum urgency
(``"high"`` keeps critical and high; ``"all"`` keeps everything) and
truncates to ``limit``.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence

from msme_replenishment.config import AggregatorConfig
from msme_replenishment.forecasting.planner import ReplenishmentPlanner
from msme_replenishment.models.forecast import StockForecast
from msme_replenishment.models.product import Product
from msme_replenishment.taxonomy.replenishment_taxonomy import (
    URGENCY_FILTERS,
    URGENCY_RANK,
    Urgency,
)
from msme_replenishment.utils.time_utils import horizon_days

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkippedProduct:
    """A product left out of a batch, with the reason it failed."""

    product_id: str
    reason: str


@dataclass
class AggregationResult:
    """Outcome of one batch run.

    Attributes:
        forecasts:    Successful forecasts, ranked most urgent first.
        skipped:      Products that errored or timed out.
        horizon_days: Planning window the batch was requested for.
        considered:   Products planned after the low-stock pre-filter.
    """

    forecasts: list[StockForecast] = field(default_factory=list)
    skipped: list[SkippedProduct] = field(default_factory=list)
    horizon_days: int = 7
    considered: int = 0


def rank_forecasts(forecasts: Iterable[StockForecast]) -> list[StockForecast]:
    """Sort by urgency tier, then days until runout, then product id."""
    return sorted(
        forecasts,
        key=lambda f: (URGENCY_RANK[f.urgency], f.days_until_runout, f.product_id),
    )


def parse_urgency_filter(min_urgency: str) -> str:
    """Normalize an urgency filter value.

    Raises:
        ValueError: If the value is not a tier name or ``"all"``.
    """
    key = min_urgency.strip().lower()
    if key not in URGENCY_FILTERS:
        raise ValueError(
            f"Unknown urgency filter '{min_urgency}'. Must be one of {sorted(URGENCY_FILTERS)}."
        )
    return key


def filter_by_urgency(
    forecasts: Sequence[StockForecast],
    min_urgency: str = "high",
    limit: Optional[int] = None,
) -> list[StockForecast]:
    """Keep forecasts at or above ``min_urgency``, preserving order.

    Args:
        forecasts:   Ranked forecasts.
        min_urgency: ``critical``, ``high``, ``medium``, ``low`` or ``all``.
        limit:       Maximum number returned; ``None`` for no limit.

    Raises:
        ValueError: If ``min_urgency`` is unknown or ``limit`` is negative.
    """
    key = parse_urgency_filter(min_urgency)
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}.")

    if key == "all":
        kept = list(forecasts)
    else:
        max_rank = URGENCY_RANK[Urgency(key)]
        kept = [f for f in forecasts if URGENCY_RANK[f.urgency] <= max_rank]

    return kept if limit is None else kept[:limit]


class RecommendationAggregator:
    """Concurrent fan-out of ``ReplenishmentPlanner.plan_product``.

    Attributes:
        planner: Planner used for every product.
        config:  Concurrency cap and per-item timeout.
    """

    def __init__(
        self,
        planner: ReplenishmentPlanner,
        config: Optional[AggregatorConfig] = None,
    ) -> None:
        self.planner = planner
        self.config = config or AggregatorConfig()

    def recommend(
        self,
        owner_id: str,
        products: Sequence[Product],
        today: date,
        horizon: str = "week",
        only_low_stock: bool = True,
    ) -> AggregationResult:
        """Synchronous entry point; runs ``recommend_async`` in a fresh event loop."""
        return asyncio.run(
            self.recommend_async(owner_id, products, today, horizon, only_low_stock)
        )

    async def recommend_async(
        self,
        owner_id: str,
        products: Sequence[Product],
        today: date,
        horizon: str = "week",
        only_low_stock: bool = True,
    ) -> AggregationResult:
        """Forecast ``products`` concurrently and rank the results.

        Args:
            owner_id:       Catalog owner.
            products:       Candidate products.
            today:          Reference date for every forecast.
            horizon:        ``"week"`` or ``"month"``.
            only_low_stock: Plan only products at or below their threshold.

        Raises:
            ValueError: If ``horizon`` is unknown.
        """
        window = horizon_days(horizon)
        candidates = [p for p in products if p.is_low_stock] if only_low_stock else list(products)

        result = AggregationResult(horizon_days=window, considered=len(candidates))
        if not candidates:
            logger.info("No products to plan for owner=%s", owner_id)
            return result

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        executor = ThreadPoolExecutor(
            max_workers=self.config.max_concurrency,
            thread_name_prefix="replenish-plan",
        )
        try:
            tasks = [
                self._plan_one(executor, semaphore, owner_id, product, today)
                for product in candidates
            ]
            for coro in asyncio.as_completed(tasks):
                product_id, forecast, reason = await coro
                if forecast is not None:
                    result.forecasts.append(forecast)
                else:
                    result.skipped.append(SkippedProduct(product_id, reason or "unknown error"))
        finally:
            # Threads stalled past their timeout finish on their own.
            executor.shutdown(wait=False, cancel_futures=True)

        result.forecasts = rank_forecasts(result.forecasts)
        result.skipped.sort(key=lambda s: s.product_id)

        logger.info(
            "Planned %d/%d products for owner=%s (%d skipped)",
            len(result.forecasts), len(candidates), owner_id, len(result.skipped),
        )
        return result

    async def _plan_one(
        self,
        executor: ThreadPoolExecutor,
        semaphore: asyncio.Semaphore,
        owner_id: str,
        product: Product,
        today: date,
    ) -> tuple[str, Optional[StockForecast], Optional[str]]:
        loop = asyncio.get_running_loop()
        await semaphore.acquire()
        future = loop.run_in_executor(
            executor, self.planner.plan_product, owner_id, product, today
        )
        # The slot follows the thread, not the wait: a timed-out read still counts.
        future.add_done_callback(lambda _: semaphore.release())

        try:
            forecast = await asyncio.wait_for(
                asyncio.shield(future),
                timeout=self.config.item_timeout_seconds,
            )
            return product.id, forecast, None
        except TimeoutError:
            reason = f"timed out after {self.config.item_timeout_seconds:g}s"
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"

        logger.warning(
            "Skipping product=%s: %s", product.id, reason,
            extra={"owner_id": owner_id, "product_id": product.id},
        )
        return product.id, None, reason
