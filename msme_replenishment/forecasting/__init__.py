"""
Forecasting and replenishment core.

Modules
-------
engine     : moving_average(), seasonal_factor(), confidence(), detect_trend(),
             predict(), economic_order_quantity(). Pure functions, no I/O.
planner    : ReplenishmentPlanner + classify_urgency(): per-product policy.
aggregator : RecommendationAggregator, rank_forecasts(), filter_by_urgency(),
             for catalog-wide fan-out with failure isolation.
"""
