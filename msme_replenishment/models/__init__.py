"""
Pydantic domain models.

Modules
-------
product    : Product, a catalog row with its current stock level.
sales      : SalesDataPoint, SalesLine, Invoice. Daily series points and raw sale lines.
rule       : ReorderRule, ReorderRuleUpdate. Per-product replenishment policy.
forecast   : ForecastResult, StockForecast, SalesTrendAnalysis, StockPrediction.
"""
