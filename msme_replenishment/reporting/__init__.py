"""
Report writers for restock recommendations.

Modules
-------
reporter : write_forecast_csv() + write_forecast_json() + write_forecast_parquet().
"""
