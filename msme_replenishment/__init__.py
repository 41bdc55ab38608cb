"""
MSME Replenishment Forecaster.

Stock runout prediction, reorder sizing, and urgency-ranked restock
recommendations for small retailers.
"""

__version__ = "0.3.0"
