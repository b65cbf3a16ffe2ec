"""
Data management package for volatility analysis.
Handles validation of cleaned return series.
"""

from .data_validator import ReturnSeriesValidator

__all__ = ['ReturnSeriesValidator']
