"""
Risk measures built on fitted volatility models.
"""

from .var_estimator import CalibrationQuantile, VaREstimator, VaRSeries

__all__ = ['CalibrationQuantile', 'VaREstimator', 'VaRSeries']
