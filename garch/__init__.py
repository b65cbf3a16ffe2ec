"""
GARCH modeling package for volatility analysis.
Implements ARCH, GARCH and EGARCH estimation, candidate selection and diagnostics.

Estimation classes live in their submodules (``garch.estimator``,
``garch.selector``, ``garch.diagnostics``); the package namespace carries the
model types and errors shared with ``data_manager`` and ``risk``.
"""

from .exceptions import (AlignmentError, ConvergenceFailure, DegenerateSeriesError,
                         GARCHError, InsufficientDataError, InvalidSeriesError,
                         InvalidSpec, NonStationaryFit)
from .models import FitFailure, FittedModel, ModelSpec, RankedModel, SelectionResult

__all__ = [
    'ModelSpec', 'FittedModel', 'FitFailure', 'RankedModel', 'SelectionResult',
    'GARCHError', 'InvalidSpec', 'InvalidSeriesError', 'InsufficientDataError',
    'DegenerateSeriesError', 'ConvergenceFailure', 'NonStationaryFit', 'AlignmentError',
]
