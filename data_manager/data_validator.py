"""
Validation of cleaned log-return series before volatility estimation.
"""

import logging
import numpy as np
import pandas as pd
from typing import List, Tuple

from garch.exceptions import DegenerateSeriesError, InvalidSeriesError

logger = logging.getLogger(__name__)


class ReturnSeriesValidator:
    """Checks that a return series is ordered, gap-free and informative."""

    def __init__(self):
        # Daily log-returns beyond these bounds usually mean percent units
        # or a broken price history upstream
        self.validation_bounds = {
            'log_return': {'min': -1.0, 'max': 1.0},
        }
        # Relative variance below which a series is treated as constant
        self.variance_tolerance = 1e-14

    def as_series(self, data) -> pd.Series:
        """Coerce arrays and lists to a float Series (RangeIndex when unlabeled)"""
        if isinstance(data, pd.DataFrame):
            if data.shape[1] != 1:
                raise InvalidSeriesError(
                    f"Expected a single return column, got {data.shape[1]}"
                )
            data = data.iloc[:, 0]
        if isinstance(data, pd.Series):
            series = data.astype(float)
        else:
            values = np.asarray(data, dtype=float)
            if values.ndim != 1:
                raise InvalidSeriesError(f"Returns must be one-dimensional, got shape {values.shape}")
            series = pd.Series(values)
        return series.rename(series.name if series.name is not None else 'returns')

    def validate_data(self, series: pd.Series) -> Tuple[bool, List[str]]:
        """
        Validates a return series.

        Args:
            series: Log returns indexed by timestamp

        Returns:
            Tuple of (is_valid, list_of_issues)
        """
        issues = []

        if len(series) == 0:
            return False, ["Series is empty"]

        missing_count = int(series.isna().sum())
        if missing_count > 0:
            issues.append(
                f"Series has {missing_count} missing values "
                f"(first occurrence at index {series.index[series.isna()][0]})"
            )

        infinite = np.isinf(series.to_numpy(dtype=float, na_value=0.0))
        if infinite.any():
            issues.append(f"Series has {int(infinite.sum())} infinite values")

        if series.index.has_duplicates:
            issues.append("Index contains duplicate timestamps")
        if not series.index.is_monotonic_increasing:
            issues.append("Index is not strictly increasing")

        return len(issues) == 0, issues

    def _validate_bounds(self, series: pd.Series, min_val: float, max_val: float, name: str) -> List[str]:
        """Values outside the expected range, reported as warnings"""
        issues = []

        below_min = series[series < min_val]
        if not below_min.empty:
            issues.append(
                f"{name}: {len(below_min)} values below minimum of {min_val} "
                f"(first occurrence at index {below_min.index[0]})"
            )

        above_max = series[series > max_val]
        if not above_max.empty:
            issues.append(
                f"{name}: {len(above_max)} values above maximum of {max_val} "
                f"(first occurrence at index {above_max.index[0]})"
            )

        return issues

    def prepare(self, data) -> pd.Series:
        """Validated copy of ``data``; raises on malformed or constant series"""
        series = self.as_series(data)
        is_valid, issues = self.validate_data(series)
        if not is_valid:
            logger.error(f"Invalid return series: {'; '.join(issues)}")
            raise InvalidSeriesError("; ".join(issues))

        bounds = self.validation_bounds['log_return']
        for issue in self._validate_bounds(series, bounds['min'], bounds['max'], 'log return'):
            logger.warning(f"{issue} - are returns in percent?")

        variance = float(np.var(series.to_numpy()))
        scale = float(np.mean(series.to_numpy() ** 2))
        if variance <= self.variance_tolerance * max(scale, 1.0):
            raise DegenerateSeriesError(
                f"Return series has zero variance over {len(series)} observations"
            )

        return series.copy()
