"""Semi-parametric Value-at-Risk from a fitted conditional volatility path.

The tail quantile comes from empirically standardized returns and is rescaled
by the model's time-varying sigma (filtered historical simulation style):

    VaR_t = q_(1 - confidence) * sigma_t

VaR is reported on the return scale, so a loss-side VaR is negative and a
breach is a return below it.
"""

from dataclasses import dataclass
from typing import Optional
import logging
import numpy as np
import pandas as pd
from scipy import stats

from data_manager.data_validator import ReturnSeriesValidator
from garch.diagnostics import DiagnosticTest
from garch.distributions import ppf
from garch.estimator import GARCHEstimator
from garch.exceptions import AlignmentError
from garch.models import FittedModel

logger = logging.getLogger(__name__)


def _check_confidence(confidence_level: float):
    if not 0.0 < confidence_level < 1.0:
        raise ValueError(f"confidence_level must lie in (0, 1), got {confidence_level}")


@dataclass(frozen=True)
class CalibrationQuantile:
    """Tail quantile of standardized returns and the window it came from"""
    value: float
    confidence_level: float
    window_start: object
    window_end: object
    nobs: int
    source: str = 'empirical'


@dataclass(frozen=True, eq=False)
class VaRSeries:
    """VaR aligned one-to-one with a fitted conditional-variance index"""
    values: pd.Series
    quantile: CalibrationQuantile
    frozen: bool
    model: str

    @property
    def confidence_level(self) -> float:
        return self.quantile.confidence_level

    @property
    def index(self) -> pd.Index:
        return self.values.index

    def __len__(self) -> int:
        return len(self.values)


class VaREstimator:
    """Scales a calibration quantile by conditional volatility"""

    def __init__(self, ddof: int = 1, estimator: Optional[GARCHEstimator] = None):
        """
        Args:
            ddof: Delta degrees of freedom of the standardizing standard deviation
            estimator: Produces one-step variance forecasts for ``forecast``
        """
        self.ddof = ddof
        self.estimator = estimator or GARCHEstimator()
        self.validator = ReturnSeriesValidator()
        self.logger = logging.getLogger('risk.var')

    def calibration_quantile(self, series, confidence_level: float) -> CalibrationQuantile:
        """Empirical (1 - confidence) quantile of (r - mean) / std over ``series``"""
        _check_confidence(confidence_level)
        returns = self.validator.prepare(series)
        values = returns.to_numpy()
        standardized = (values - values.mean()) / values.std(ddof=self.ddof)
        quantile = float(np.quantile(standardized, 1.0 - confidence_level))
        return CalibrationQuantile(
            value=quantile,
            confidence_level=confidence_level,
            window_start=returns.index[0],
            window_end=returns.index[-1],
            nobs=len(returns)
        )

    @staticmethod
    def parametric_quantile(fitted: FittedModel, confidence_level: float) -> CalibrationQuantile:
        """Quantile of the fitted error distribution instead of the empirical one"""
        _check_confidence(confidence_level)
        nu = fitted.estimates.get('nu')
        return CalibrationQuantile(
            value=ppf(1.0 - confidence_level, fitted.spec.distribution, nu),
            confidence_level=confidence_level,
            window_start=fitted.returns.index[0],
            window_end=fitted.returns.index[-1],
            nobs=fitted.nobs,
            source='parametric'
        )

    @staticmethod
    def _fitting_window(fitted: FittedModel, series: pd.Series) -> pd.Series:
        """Slice of ``series`` covering the fitted sample; must be contiguous"""
        target = fitted.returns.index
        positions = series.index.get_indexer(target)
        if np.any(positions < 0):
            missing = int(np.sum(positions < 0))
            raise AlignmentError(
                f"Standardization series lacks {missing} of the {len(target)} fitted timestamps"
            )
        if len(positions) > 1 and np.any(np.diff(positions) != 1):
            raise AlignmentError("Fitted timestamps are not contiguous in the standardization series")
        return series.iloc[positions[0]:positions[-1] + 1]

    def estimate(self, fitted: FittedModel, confidence_level: float,
                 standardization_series=None,
                 frozen_quantile: Optional[CalibrationQuantile] = None) -> VaRSeries:
        """
        VaR series for a fitted model

        Exactly one quantile source must be supplied:

        Args:
            fitted: Model whose conditional volatility scales the quantile
            confidence_level: e.g. 0.99 for the 1% lower tail
            standardization_series: Returns from which the quantile is derived over
                the fitted window
            frozen_quantile: Quantile calibrated elsewhere (e.g. in-sample) and
                reused as-is against this model's volatility path

        Returns:
            VaRSeries on the fitted conditional-variance index
        """
        _check_confidence(confidence_level)
        if (standardization_series is None) == (frozen_quantile is None):
            raise ValueError(
                "Provide exactly one of standardization_series or frozen_quantile"
            )

        if frozen_quantile is not None:
            if not np.isclose(frozen_quantile.confidence_level, confidence_level):
                raise ValueError(
                    f"Frozen quantile was calibrated at {frozen_quantile.confidence_level}, "
                    f"not {confidence_level}"
                )
            quantile = frozen_quantile
            frozen = True
        else:
            series = self.validator.as_series(standardization_series)
            if not isinstance(standardization_series, pd.Series):
                # unlabeled input must line up with the fitted returns
                if len(series) != fitted.nobs:
                    raise AlignmentError(
                        f"Unlabeled standardization series has {len(series)} values, "
                        f"fitted sample has {fitted.nobs}"
                    )
                series.index = fitted.returns.index
            window = self._fitting_window(fitted, series)
            quantile = self.calibration_quantile(window, confidence_level)
            frozen = False

        if quantile.value >= 0:
            self.logger.warning(
                f"Calibration quantile {quantile.value:.4f} is not in the loss tail"
            )

        values = (quantile.value * fitted.conditional_volatility).rename('VaR')
        self.logger.info(
            f"VaR for {fitted.spec.label} at {confidence_level:.2%}:\n"
            f"  Quantile: {quantile.value:.4f} ({'frozen' if frozen else 'window'}, "
            f"{quantile.window_start} to {quantile.window_end})\n"
            f"  Mean VaR: {values.mean():.6f}\n"
            f"  Min VaR:  {values.min():.6f}"
        )
        return VaRSeries(values=values, quantile=quantile, frozen=frozen, model=fitted.spec.label)

    def forecast(self, fitted: FittedModel, quantile: CalibrationQuantile) -> float:
        """Next-period VaR from the one-step-ahead variance forecast"""
        variance = self.estimator.forecast_variance(fitted)
        return float(quantile.value * np.sqrt(variance))

    @staticmethod
    def _aligned(returns, var_series: VaRSeries) -> pd.Series:
        if isinstance(returns, pd.Series):
            missing = var_series.index.difference(returns.index)
            if len(missing) > 0:
                raise AlignmentError(
                    f"Returns lack {len(missing)} VaR timestamps (first: {missing[0]})"
                )
            return returns.loc[var_series.index].astype(float)
        values = np.asarray(returns, dtype=float)
        if values.shape[0] != len(var_series):
            raise AlignmentError(
                f"Got {values.shape[0]} returns for {len(var_series)} VaR values"
            )
        return pd.Series(values, index=var_series.index)

    def breach_rate(self, returns, var_series: VaRSeries) -> float:
        """Fraction of observations with a return below VaR"""
        aligned = self._aligned(returns, var_series)
        if len(aligned) == 0:
            raise ValueError("No observations to evaluate")
        return float(np.mean(aligned.to_numpy() < var_series.values.to_numpy()))

    def kupiec_test(self, returns, var_series: VaRSeries,
                    significance_level: float = 0.05) -> DiagnosticTest:
        """Kupiec proportion-of-failures likelihood-ratio test of the breach rate"""
        aligned = self._aligned(returns, var_series)
        n = len(aligned)
        if n == 0:
            raise ValueError("No observations to evaluate")
        breaches = int(np.sum(aligned.to_numpy() < var_series.values.to_numpy()))
        expected = 1.0 - var_series.confidence_level
        observed = breaches / n

        loglik_null = stats.binom.logpmf(breaches, n, expected)
        loglik_alt = stats.binom.logpmf(breaches, n, observed) if 0 < breaches < n else 0.0
        statistic = float(max(-2.0 * (loglik_null - loglik_alt), 0.0))
        critical = float(stats.chi2.ppf(1.0 - significance_level, 1))
        return DiagnosticTest(
            name='kupiec_pof',
            statistic=statistic,
            critical_value=critical,
            p_value=float(stats.chi2.sf(statistic, 1)),
            rejected=bool(statistic > critical)
        )
