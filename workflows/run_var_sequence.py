"""Complete model selection and VaR workflow with proper sequencing"""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging
import pandas as pd

from data_manager.data_validator import ReturnSeriesValidator
from garch.diagnostics import DiagnosticReport, DiagnosticSuite, DiagnosticTest
from garch.estimator import GARCHEstimator
from garch.models import FittedModel, SelectionResult
from garch.selector import ModelSelector
from risk.var_estimator import VaREstimator, VaRSeries
from workflows.config import AnalysisConfig, SplitPoint


@dataclass(frozen=True, eq=False)
class VaRAnalysis:
    """Outputs of one in-sample (and optional out-of-sample) run"""
    config: AnalysisConfig
    selection: SelectionResult
    diagnostics: DiagnosticReport
    in_sample_var: VaRSeries
    in_sample_breach_rate: float
    in_sample_kupiec: DiagnosticTest
    next_period_var: float
    out_of_sample_fit: Optional[FittedModel] = None
    out_of_sample_var: Optional[VaRSeries] = None
    out_of_sample_breach_rate: Optional[float] = None
    out_of_sample_kupiec: Optional[DiagnosticTest] = None

    @property
    def fitted(self) -> FittedModel:
        return self.selection.best_fit

    def summary(self) -> pd.DataFrame:
        rows = [{
            'window': 'in_sample',
            'model': self.fitted.spec.label,
            'nobs': len(self.in_sample_var),
            'quantile': self.in_sample_var.quantile.value,
            'breach_rate': self.in_sample_breach_rate,
            'expected_rate': 1.0 - self.config.confidence_level,
            'kupiec_p_value': self.in_sample_kupiec.p_value,
        }]
        if self.out_of_sample_var is not None:
            rows.append({
                'window': 'out_of_sample',
                'model': self.out_of_sample_fit.spec.label,
                'nobs': len(self.out_of_sample_var),
                'quantile': self.out_of_sample_var.quantile.value,
                'breach_rate': self.out_of_sample_breach_rate,
                'expected_rate': 1.0 - self.config.confidence_level,
                'kupiec_p_value': self.out_of_sample_kupiec.p_value,
            })
        return pd.DataFrame(rows).set_index('window')


def split_series(series, split: SplitPoint) -> Tuple[pd.Series, Optional[pd.Series]]:
    """
    Split a return series into in-sample and out-of-sample windows

    Args:
        series: Return series
        split: None (no out-of-sample window), a fraction in (0, 1) of the
               observations kept in sample, or the first out-of-sample timestamp

    Returns:
        Tuple of (in_sample, out_of_sample or None)
    """
    returns = ReturnSeriesValidator().as_series(series)
    if split is None:
        return returns, None

    if isinstance(split, float):
        if not 0.0 < split < 1.0:
            raise ValueError(f"Split fraction must lie in (0, 1), got {split}")
        cut = int(round(len(returns) * split))
        in_sample, out_of_sample = returns.iloc[:cut], returns.iloc[cut:]
    else:
        if isinstance(returns.index, pd.DatetimeIndex):
            split = pd.Timestamp(split)
        in_sample = returns[returns.index < split]
        out_of_sample = returns[returns.index >= split]

    if len(in_sample) == 0 or len(out_of_sample) == 0:
        raise ValueError(
            f"Split at {split} leaves {len(in_sample)} in-sample and "
            f"{len(out_of_sample)} out-of-sample observations"
        )
    return in_sample, out_of_sample


def run_var_sequence(series, config: AnalysisConfig) -> VaRAnalysis:
    """
    Run complete selection and VaR sequence with proper temporal ordering

    Steps:
    1. Split the series at the configured out-of-sample start
    2. Select the best candidate on the in-sample window
    3. Diagnose the selected model
    4. In-sample VaR and breach statistics
    5. Refit the selected specification on the out-of-sample window and
       apply the frozen or re-derived quantile to its sigma path
    """
    logger = logging.getLogger('var_sequence')

    try:
        # 1. Initialize components
        estimator = GARCHEstimator(
            max_iterations=config.max_iterations,
            time_budget=config.time_budget,
            significance_level=config.significance_level,
            covariance_type=config.covariance_type
        )
        selector = ModelSelector(
            estimator=estimator,
            criterion=config.criterion,
            max_workers=config.max_workers
        )
        diagnostics = DiagnosticSuite(
            lags=config.diagnostic_lags,
            significance_level=config.significance_level,
            estimator=estimator
        )
        var_estimator = VaREstimator(estimator=estimator)

        in_sample, out_of_sample = split_series(series, config.out_of_sample_start)
        logger.info(
            f"Analysis windows:\n"
            f"  In-sample: {in_sample.index[0]} to {in_sample.index[-1]} ({len(in_sample)} obs)\n"
            + (
                f"  Out-of-sample: {out_of_sample.index[0]} to {out_of_sample.index[-1]} "
                f"({len(out_of_sample)} obs)"
                if out_of_sample is not None else "  Out-of-sample: none"
            )
        )

        # 2. Model selection
        logger.info(f"Selecting among {len(config.candidates)} candidates by {config.criterion.upper()}")
        selection = selector.select(in_sample, config.candidates)
        fitted = selection.best_fit

        # 3. Diagnostics on the winner
        report = diagnostics.run(fitted)

        # 4. In-sample VaR
        in_sample_var = var_estimator.estimate(
            fitted,
            config.confidence_level,
            standardization_series=in_sample
        )
        in_sample_breach = var_estimator.breach_rate(in_sample, in_sample_var)
        in_sample_kupiec = var_estimator.kupiec_test(
            in_sample, in_sample_var, significance_level=config.significance_level
        )
        logger.info(
            f"In-sample VaR breach rate {in_sample_breach:.4f} "
            f"(expected {1.0 - config.confidence_level:.4f})"
        )

        if out_of_sample is None:
            next_period = var_estimator.forecast(fitted, in_sample_var.quantile)
            return VaRAnalysis(
                config=config,
                selection=selection,
                diagnostics=report,
                in_sample_var=in_sample_var,
                in_sample_breach_rate=in_sample_breach,
                in_sample_kupiec=in_sample_kupiec,
                next_period_var=next_period
            )

        # 5. Out-of-sample refit of the selected specification
        logger.info(f"Refitting {fitted.spec.label} on the out-of-sample window")
        oos_fit = estimator.fit(out_of_sample, fitted.spec)
        if config.freeze_quantile:
            oos_var = var_estimator.estimate(
                oos_fit,
                config.confidence_level,
                frozen_quantile=in_sample_var.quantile
            )
        else:
            oos_var = var_estimator.estimate(
                oos_fit,
                config.confidence_level,
                standardization_series=out_of_sample
            )
        oos_breach = var_estimator.breach_rate(out_of_sample, oos_var)
        oos_kupiec = var_estimator.kupiec_test(
            out_of_sample, oos_var, significance_level=config.significance_level
        )
        next_period = var_estimator.forecast(oos_fit, oos_var.quantile)

        logger.info(
            f"Out-of-sample VaR ({'frozen' if config.freeze_quantile else 're-derived'} quantile):\n"
            f"  Breach rate: {oos_breach:.4f} (expected {1.0 - config.confidence_level:.4f})\n"
            f"  Kupiec LR: {oos_kupiec.statistic:.4f} (p={oos_kupiec.p_value:.4f})\n"
            f"  Next-period VaR: {next_period:.6f}"
        )

        return VaRAnalysis(
            config=config,
            selection=selection,
            diagnostics=report,
            in_sample_var=in_sample_var,
            in_sample_breach_rate=in_sample_breach,
            in_sample_kupiec=in_sample_kupiec,
            next_period_var=next_period,
            out_of_sample_fit=oos_fit,
            out_of_sample_var=oos_var,
            out_of_sample_breach_rate=oos_breach,
            out_of_sample_kupiec=oos_kupiec
        )

    except Exception as e:
        logger.error(f"Error in VaR sequence: {str(e)}")
        raise
