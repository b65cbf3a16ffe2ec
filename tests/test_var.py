import pytest
import numpy as np
import pandas as pd

from conftest import GARCH_SPEC
from garch.estimator import GARCHEstimator
from garch.exceptions import AlignmentError
from garch.models import FittedModel, ModelSpec, ParameterEstimate
from risk.var_estimator import CalibrationQuantile, VaREstimator, VaRSeries


def make_fitted(returns: pd.Series, sigma2) -> FittedModel:
    """Hand-built fitted model with a prescribed variance path"""
    spec = ModelSpec('arch', q=1, p=0)
    params = {
        name: ParameterEstimate(name, value, np.nan, np.nan, np.nan, False)
        for name, value in zip(spec.parameter_names, (0.0, float(np.mean(sigma2)), 0.0))
    }
    return FittedModel(
        spec=spec,
        nobs=len(returns),
        burn_in=0,
        params=params,
        returns=returns,
        residuals=returns.rename('residual'),
        conditional_variance=pd.Series(sigma2, index=returns.index, name='conditional_variance'),
        loglikelihood=0.0,
        backcast=float(np.var(returns)),
        scale=1.0,
        covariance=np.eye(spec.n_params),
    )


@pytest.fixture
def sample():
    rng = np.random.default_rng(21)
    returns = pd.Series(rng.standard_normal(1000) * 0.01,
                        index=pd.bdate_range('2015-01-01', periods=1000), name='returns')
    return returns


@pytest.fixture
def var_estimator():
    return VaREstimator()


def test_constant_sigma_gives_constant_var(var_estimator, sample):
    fitted = make_fitted(sample, np.full(len(sample), 1e-4))
    result = var_estimator.estimate(fitted, 0.99, standardization_series=sample)

    assert np.allclose(result.values, result.values.iloc[0])
    assert result.values.iloc[0] == pytest.approx(result.quantile.value * 0.01)
    assert result.values.index.equals(fitted.conditional_variance.index)


def test_var_is_quantile_times_sigma(var_estimator, garch_fit, garch_returns):
    result = var_estimator.estimate(garch_fit, 0.99, standardization_series=garch_returns)
    expected = result.quantile.value * np.sqrt(garch_fit.conditional_variance)
    np.testing.assert_allclose(result.values.to_numpy(), expected.to_numpy())
    assert result.values.name == 'VaR'
    assert not result.frozen
    assert result.model == garch_fit.spec.label
    assert len(result) == len(garch_fit.conditional_variance)


def test_calibration_quantile_definition(var_estimator, sample):
    quantile = var_estimator.calibration_quantile(sample, 0.99)
    standardized = (sample - sample.mean()) / sample.std(ddof=1)
    assert quantile.value == pytest.approx(np.quantile(standardized, 0.01))
    assert quantile.value < 0
    assert quantile.window_start == sample.index[0]
    assert quantile.window_end == sample.index[-1]
    assert quantile.nobs == len(sample)


def test_exactly_one_quantile_source(var_estimator, sample):
    fitted = make_fitted(sample, np.full(len(sample), 1e-4))
    frozen = var_estimator.calibration_quantile(sample, 0.99)

    with pytest.raises(ValueError):
        var_estimator.estimate(fitted, 0.99)
    with pytest.raises(ValueError):
        var_estimator.estimate(fitted, 0.99, standardization_series=sample, frozen_quantile=frozen)


def test_frozen_quantile_reused(var_estimator, sample):
    in_sample, out_of_sample = sample.iloc[:600], sample.iloc[600:]
    frozen = var_estimator.calibration_quantile(in_sample, 0.99)
    fitted = make_fitted(out_of_sample, np.full(len(out_of_sample), 4e-4))

    result = var_estimator.estimate(fitted, 0.99, frozen_quantile=frozen)
    assert result.frozen
    assert result.quantile is frozen
    assert result.values.iloc[0] == pytest.approx(frozen.value * 0.02)

    with pytest.raises(ValueError):
        var_estimator.estimate(fitted, 0.95, frozen_quantile=frozen)


def test_misaligned_standardization_series(var_estimator, sample):
    fitted = make_fitted(sample.iloc[100:], np.full(900, 1e-4))

    with pytest.raises(AlignmentError):
        var_estimator.estimate(fitted, 0.99, standardization_series=sample.iloc[:500])
    with pytest.raises(AlignmentError):
        var_estimator.estimate(fitted, 0.99, standardization_series=sample.to_numpy())

    # unlabeled values of the right length take the fitted index
    result = var_estimator.estimate(fitted, 0.99, standardization_series=sample.iloc[100:].to_numpy())
    assert result.index.equals(fitted.conditional_variance.index)


def test_standardization_uses_fitted_window_only(var_estimator, sample):
    """Observations outside the fitted window do not affect the quantile"""
    fitted = make_fitted(sample.iloc[200:800], np.full(600, 1e-4))
    wide = var_estimator.estimate(fitted, 0.99, standardization_series=sample)
    exact = var_estimator.estimate(fitted, 0.99, standardization_series=sample.iloc[200:800])
    assert wide.quantile.value == exact.quantile.value


def test_breach_rate_calibrated(long_garch_returns):
    """Breach rate of a correctly specified model is near 1 - confidence"""
    fitted = GARCHEstimator().fit(long_garch_returns, GARCH_SPEC)
    var_estimator = VaREstimator()
    result = var_estimator.estimate(fitted, 0.99, standardization_series=long_garch_returns)

    rate = var_estimator.breach_rate(long_garch_returns, result)
    band = 4.0 * np.sqrt(0.01 * 0.99 / len(result))
    assert abs(rate - 0.01) < band


def test_breach_rate_counts(var_estimator, sample):
    fitted = make_fitted(sample, np.full(len(sample), 1e-4))
    quantile = CalibrationQuantile(value=-1.0, confidence_level=0.9,
                                   window_start=None, window_end=None, nobs=0)
    result = var_estimator.estimate(fitted, 0.9, frozen_quantile=quantile)
    expected = float(np.mean(sample.to_numpy() < -0.01))
    assert var_estimator.breach_rate(sample, result) == pytest.approx(expected)
    assert var_estimator.breach_rate(sample.to_numpy(), result) == pytest.approx(expected)

    with pytest.raises(AlignmentError):
        var_estimator.breach_rate(sample.iloc[:10], result)
    with pytest.raises(AlignmentError):
        var_estimator.breach_rate(sample.to_numpy()[:10], result)


def test_kupiec_test(var_estimator):
    index = pd.RangeIndex(1000)
    var_values = pd.Series(np.full(1000, -1.0), index=index, name='VaR')
    calibrated = np.zeros(1000)
    calibrated[:10] = -2.0
    heavy = np.zeros(1000)
    heavy[:60] = -2.0

    quantile = CalibrationQuantile(-1.0, 0.99, None, None, 0)
    var_series = VaRSeries(values=var_values, quantile=quantile, frozen=True, model='test')

    passed = var_estimator.kupiec_test(calibrated, var_series)
    assert passed.statistic == pytest.approx(0.0, abs=1e-9)
    assert not passed.rejected

    failed = var_estimator.kupiec_test(heavy, var_series)
    assert failed.rejected
    assert failed.p_value < 0.001


def test_kupiec_test_without_observations(var_estimator):
    quantile = CalibrationQuantile(-1.0, 0.99, None, None, 0)
    empty = VaRSeries(values=pd.Series([], dtype=float, name='VaR'), quantile=quantile,
                      frozen=True, model='test')
    with pytest.raises(ValueError, match='No observations'):
        var_estimator.kupiec_test(pd.Series([], dtype=float), empty)
    with pytest.raises(ValueError, match='No observations'):
        var_estimator.breach_rate(np.array([]), empty)


def test_parametric_quantile(garch_fit):
    quantile = VaREstimator.parametric_quantile(garch_fit, 0.99)
    assert quantile.source == 'parametric'
    assert quantile.value == pytest.approx(-2.3263, abs=1e-4)


def test_forecast_uses_next_period_variance(var_estimator, garch_fit):
    quantile = CalibrationQuantile(-2.5, 0.99, None, None, 0)
    variance = var_estimator.estimator.forecast_variance(garch_fit)
    assert var_estimator.forecast(garch_fit, quantile) == pytest.approx(-2.5 * np.sqrt(variance))


def test_invalid_confidence(var_estimator, sample):
    with pytest.raises(ValueError):
        var_estimator.calibration_quantile(sample, 1.5)
