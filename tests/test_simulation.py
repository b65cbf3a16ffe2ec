import pytest
import numpy as np
import pandas as pd

from conftest import ARCH_PARAMS, ARCH_SPEC, EGARCH_PARAMS, EGARCH_SPEC
from garch.exceptions import InvalidSpec
from garch.models import ModelSpec
from garch.simulation import simulate_returns


def test_seeded_simulation_is_reproducible():
    first = simulate_returns(ARCH_SPEC, ARCH_PARAMS, 500, seed=9)
    second = simulate_returns(ARCH_SPEC, ARCH_PARAMS, 500, seed=9)
    other = simulate_returns(ARCH_SPEC, ARCH_PARAMS, 500, seed=10)

    pd.testing.assert_series_equal(first, second)
    assert not np.allclose(first.to_numpy(), other.to_numpy())
    assert isinstance(first.index, pd.RangeIndex)
    assert first.name == 'returns'


def test_arch_unconditional_variance():
    """Sample variance of ARCH(1) is near omega / (1 - alpha)"""
    series = simulate_returns(ARCH_SPEC, ARCH_PARAMS, 20000, seed=2)
    expected = ARCH_PARAMS['omega'] / (1.0 - ARCH_PARAMS['alpha[1]'])
    assert series.var() == pytest.approx(expected, rel=0.1)
    assert abs(series.mean()) < 4 * np.sqrt(expected / len(series))


def test_egarch_studentst_log_variance_level():
    """Log variance averages omega / (1 - beta) with the Student-t centring"""
    spec = EGARCH_SPEC.with_distribution('studentst')
    params = dict(EGARCH_PARAMS, nu=8.0)
    series = simulate_returns(spec, params, 20000, seed=4)
    expected_log_var = params['omega'] / (1.0 - params['beta[1]'])
    # E[ln sigma^2] sits below ln E[r^2]; a loose band suffices
    assert abs(np.log(series.var()) - expected_log_var) < 0.6


def test_ar_mean_simulation():
    spec = ModelSpec('garch', 1, 1, mean_order=1)
    params = {'mu': 0.0, 'phi[1]': 0.5, 'omega': 5e-6, 'alpha[1]': 0.05, 'beta[1]': 0.9}
    series = simulate_returns(spec, params, 5000, seed=8)
    autocorrelation = series.autocorr(lag=1)
    assert autocorrelation == pytest.approx(0.5, abs=0.06)


def test_custom_index():
    index = pd.bdate_range('2020-01-01', periods=300)
    series = simulate_returns(ARCH_SPEC, ARCH_PARAMS, 300, seed=1, index=index)
    assert series.index.equals(index)

    with pytest.raises(ValueError):
        simulate_returns(ARCH_SPEC, ARCH_PARAMS, 200, seed=1, index=index)


def test_invalid_requests():
    with pytest.raises(InvalidSpec):
        simulate_returns(ModelSpec('garch', 1, 1, mean_in_variance=True),
                         {'mu': 0, 'delta': 0.1, 'omega': 1e-6, 'alpha[1]': 0.1, 'beta[1]': 0.8}, 100)
    with pytest.raises(InvalidSpec):
        simulate_returns(ARCH_SPEC, {'omega': 0.0001}, 100)
    with pytest.raises(ValueError):
        simulate_returns(ARCH_SPEC, ARCH_PARAMS, 0)
