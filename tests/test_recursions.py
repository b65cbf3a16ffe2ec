import pytest
import numpy as np

from garch.models import ModelSpec
from garch.recursions import (_filter_loop, filter_series, one_step_variance,
                              transform_scale, unpack)


@pytest.fixture
def returns():
    rng = np.random.default_rng(0)
    return rng.standard_normal(300) * 0.01


def test_vectorized_garch_matches_loop(returns):
    """lfilter recursion and the explicit loop agree for GARCH(2,2) with AR(1) mean"""
    spec = ModelSpec('garch', q=2, p=2, mean_order=1)
    params = np.array([0.0001, 0.1, 2e-6, 0.05, 0.03, 0.5, 0.35])
    backcast = float(np.var(returns[1:]))

    resid_vec, sigma2_vec = filter_series(params, spec, returns, 1, backcast)
    resid_loop, sigma2_loop = _filter_loop(unpack(params, spec), spec, returns, 1, backcast)

    np.testing.assert_allclose(resid_vec, resid_loop, rtol=1e-12)
    np.testing.assert_allclose(sigma2_vec, sigma2_loop, rtol=1e-10)


def test_arch_first_variance_uses_backcast(returns):
    spec = ModelSpec('arch', q=1, p=0, include_mean=False)
    params = np.array([1e-5, 0.4])
    backcast = 2e-4
    resid, sigma2 = filter_series(params, spec, returns, 0, backcast)

    assert sigma2[0] == pytest.approx(1e-5 + 0.4 * backcast)
    np.testing.assert_allclose(sigma2[1:], 1e-5 + 0.4 * returns[:-1] ** 2)
    np.testing.assert_allclose(resid, returns)


def test_egarch_recursion_by_hand(returns):
    spec = ModelSpec('egarch', q=1, p=1, include_mean=False)
    omega, alpha, gamma, beta = -0.5, -0.08, 0.12, 0.95
    backcast = float(np.var(returns))
    _, sigma2 = filter_series(np.array([omega, alpha, gamma, beta]), spec, returns, 0, backcast)

    e_abs = np.sqrt(2 / np.pi)
    expected = [omega + beta * np.log(backcast)]
    for t in range(1, 5):
        z = returns[t - 1] / np.sqrt(np.exp(expected[-1]))
        expected.append(omega + alpha * z + gamma * (abs(z) - e_abs) + beta * expected[-1])
    np.testing.assert_allclose(np.log(sigma2[:5]), expected, rtol=1e-10)


@pytest.mark.parametrize('family,params', [
    ('garch', [0.0003, 4e-6, 0.08, 0.9]),
    ('egarch', [0.0003, -0.4, -0.05, 0.1, 0.95]),
])
def test_transform_scale_rescales_variance(returns, family, params):
    """Transformed parameters on scaled data give variances scaled by factor^2"""
    spec = ModelSpec(family, q=1, p=1)
    params = np.array(params)
    factor = 100.0
    backcast = float(np.var(returns))

    resid, sigma2 = filter_series(params, spec, returns, 0, backcast)
    resid_s, sigma2_s = filter_series(
        transform_scale(params, spec, factor), spec, returns * factor, 0, backcast * factor ** 2
    )
    np.testing.assert_allclose(resid_s, resid * factor, rtol=1e-9)
    np.testing.assert_allclose(sigma2_s, sigma2 * factor ** 2, rtol=1e-9)


def test_transform_scale_round_trip():
    spec = ModelSpec('egarch', q=1, p=1, mean_in_variance=True, in_variance_power=2)
    params = np.array([0.001, 2.0, -0.3, -0.05, 0.1, 0.9])
    back = transform_scale(transform_scale(params, spec, 10.0), spec, 0.1)
    np.testing.assert_allclose(back, params)


def test_in_mean_term_enters_residuals(returns):
    spec = ModelSpec('garch', q=1, p=1, mean_in_variance=True, in_variance_power=1)
    params = np.array([0.0, 0.5, 2e-6, 0.05, 0.9])
    resid, sigma2 = filter_series(params, spec, returns, 0, float(np.var(returns)))
    np.testing.assert_allclose(resid, returns - 0.5 * np.sqrt(sigma2))


def test_one_step_variance_garch(returns):
    spec = ModelSpec('garch', q=1, p=1)
    params = np.array([0.0001, 2e-6, 0.06, 0.9])
    backcast = float(np.var(returns))
    resid, sigma2 = filter_series(params, spec, returns, 0, backcast)

    forecast = one_step_variance(params, spec, returns, 0, backcast)
    assert forecast == pytest.approx(2e-6 + 0.06 * resid[-1] ** 2 + 0.9 * sigma2[-1])
