"""Conditional mean and variance recursions for ARCH, GARCH and EGARCH.

Parameter vectors are laid out in the order of ``ModelSpec.parameter_names``:
mean terms, optional in-mean coefficient, variance terms, then the Student-t
shape. Pre-sample squared shocks and variances are set to the backcast; the
first ``burn_in`` observations only feed the autoregressive mean terms.
"""

import math
from typing import NamedTuple, Tuple
import numpy as np
from scipy import signal

from .models import ModelSpec
from .distributions import expected_abs

# ln(sigma^2) is clipped to keep exp() finite while the optimizer explores
LOG_VARIANCE_BOUND = 300.0


class ModelParameters(NamedTuple):
    mu: float
    phi: np.ndarray
    delta: float
    omega: float
    alpha: np.ndarray
    gamma: np.ndarray
    beta: np.ndarray
    nu: float


def unpack(params: np.ndarray, spec: ModelSpec) -> ModelParameters:
    params = np.asarray(params, dtype=float)
    pos = 0
    mu = 0.0
    if spec.include_mean:
        mu = params[pos]
        pos += 1
    phi = params[pos:pos + spec.mean_order]
    pos += spec.mean_order
    delta = 0.0
    if spec.mean_in_variance:
        delta = params[pos]
        pos += 1
    omega = params[pos]
    pos += 1
    alpha = params[pos:pos + spec.q]
    pos += spec.q
    gamma = np.zeros(0)
    if spec.variance_family == 'egarch':
        gamma = params[pos:pos + spec.q]
        pos += spec.q
    beta = params[pos:pos + spec.p]
    pos += spec.p
    nu = params[pos] if spec.distribution == 'studentst' else None
    return ModelParameters(mu, phi, delta, omega, alpha, gamma, beta, nu)


def transform_scale(params: np.ndarray, spec: ModelSpec, factor: float) -> np.ndarray:
    """Map parameters fitted on ``r`` to the equivalent ones for ``factor * r``"""
    names = spec.parameter_names
    out = np.array(params, dtype=float)
    beta_sum = sum(out[i] for i, name in enumerate(names) if name.startswith('beta['))
    for i, name in enumerate(names):
        if name == 'mu':
            out[i] = out[i] * factor
        elif name == 'delta' and spec.in_variance_power == 2:
            out[i] = out[i] / factor
        elif name == 'omega':
            if spec.variance_family == 'egarch':
                out[i] = out[i] + 2.0 * np.log(factor) * (1.0 - beta_sum)
            else:
                out[i] = out[i] * factor ** 2
    return out


def mean_residuals(params: ModelParameters, returns: np.ndarray, burn_in: int) -> np.ndarray:
    n = returns.shape[0]
    fitted = np.full(n - burn_in, params.mu, dtype=float)
    for k, phi in enumerate(params.phi, start=1):
        fitted += phi * returns[burn_in - k:n - k]
    return returns[burn_in:] - fitted


def garch_variance(resid: np.ndarray, omega: float, alpha: np.ndarray,
                   beta: np.ndarray, backcast: float) -> np.ndarray:
    """GARCH(p,q) variance path; ARCH(q) when ``beta`` is empty"""
    q = len(alpha)
    T = resid.shape[0]
    eps2 = np.concatenate([np.full(q, backcast), resid ** 2])
    drive = np.full(T, omega, dtype=float)
    for i, a in enumerate(alpha, start=1):
        drive += a * eps2[q - i:q - i + T]
    if len(beta) == 0:
        return drive
    a_coefs = np.concatenate([[1.0], -np.asarray(beta, dtype=float)])
    zi = signal.lfiltic([1.0], a_coefs, y=np.full(len(beta), backcast))
    sigma2, _ = signal.lfilter([1.0], a_coefs, drive, zi=zi)
    return sigma2


def _filter_loop(params: ModelParameters, spec: ModelSpec, returns: np.ndarray,
                 burn_in: int, backcast: float) -> Tuple[np.ndarray, np.ndarray]:
    """Observation-by-observation recursion for EGARCH and in-mean models"""
    T = returns.shape[0] - burn_in
    resid = np.empty(T)
    sigma2 = np.empty(T)
    std_resid = np.empty(T)
    log_sigma2 = np.empty(T)

    egarch = spec.variance_family == 'egarch'
    omega = float(params.omega)
    alpha = [float(a) for a in params.alpha]
    gamma = [float(g) for g in params.gamma]
    beta = [float(b) for b in params.beta]
    phi = [float(f) for f in params.phi]
    mu = float(params.mu)
    delta = float(params.delta)
    power = spec.in_variance_power
    log_backcast = math.log(backcast)
    e_abs = expected_abs(spec.distribution, params.nu) if egarch else 0.0

    for t in range(T):
        if egarch:
            value = omega
            for i in range(spec.q):
                lag = t - 1 - i
                if lag >= 0:
                    z = std_resid[lag]
                    value += alpha[i] * z + gamma[i] * (abs(z) - e_abs)
            for j in range(spec.p):
                lag = t - 1 - j
                value += beta[j] * (log_sigma2[lag] if lag >= 0 else log_backcast)
            value = min(max(value, -LOG_VARIANCE_BOUND), LOG_VARIANCE_BOUND)
            log_sigma2[t] = value
            variance = math.exp(value)
        else:
            variance = omega
            for i in range(spec.q):
                lag = t - 1 - i
                variance += alpha[i] * (resid[lag] ** 2 if lag >= 0 else backcast)
            for j in range(spec.p):
                lag = t - 1 - j
                variance += beta[j] * (sigma2[lag] if lag >= 0 else backcast)
        sigma2[t] = variance

        idx = burn_in + t
        mean = mu
        for k in range(spec.mean_order):
            mean += phi[k] * returns[idx - 1 - k]
        if spec.mean_in_variance:
            if variance > 0:
                mean += delta * (math.sqrt(variance) if power == 1 else variance)
            else:
                mean = math.nan
        resid[t] = returns[idx] - mean
        std_resid[t] = resid[t] / math.sqrt(variance) if variance > 0 else math.nan

    return resid, sigma2


def filter_series(params: np.ndarray, spec: ModelSpec, returns: np.ndarray,
                  burn_in: int, backcast: float) -> Tuple[np.ndarray, np.ndarray]:
    """Residuals and conditional variances for observations ``burn_in`` onwards"""
    returns = np.asarray(returns, dtype=float)
    unpacked = unpack(params, spec)
    if spec.variance_family == 'egarch' or spec.mean_in_variance:
        return _filter_loop(unpacked, spec, returns, burn_in, backcast)
    resid = mean_residuals(unpacked, returns, burn_in)
    sigma2 = garch_variance(resid, unpacked.omega, unpacked.alpha, unpacked.beta, backcast)
    return resid, sigma2


def one_step_variance(params: np.ndarray, spec: ModelSpec, returns: np.ndarray,
                      burn_in: int, backcast: float) -> float:
    """Conditional variance of the period following the last observation"""
    # sigma^2 at T+1 depends only on data up to T, so the padded value is inert
    padded = np.append(np.asarray(returns, dtype=float), 0.0)
    _, sigma2 = filter_series(params, spec, padded, burn_in, backcast)
    return float(sigma2[-1])
