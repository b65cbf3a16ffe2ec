"""Error densities for the conditional likelihood.

Both densities are parameterised to have unit variance so that the
conditional variance recursion carries all of the scale.
"""

import numpy as np
from scipy import stats
from scipy.special import gammaln

from .exceptions import InvalidSpec

LOG_2PI = np.log(2.0 * np.pi)

# Student-t shape must stay above 2 for a finite variance
NU_BOUNDS = (2.05, 500.0)


def loglikelihood_contributions(resid: np.ndarray, sigma2: np.ndarray,
                                distribution: str, nu: float = None) -> np.ndarray:
    """Per-observation log density of residuals given conditional variances"""
    if distribution == 'normal':
        return -0.5 * (LOG_2PI + np.log(sigma2) + resid ** 2 / sigma2)
    if distribution == 'studentst':
        if nu is None:
            raise InvalidSpec("Student-t likelihood requires a shape parameter")
        const = (gammaln((nu + 1.0) / 2.0) - gammaln(nu / 2.0)
                 - 0.5 * np.log(np.pi * (nu - 2.0)))
        return (const - 0.5 * np.log(sigma2)
                - (nu + 1.0) / 2.0 * np.log1p(resid ** 2 / (sigma2 * (nu - 2.0))))
    raise InvalidSpec(f"Unknown error distribution '{distribution}'")


def expected_abs(distribution: str, nu: float = None) -> float:
    """E|z| for a unit-variance innovation, used to centre the EGARCH term"""
    if distribution == 'normal':
        return float(np.sqrt(2.0 / np.pi))
    if distribution == 'studentst':
        log_value = (np.log(2.0) + 0.5 * np.log(nu - 2.0)
                     + gammaln((nu + 1.0) / 2.0)
                     - gammaln(nu / 2.0) - 0.5 * np.log(np.pi) - np.log(nu - 1.0))
        return float(np.exp(log_value))
    raise InvalidSpec(f"Unknown error distribution '{distribution}'")


def cdf(z: np.ndarray, distribution: str, nu: float = None) -> np.ndarray:
    """Probability integral transform of standardized residuals"""
    if distribution == 'normal':
        return stats.norm.cdf(z)
    if distribution == 'studentst':
        return stats.t.cdf(z * np.sqrt(nu / (nu - 2.0)), df=nu)
    raise InvalidSpec(f"Unknown error distribution '{distribution}'")


def ppf(prob: float, distribution: str, nu: float = None) -> float:
    """Quantile of the unit-variance innovation"""
    if distribution == 'normal':
        return float(stats.norm.ppf(prob))
    if distribution == 'studentst':
        return float(stats.t.ppf(prob, df=nu) * np.sqrt((nu - 2.0) / nu))
    raise InvalidSpec(f"Unknown error distribution '{distribution}'")
