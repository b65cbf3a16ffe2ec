from typing import Callable, Dict, List, Optional, Tuple
import logging
import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.tools.numdiff import approx_fprime, approx_hess

from data_manager.data_validator import ReturnSeriesValidator
from .distributions import NU_BOUNDS, loglikelihood_contributions
from .exceptions import (ConvergenceFailure, DegenerateSeriesError, InsufficientDataError,
                         InvalidSpec, NonStationaryFit)
from .models import FittedModel, ModelSpec, ParameterEstimate
from .optimizer import Optimizer, ScipyOptimizer
from .recursions import filter_series, one_step_variance, transform_scale


COVARIANCE_TYPES = ('hessian', 'opg', 'robust')

# Returned in place of a non-finite log-likelihood so SLSQP can back off
LIKELIHOOD_PENALTY = 1e10

# Distance kept from the unit-persistence boundary during optimization
STATIONARITY_MARGIN = 1e-6


class GARCHEstimator:
    """Maximum-likelihood estimation of ARCH, GARCH and EGARCH models"""

    def __init__(self, optimizer: Optional[Optimizer] = None,
                 max_iterations: int = 1000,
                 time_budget: Optional[float] = None,
                 significance_level: float = 0.05,
                 covariance_type: str = 'hessian',
                 min_observations: Optional[int] = None):
        """
        Initialize estimator

        Args:
            optimizer: Optimization backend; SLSQP when omitted
            max_iterations: Iteration budget for the default optimizer
            time_budget: Wall-clock budget in seconds for the default optimizer
            significance_level: Two-sided level used to flag significant parameters
            covariance_type: 'hessian', 'opg' or 'robust' (sandwich) standard errors
            min_observations: Optional floor on series length above the model minimum
        """
        if not 0.0 < significance_level < 1.0:
            raise ValueError(f"significance_level must lie in (0, 1), got {significance_level}")
        if covariance_type not in COVARIANCE_TYPES:
            raise ValueError(
                f"covariance_type must be one of {COVARIANCE_TYPES}, got '{covariance_type}'"
            )
        self.optimizer = optimizer or ScipyOptimizer(
            max_iterations=max_iterations,
            time_budget=time_budget
        )
        self.significance_level = significance_level
        self.covariance_type = covariance_type
        self.min_observations = min_observations
        self.validator = ReturnSeriesValidator()
        self.logger = logging.getLogger('garch.estimator')

    @staticmethod
    def _scale_factor(returns: np.ndarray) -> float:
        """Power of ten that brings the sample std into [1, 10)"""
        return float(10.0 ** (-np.floor(np.log10(np.std(returns)))))

    @staticmethod
    def _contributions(params: np.ndarray, spec: ModelSpec, returns: np.ndarray,
                       burn_in: int, backcast: float) -> np.ndarray:
        resid, sigma2 = filter_series(params, spec, returns, burn_in, backcast)
        nu = params[-1] if spec.distribution == 'studentst' else None
        return loglikelihood_contributions(resid, sigma2, spec.distribution, nu)

    def _loglikelihood(self, params: np.ndarray, spec: ModelSpec, returns: np.ndarray,
                       burn_in: int, backcast: float, penalize: bool = True) -> float:
        with np.errstate(all='ignore'):
            value = float(np.sum(self._contributions(params, spec, returns, burn_in, backcast)))
        if penalize and not np.isfinite(value):
            return -LIKELIHOOD_PENALTY
        return value

    def _starting_values(self, spec: ModelSpec, returns: np.ndarray,
                         loglik: Callable[[np.ndarray], float]) -> np.ndarray:
        """Best of a small grid of admissible starting points"""
        var = float(np.var(returns))
        mean_part = []
        if spec.include_mean:
            mean_part.append(float(np.mean(returns)))
        mean_part += [0.0] * spec.mean_order
        if spec.mean_in_variance:
            mean_part.append(0.0)
        dist_part = [8.0] if spec.distribution == 'studentst' else []

        candidates = []
        if spec.variance_family == 'egarch':
            beta_grid = (0.5, 0.9, 0.98) if spec.p > 0 else (0.0,)
            for beta_total in beta_grid:
                for gamma_total in (0.1, 0.2):
                    for alpha_total in (0.0, -0.1):
                        variance_part = (
                            [np.log(var) * (1.0 - beta_total)]
                            + [alpha_total / spec.q] * spec.q
                            + [gamma_total / spec.q] * spec.q
                            + ([beta_total / spec.p] * spec.p if spec.p else [])
                        )
                        candidates.append(mean_part + variance_part + dist_part)
        else:
            alpha_grid = (0.05, 0.1, 0.2) if spec.p > 0 else (0.1, 0.3, 0.5)
            beta_grid = (0.5, 0.8, 0.9) if spec.p > 0 else (0.0,)
            for alpha_total in alpha_grid:
                for beta_total in beta_grid:
                    if alpha_total + beta_total >= 0.99:
                        continue
                    variance_part = (
                        [var * (1.0 - alpha_total - beta_total)]
                        + [alpha_total / spec.q] * spec.q
                        + ([beta_total / spec.p] * spec.p if spec.p else [])
                    )
                    candidates.append(mean_part + variance_part + dist_part)

        best, best_value = None, -np.inf
        for candidate in candidates:
            x0 = np.array(candidate, dtype=float)
            value = loglik(x0)
            if np.isfinite(value) and value > best_value:
                best, best_value = x0, value
        if best is None or best_value <= -LIKELIHOOD_PENALTY:
            raise ConvergenceFailure(f"{spec.label}: no feasible starting values")
        return best

    def _bounds(self, spec: ModelSpec, returns: np.ndarray) -> List[Tuple[Optional[float], Optional[float]]]:
        std = float(np.std(returns))
        var = std ** 2
        bounds = []
        for name in spec.parameter_names:
            if name == 'mu':
                bounds.append((-10.0 * std, 10.0 * std))
            elif name.startswith('phi['):
                bounds.append((-0.9999, 0.9999))
            elif name == 'delta':
                bounds.append((None, None))
            elif name == 'omega':
                if spec.variance_family == 'egarch':
                    bounds.append((-20.0, 20.0))
                else:
                    bounds.append((1e-8 * var, 10.0 * var))
            elif name.startswith('alpha['):
                bounds.append((-2.0, 2.0) if spec.variance_family == 'egarch' else (0.0, 1.0))
            elif name.startswith('gamma['):
                bounds.append((-2.0, 2.0))
            elif name.startswith('beta['):
                bounds.append((-0.9999, 0.9999) if spec.variance_family == 'egarch' else (0.0, 1.0))
            elif name == 'nu':
                bounds.append(NU_BOUNDS)
        return bounds

    @staticmethod
    def _constraints(spec: ModelSpec) -> List[Callable[[np.ndarray], float]]:
        names = spec.parameter_names
        alpha_idx = np.array([i for i, n in enumerate(names) if n.startswith('alpha[')], dtype=int)
        beta_idx = np.array([i for i, n in enumerate(names) if n.startswith('beta[')], dtype=int)

        if spec.variance_family == 'egarch':
            if len(beta_idx) == 0:
                return []
            return [
                lambda x: 1.0 - STATIONARITY_MARGIN - np.sum(x[beta_idx]),
                lambda x: 1.0 - STATIONARITY_MARGIN + np.sum(x[beta_idx]),
            ]
        return [
            lambda x: 1.0 - STATIONARITY_MARGIN - np.sum(x[alpha_idx]) - np.sum(x[beta_idx])
        ]

    @staticmethod
    def _persistence(params: np.ndarray, spec: ModelSpec) -> float:
        names = spec.parameter_names
        beta = sum(params[i] for i, n in enumerate(names) if n.startswith('beta['))
        if spec.variance_family == 'egarch':
            return abs(beta)
        alpha = sum(params[i] for i, n in enumerate(names) if n.startswith('alpha['))
        return alpha + beta

    def _invert(self, matrix: np.ndarray, label: str) -> np.ndarray:
        try:
            return np.linalg.inv(matrix)
        except np.linalg.LinAlgError:
            self.logger.warning(f"{label}: singular information matrix, using pseudo-inverse")
            return np.linalg.pinv(matrix)

    def _covariance(self, x_scaled: np.ndarray, spec: ModelSpec, scaled: np.ndarray,
                    burn_in: int, backcast_scaled: float, scale: float) -> np.ndarray:
        """Parameter covariance in the caller's units (delta method on the rescaling)"""

        def negative_loglik(x):
            return -self._loglikelihood(x, spec, scaled, burn_in, backcast_scaled, penalize=False)

        def contributions(x):
            return self._contributions(x, spec, scaled, burn_in, backcast_scaled)

        with np.errstate(all='ignore'):
            if self.covariance_type in ('hessian', 'robust'):
                inv_hessian = self._invert(approx_hess(x_scaled, negative_loglik), spec.label)
            if self.covariance_type in ('opg', 'robust'):
                scores = approx_fprime(x_scaled, contributions, centered=True)
                opg = scores.T @ scores

            if self.covariance_type == 'hessian':
                cov_scaled = inv_hessian
            elif self.covariance_type == 'opg':
                cov_scaled = self._invert(opg, spec.label)
            else:
                cov_scaled = inv_hessian @ opg @ inv_hessian

            jacobian = approx_fprime(
                x_scaled,
                lambda x: transform_scale(x, spec, 1.0 / scale),
                centered=True
            )
        jacobian = np.atleast_2d(jacobian)
        return jacobian @ cov_scaled @ jacobian.T

    def _build_estimates(self, spec: ModelSpec, params: np.ndarray,
                         covariance: np.ndarray) -> Dict[str, ParameterEstimate]:
        critical = stats.norm.ppf(1.0 - self.significance_level / 2.0)
        variances = np.diag(covariance)
        estimates = {}
        for i, name in enumerate(spec.parameter_names):
            estimate = float(params[i])
            std_error = float(np.sqrt(variances[i])) if np.isfinite(variances[i]) and variances[i] > 0 else np.nan
            t_value = estimate / std_error if np.isfinite(std_error) else np.nan
            p_value = float(2.0 * stats.norm.sf(abs(t_value))) if np.isfinite(t_value) else np.nan
            estimates[name] = ParameterEstimate(
                name=name,
                estimate=estimate,
                std_error=std_error,
                t_value=float(t_value),
                p_value=p_value,
                significant=bool(np.isfinite(t_value) and abs(t_value) > critical)
            )
        return estimates

    def fit(self, series, spec: ModelSpec, distribution: Optional[str] = None,
            burn_in: Optional[int] = None) -> FittedModel:
        """
        Estimate one model specification by maximum likelihood

        Args:
            series: Cleaned log returns (Series, or array-like for a RangeIndex)
            spec: Model specification
            distribution: Overrides ``spec.distribution`` when given
            burn_in: Leading observations excluded from the likelihood; defaults to
                     the AR order. Candidates compared by information criteria must
                     share the same burn-in.

        Returns:
            FittedModel with parameters in the units of ``series``
        """
        if distribution is not None:
            spec = spec.with_distribution(distribution)
        returns = self.validator.prepare(series)

        burn_in = spec.mean_order if burn_in is None else int(burn_in)
        if burn_in < spec.mean_order:
            raise InvalidSpec(
                f"{spec.label}: burn-in {burn_in} is shorter than the AR order {spec.mean_order}"
            )
        required = spec.minimum_observations(burn_in)
        if self.min_observations is not None:
            required = max(required, self.min_observations)
        if len(returns) <= required:
            raise InsufficientDataError(
                f"{spec.label}: {len(returns)} observations, need more than {required}"
            )

        values = returns.to_numpy(dtype=float)
        window = values[burn_in:]
        backcast = float(np.var(window))
        if backcast <= self.validator.variance_tolerance * max(float(np.mean(window ** 2)), 1.0):
            raise DegenerateSeriesError(
                f"{spec.label}: returns after the {burn_in}-observation burn-in have zero variance"
            )
        scale = self._scale_factor(window)
        scaled = values * scale
        backcast_scaled = backcast * scale ** 2

        def loglik(x):
            return self._loglikelihood(x, spec, scaled, burn_in, backcast_scaled)

        try:
            x0 = self._starting_values(spec, scaled[burn_in:], loglik)
            result = self.optimizer.maximize(
                loglik,
                x0,
                self._bounds(spec, scaled[burn_in:]),
                self._constraints(spec)
            )
        except (np.linalg.LinAlgError, FloatingPointError, OverflowError) as e:
            raise ConvergenceFailure(f"{spec.label}: numerical failure: {str(e)}") from e

        if not result.success or not np.isfinite(result.value) or result.value <= -LIKELIHOOD_PENALTY:
            self.logger.error(
                f"{spec.label} did not converge after {result.iterations} iterations: {result.message}"
            )
            raise ConvergenceFailure(
                f"{spec.label}: {result.message}",
                iterations=result.iterations
            )

        params = transform_scale(result.x, spec, 1.0 / scale)
        persistence = self._persistence(params, spec)
        if not persistence < 1.0:
            raise NonStationaryFit(
                f"{spec.label}: persistence {persistence:.6f} violates the stability bound",
                persistence=float(persistence),
                params=dict(zip(spec.parameter_names, params))
            )

        covariance = self._covariance(result.x, spec, scaled, burn_in, backcast_scaled, scale)

        with np.errstate(all='ignore'):
            resid, sigma2 = filter_series(params, spec, values, burn_in, backcast)
            nu = params[-1] if spec.distribution == 'studentst' else None
            loglikelihood = float(np.sum(
                loglikelihood_contributions(resid, sigma2, spec.distribution, nu)
            ))
        if not np.isfinite(loglikelihood) or np.any(sigma2 <= 0):
            raise ConvergenceFailure(f"{spec.label}: non-finite likelihood at the optimum")

        index = returns.index[burn_in:]
        fitted = FittedModel(
            spec=spec,
            nobs=len(returns),
            burn_in=burn_in,
            params=self._build_estimates(spec, params, covariance),
            returns=returns,
            residuals=pd.Series(resid, index=index, name='residual'),
            conditional_variance=pd.Series(sigma2, index=index, name='conditional_variance'),
            loglikelihood=loglikelihood,
            backcast=backcast,
            scale=scale,
            covariance=covariance,
            iterations=result.iterations,
            converged_message=result.message
        )

        self.logger.info(
            f"Fitted {spec.label}:\n"
            f"  Observations: {fitted.n_effective} (burn-in {burn_in})\n"
            f"  Log-likelihood: {loglikelihood:.4f}\n"
            f"  AIC: {fitted.aic:.4f}  BIC: {fitted.bic:.4f}\n"
            f"  Persistence: {persistence:.4f}\n"
            f"  Iterations: {result.iterations}"
        )
        return fitted

    def reconstruct_variance(self, fitted: FittedModel, series=None) -> pd.Series:
        """Re-run the variance recursion from stored parameters.

        With ``series`` omitted this reproduces ``fitted.conditional_variance``;
        otherwise the fitted parameters filter the new series with its own
        backcast.
        """
        if series is None:
            returns = fitted.returns
            backcast = fitted.backcast
        else:
            returns = self.validator.prepare(series)
            backcast = float(np.var(returns.to_numpy()[fitted.burn_in:]))
        _, sigma2 = filter_series(
            fitted.param_values, fitted.spec, returns.to_numpy(dtype=float),
            fitted.burn_in, backcast
        )
        return pd.Series(sigma2, index=returns.index[fitted.burn_in:], name='conditional_variance')

    def forecast_variance(self, fitted: FittedModel) -> float:
        """One-step-ahead conditional variance after the last fitted observation"""
        return one_step_variance(
            fitted.param_values, fitted.spec, fitted.returns.to_numpy(dtype=float),
            fitted.burn_in, fitted.backcast
        )

    def observation_scores(self, fitted: FittedModel) -> np.ndarray:
        """Per-observation score matrix (n_effective x n_params) at the estimates.

        Evaluated on the internally rescaled series; statistics built from it
        must be invariant to linear reparameterisation.
        """
        spec = fitted.spec
        scale = fitted.scale
        scaled = fitted.returns.to_numpy(dtype=float) * scale
        x_scaled = transform_scale(fitted.param_values, spec, scale)
        backcast_scaled = fitted.backcast * scale ** 2

        def contributions(x):
            return self._contributions(x, spec, scaled, fitted.burn_in, backcast_scaled)

        with np.errstate(all='ignore'):
            scores = approx_fprime(x_scaled, contributions, centered=True)
        return np.asarray(scores).reshape(fitted.n_effective, spec.n_params)
