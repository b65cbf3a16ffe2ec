from dataclasses import dataclass, field, replace
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Tuple

from .exceptions import InvalidSpec

VARIANCE_FAMILIES = ('arch', 'garch', 'egarch')
DISTRIBUTIONS = ('normal', 'studentst')


@dataclass(frozen=True)
class ModelSpec:
    """Declarative description of one conditional mean + variance model.

    ``q`` is the number of ARCH (shock) lags and ``p`` the number of GARCH
    (variance) lags, so ``ModelSpec('garch', q=1, p=1)`` is the usual
    GARCH(1,1).
    """
    variance_family: str = 'garch'
    q: int = 1
    p: int = 1
    mean_order: int = 0
    include_mean: bool = True
    mean_in_variance: bool = False
    in_variance_power: int = 1
    distribution: str = 'normal'

    def __post_init__(self):
        family = str(self.variance_family).lower()
        distribution = str(self.distribution).lower()
        if family not in VARIANCE_FAMILIES:
            raise InvalidSpec(f"Unknown variance family '{self.variance_family}'")
        if distribution not in DISTRIBUTIONS:
            raise InvalidSpec(f"Unknown error distribution '{self.distribution}'")
        for name in ('q', 'p', 'mean_order', 'in_variance_power'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise InvalidSpec(f"{name} must be an integer, got {value!r}")
        if self.q < 1:
            raise InvalidSpec(f"ARCH order q must be >= 1, got {self.q}")
        if self.p < 0:
            raise InvalidSpec(f"GARCH order p must be >= 0, got {self.p}")
        if self.mean_order < 0:
            raise InvalidSpec(f"Mean order must be >= 0, got {self.mean_order}")
        if self.mean_in_variance and self.in_variance_power not in (1, 2):
            raise InvalidSpec(
                f"in_variance_power must be 1 or 2, got {self.in_variance_power}"
            )
        if family == 'arch' and self.p > 0:
            raise InvalidSpec("ARCH models take no GARCH lags; use family 'garch'")
        # GARCH(0,q) is ARCH(q)
        if family == 'garch' and self.p == 0:
            family = 'arch'
        object.__setattr__(self, 'variance_family', family)
        object.__setattr__(self, 'distribution', distribution)
        object.__setattr__(self, 'q', int(self.q))
        object.__setattr__(self, 'p', int(self.p))
        object.__setattr__(self, 'mean_order', int(self.mean_order))
        if not self.mean_in_variance:
            object.__setattr__(self, 'in_variance_power', 1)

    @property
    def parameter_names(self) -> List[str]:
        names = []
        if self.include_mean:
            names.append('mu')
        names += [f'phi[{k}]' for k in range(1, self.mean_order + 1)]
        if self.mean_in_variance:
            names.append('delta')
        names.append('omega')
        names += [f'alpha[{i}]' for i in range(1, self.q + 1)]
        if self.variance_family == 'egarch':
            names += [f'gamma[{i}]' for i in range(1, self.q + 1)]
        names += [f'beta[{j}]' for j in range(1, self.p + 1)]
        if self.distribution == 'studentst':
            names.append('nu')
        return names

    @property
    def n_params(self) -> int:
        return len(self.parameter_names)

    @property
    def family_rank(self) -> int:
        return VARIANCE_FAMILIES.index(self.variance_family)

    @property
    def max_lag(self) -> int:
        return max(self.p, self.q)

    def minimum_observations(self, burn_in: Optional[int] = None) -> int:
        """Series length that must be exceeded for the model to be identified"""
        burn_in = self.mean_order if burn_in is None else burn_in
        return burn_in + max(self.p + self.q, self.n_params)

    def with_distribution(self, distribution: str) -> 'ModelSpec':
        return replace(self, distribution=distribution)

    @property
    def label(self) -> str:
        parts = []
        if self.mean_order:
            parts.append(f'AR({self.mean_order})')
        elif not self.include_mean:
            parts.append('zero')
        if self.variance_family == 'arch':
            parts.append(f'ARCH({self.q})')
        else:
            parts.append(f'{self.variance_family.upper()}({self.p},{self.q})')
        if self.mean_in_variance:
            parts.append('M' if self.in_variance_power == 1 else 'M2')
        parts.append(self.distribution)
        return '-'.join(parts)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class ParameterEstimate:
    """Point estimate with its inference"""
    name: str
    estimate: float
    std_error: float
    t_value: float
    p_value: float
    significant: bool


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Result of a maximum-likelihood fit. Never mutated after construction."""
    spec: ModelSpec
    nobs: int
    burn_in: int
    params: Dict[str, ParameterEstimate]
    returns: pd.Series
    residuals: pd.Series
    conditional_variance: pd.Series
    loglikelihood: float
    backcast: float
    scale: float
    covariance: np.ndarray
    iterations: int = 0
    converged_message: str = ''

    @property
    def n_params(self) -> int:
        return len(self.params)

    @property
    def n_effective(self) -> int:
        """Observations entering the likelihood"""
        return self.nobs - self.burn_in

    @property
    def aic(self) -> float:
        return -2.0 * self.loglikelihood + 2.0 * self.n_params

    @property
    def bic(self) -> float:
        return -2.0 * self.loglikelihood + self.n_params * np.log(self.n_effective)

    @property
    def param_values(self) -> np.ndarray:
        return np.array([self.params[name].estimate for name in self.spec.parameter_names])

    @property
    def estimates(self) -> Dict[str, float]:
        return {name: est.estimate for name, est in self.params.items()}

    @property
    def conditional_volatility(self) -> pd.Series:
        return np.sqrt(self.conditional_variance).rename('conditional_volatility')

    @property
    def standardized_residuals(self) -> pd.Series:
        return (self.residuals / self.conditional_volatility).rename('standardized_residual')

    @property
    def persistence(self) -> float:
        """Sum of alpha and beta (ARCH/GARCH) or |sum of beta| (EGARCH)"""
        values = self.estimates
        beta = sum(v for k, v in values.items() if k.startswith('beta['))
        if self.spec.variance_family == 'egarch':
            return abs(beta)
        alpha = sum(v for k, v in values.items() if k.startswith('alpha['))
        return alpha + beta

    def summary(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    'estimate': est.estimate,
                    'std_error': est.std_error,
                    't_value': est.t_value,
                    'p_value': est.p_value,
                    'significant': est.significant,
                }
                for est in self.params.values()
            ],
            index=list(self.params.keys()),
        )


@dataclass(frozen=True)
class FitFailure:
    """Candidate that could not be estimated, with the reason"""
    spec: ModelSpec
    error_type: str
    reason: str

    @classmethod
    def from_exception(cls, spec: ModelSpec, error: Exception) -> 'FitFailure':
        return cls(spec=spec, error_type=type(error).__name__, reason=str(error))


@dataclass(frozen=True)
class RankedModel:
    spec: ModelSpec
    aic: float
    bic: float
    loglikelihood: float
    n_params: int
    fitted: FittedModel = field(repr=False, compare=False)

    @classmethod
    def from_fit(cls, fitted: FittedModel) -> 'RankedModel':
        return cls(
            spec=fitted.spec,
            aic=float(fitted.aic),
            bic=float(fitted.bic),
            loglikelihood=float(fitted.loglikelihood),
            n_params=fitted.n_params,
            fitted=fitted,
        )


@dataclass(frozen=True)
class SelectionResult:
    """Candidates ranked best first, plus those that failed to fit"""
    criterion: str
    ranking: Tuple[RankedModel, ...]
    failures: Tuple[FitFailure, ...] = ()

    @property
    def best(self) -> RankedModel:
        if not self.ranking:
            raise ValueError("No valid models estimated")
        return self.ranking[0]

    @property
    def best_fit(self) -> FittedModel:
        return self.best.fitted

    def to_dataframe(self) -> pd.DataFrame:
        records = [
            {
                'model': entry.spec.label,
                'aic': entry.aic,
                'bic': entry.bic,
                'loglikelihood': entry.loglikelihood,
                'n_params': entry.n_params,
                'status': 'ok',
                'reason': '',
            }
            for entry in self.ranking
        ]
        records += [
            {
                'model': failure.spec.label,
                'aic': np.nan,
                'bic': np.nan,
                'loglikelihood': np.nan,
                'n_params': failure.spec.n_params,
                'status': failure.error_type,
                'reason': failure.reason,
            }
            for failure in self.failures
        ]
        return pd.DataFrame(records)
