"""Post-estimation adequacy tests on standardized residuals.

Every test returns a ``DiagnosticTest``; accepting or rejecting a fit from
the collected results is left to the caller.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging
import numpy as np
import pandas as pd
from scipy import stats
import statsmodels.api as sm
from statsmodels.stats.diagnostic import acorr_ljungbox, het_arch

from .distributions import cdf
from .estimator import GARCHEstimator
from .models import FittedModel

logger = logging.getLogger(__name__)

# Asymptotic critical values of the Nyblom-Hansen stability statistic,
# by number of parameters tested (1..20), at the 10%, 5% and 1% levels
NYBLOM_CRITICAL_VALUES = {
    0.10: [0.353, 0.610, 0.846, 1.07, 1.28, 1.49, 1.69, 1.89, 2.10, 2.29,
           2.49, 2.69, 2.89, 3.08, 3.26, 3.46, 3.64, 3.83, 4.03, 4.22],
    0.05: [0.470, 0.749, 1.01, 1.24, 1.47, 1.68, 1.90, 2.11, 2.32, 2.54,
           2.75, 2.96, 3.15, 3.34, 3.54, 3.75, 3.95, 4.14, 4.33, 4.52],
    0.01: [0.748, 1.07, 1.35, 1.60, 1.88, 2.12, 2.35, 2.59, 2.82, 3.05,
           3.27, 3.51, 3.69, 3.90, 4.07, 4.30, 4.51, 4.73, 4.92, 5.13],
}


@dataclass(frozen=True)
class DiagnosticTest:
    """Outcome of one test: rejected is True when the null is rejected"""
    name: str
    statistic: float
    critical_value: float
    p_value: Optional[float]
    rejected: bool


@dataclass(frozen=True)
class DiagnosticReport:
    model: str
    tests: Dict[str, DiagnosticTest]

    def __getitem__(self, name: str) -> DiagnosticTest:
        return self.tests[name]

    @property
    def rejected(self) -> List[str]:
        return [name for name, test in self.tests.items() if test.rejected]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    'statistic': test.statistic,
                    'critical_value': test.critical_value,
                    'p_value': test.p_value,
                    'rejected': test.rejected,
                }
                for test in self.tests.values()
            ],
            index=list(self.tests.keys()),
        )


class DiagnosticSuite:
    """Adequacy tests for a fitted conditional-variance model"""

    def __init__(self, lags: int = 10,
                 significance_level: float = 0.05,
                 gof_bins: Sequence[int] = (20, 30, 40, 50),
                 estimator: Optional[GARCHEstimator] = None):
        """
        Args:
            lags: Lag count for Ljung-Box and ARCH-LM tests
            significance_level: Level used for every critical value
            gof_bins: Bin counts for the Pearson goodness-of-fit test
            estimator: Supplies observation scores for the stability test
        """
        if lags < 1:
            raise ValueError(f"lags must be positive, got {lags}")
        if significance_level not in NYBLOM_CRITICAL_VALUES:
            raise ValueError(
                f"significance_level must be one of {sorted(NYBLOM_CRITICAL_VALUES)}, "
                f"got {significance_level}"
            )
        if any(g < 2 for g in gof_bins):
            raise ValueError(f"gof_bins must all be at least 2, got {list(gof_bins)}")
        self.lags = lags
        self.significance_level = significance_level
        self.gof_bins = tuple(gof_bins)
        self.estimator = estimator or GARCHEstimator()

    def _chi2_test(self, name: str, statistic: float, df: int) -> DiagnosticTest:
        critical = float(stats.chi2.ppf(1.0 - self.significance_level, df))
        return DiagnosticTest(
            name=name,
            statistic=float(statistic),
            critical_value=critical,
            p_value=float(stats.chi2.sf(statistic, df)),
            rejected=bool(statistic > critical)
        )

    def ljung_box(self, fitted: FittedModel, squared: bool = False) -> DiagnosticTest:
        """Ljung-Box test of no autocorrelation in z (or z^2) up to ``lags``"""
        z = fitted.standardized_residuals.to_numpy()
        series = z ** 2 if squared else z
        result = acorr_ljungbox(series, lags=[self.lags])
        statistic = float(np.asarray(result['lb_stat'])[-1])
        name = 'ljung_box_squared' if squared else 'ljung_box'
        return self._chi2_test(name, statistic, self.lags)

    def arch_lm(self, fitted: FittedModel) -> DiagnosticTest:
        """Engle LM test for remaining ARCH effects in z"""
        z = fitted.standardized_residuals.to_numpy()
        lm_stat, _, _, _ = het_arch(z, nlags=self.lags)
        return self._chi2_test('arch_lm', lm_stat, self.lags)

    def nyblom(self, fitted: FittedModel) -> Dict[str, DiagnosticTest]:
        """Nyblom stability tests, joint and per parameter, from cumulative scores"""
        scores = self.estimator.observation_scores(fitted)
        n_obs, n_params = scores.shape
        cumulative = np.cumsum(scores, axis=0)
        outer = scores.T @ scores

        try:
            inv_outer = np.linalg.inv(outer)
        except np.linalg.LinAlgError:
            logger.warning(f"{fitted.spec.label}: singular score covariance in stability test")
            inv_outer = np.linalg.pinv(outer)

        joint = float(np.einsum('ti,ij,tj->', cumulative, inv_outer, cumulative) / n_obs)
        individual = (cumulative ** 2).sum(axis=0) / (n_obs * np.diag(outer))

        table = NYBLOM_CRITICAL_VALUES[self.significance_level]
        if n_params > len(table):
            logger.warning(
                f"{n_params} parameters exceed the stability table; using the {len(table)}-parameter value"
            )
        joint_critical = table[min(n_params, len(table)) - 1]
        results = {
            'nyblom_joint': DiagnosticTest(
                name='nyblom_joint',
                statistic=joint,
                critical_value=joint_critical,
                p_value=None,
                rejected=bool(joint > joint_critical)
            )
        }
        for name, value in zip(fitted.spec.parameter_names, individual):
            key = f'nyblom[{name}]'
            results[key] = DiagnosticTest(
                name=key,
                statistic=float(value),
                critical_value=table[0],
                p_value=None,
                rejected=bool(value > table[0])
            )
        return results

    def sign_bias(self, fitted: FittedModel) -> Dict[str, DiagnosticTest]:
        """Engle-Ng sign and size bias tests on squared standardized residuals"""
        z = fitted.standardized_residuals.to_numpy()
        lagged = z[:-1]
        negative = (lagged < 0).astype(float)
        positive = 1.0 - negative
        design = sm.add_constant(
            np.column_stack([negative, negative * lagged, positive * lagged]),
            has_constant='add'
        )
        result = sm.OLS(z[1:] ** 2, design).fit()

        t_critical = float(stats.t.ppf(1.0 - self.significance_level / 2.0, result.df_resid))
        results = {}
        for key, column in (('sign_bias', 1), ('negative_size_bias', 2), ('positive_size_bias', 3)):
            t_value = float(result.tvalues[column])
            results[key] = DiagnosticTest(
                name=key,
                statistic=t_value,
                critical_value=t_critical,
                p_value=float(result.pvalues[column]),
                rejected=bool(abs(t_value) > t_critical)
            )
        joint = result.nobs * result.rsquared
        results['joint_effect'] = self._chi2_test('joint_effect', joint, 3)
        return results

    def goodness_of_fit(self, fitted: FittedModel) -> Dict[str, DiagnosticTest]:
        """Pearson test of z against the assumed error distribution over equiprobable bins"""
        z = fitted.standardized_residuals.to_numpy()
        nu = fitted.estimates.get('nu')
        uniforms = cdf(z, fitted.spec.distribution, nu)
        results = {}
        for bins in self.gof_bins:
            counts, _ = np.histogram(uniforms, bins=np.linspace(0.0, 1.0, bins + 1))
            expected = len(z) / bins
            statistic = float(np.sum((counts - expected) ** 2) / expected)
            key = f'pearson_gof[{bins}]'
            results[key] = self._chi2_test(key, statistic, bins - 1)
        return results

    def run(self, fitted: FittedModel) -> DiagnosticReport:
        """Run every test on a fitted model"""
        tests = {}
        for test in (self.ljung_box(fitted), self.ljung_box(fitted, squared=True), self.arch_lm(fitted)):
            tests[test.name] = test
        tests.update(self.nyblom(fitted))
        tests.update(self.sign_bias(fitted))
        tests.update(self.goodness_of_fit(fitted))

        report = DiagnosticReport(model=fitted.spec.label, tests=tests)
        rejected = report.rejected
        logger.info(
            f"Diagnostics for {fitted.spec.label}: {len(tests)} tests, "
            f"{len(rejected)} rejected" + (f" ({', '.join(rejected)})" if rejected else "")
        )
        return report
