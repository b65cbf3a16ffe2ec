"""Fits a declared candidate set and ranks it by an information criterion."""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from itertools import product
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
import logging

from .estimator import GARCHEstimator
from .exceptions import GARCHError
from .models import FitFailure, FittedModel, ModelSpec, RankedModel, SelectionResult
from utils.progress import ProgressMonitor

logger = logging.getLogger(__name__)

CRITERIA = ('aic', 'bic')


def _fit_candidate(estimator: GARCHEstimator, series, spec: ModelSpec,
                   burn_in: int) -> Union[FittedModel, FitFailure]:
    """Fit one candidate, turning estimation errors into a FitFailure record"""
    try:
        return estimator.fit(series, spec, burn_in=burn_in)
    except GARCHError as e:
        return FitFailure.from_exception(spec, e)


def build_candidate_grid(variance_families: Iterable[str],
                         orders: Iterable[Tuple[int, int]],
                         distributions: Iterable[str],
                         mean_orders: Iterable[int] = (0,),
                         include_mean: Iterable[bool] = (True,),
                         mean_in_variance: Iterable[Union[bool, int]] = (False,)) -> List[ModelSpec]:
    """
    Cartesian grid of candidate specifications

    Args:
        variance_families: Any of 'arch', 'garch', 'egarch'
        orders: (p, q) pairs; ARCH candidates use q only
        distributions: Any of 'normal', 'studentst'
        mean_orders: AR orders of the mean equation
        include_mean: Whether to estimate a constant
        mean_in_variance: False, or the power (1 = sigma, 2 = sigma^2) of the in-mean term

    Returns:
        Distinct specifications in generation order
    """
    specs = []
    for family, (p, q), dist, m, const, in_mean in product(
        variance_families, orders, distributions, mean_orders, include_mean, mean_in_variance
    ):
        spec = ModelSpec(
            variance_family=family,
            q=q,
            p=0 if family == 'arch' else p,
            mean_order=m,
            include_mean=const,
            mean_in_variance=bool(in_mean),
            in_variance_power=int(in_mean) if in_mean else 1,
            distribution=dist
        )
        if spec not in specs:
            specs.append(spec)
    return specs


class ModelSelector:
    """Ranks candidate models fitted on the same series"""

    def __init__(self, estimator: Optional[GARCHEstimator] = None,
                 criterion: str = 'aic',
                 max_workers: int = 1,
                 use_processes: bool = False,
                 show_progress: bool = False):
        """
        Args:
            estimator: Estimator shared by all candidates
            criterion: 'aic' or 'bic'; lower is better
            max_workers: Parallel fits; 1 fits serially
            use_processes: Use a process pool instead of threads when parallel
            show_progress: Display a progress bar over candidates
        """
        criterion = criterion.lower()
        if criterion not in CRITERIA:
            raise ValueError(f"criterion must be one of {CRITERIA}, got '{criterion}'")
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.estimator = estimator or GARCHEstimator()
        self.criterion = criterion
        self.max_workers = max_workers
        self.use_processes = use_processes
        self.show_progress = show_progress
        self.logger = logging.getLogger('garch.selector')

    def _rank_key(self, entry: RankedModel):
        value = entry.aic if self.criterion == 'aic' else entry.bic
        # fewer parameters, then the simpler family, then the label
        return (round(value, 8), entry.n_params, entry.spec.family_rank, entry.spec.label)

    @staticmethod
    def _unique(candidates: Sequence[ModelSpec]) -> List[ModelSpec]:
        unique = []
        for spec in candidates:
            if not isinstance(spec, ModelSpec):
                raise TypeError(f"Candidates must be ModelSpec instances, got {type(spec).__name__}")
            if spec in unique:
                logger.warning(f"Dropping duplicate candidate {spec.label}")
                continue
            unique.append(spec)
        return unique

    def select(self, series, candidates: Sequence[ModelSpec]) -> SelectionResult:
        """Fit every candidate and rank those that converged"""
        candidates = self._unique(candidates)
        if not candidates:
            raise ValueError("No candidate specifications provided")

        # series-level problems affect every candidate alike
        returns = self.estimator.validator.prepare(series)

        # a common likelihood window keeps the criteria comparable
        burn_in = max(spec.mean_order for spec in candidates)

        outcomes: Dict[ModelSpec, Union[FittedModel, FitFailure]] = {}
        with ProgressMonitor(total=len(candidates), desc="Fitting candidates",
                             logger=self.logger, disable=not self.show_progress) as progress:
            if self.max_workers == 1:
                for spec in candidates:
                    outcome = _fit_candidate(self.estimator, returns, spec, burn_in)
                    outcomes[spec] = outcome
                    progress.update(status=spec.label, failed=isinstance(outcome, FitFailure))
            else:
                executor_cls = ProcessPoolExecutor if self.use_processes else ThreadPoolExecutor
                with executor_cls(max_workers=self.max_workers) as executor:
                    futures = {
                        executor.submit(_fit_candidate, self.estimator, returns, spec, burn_in): spec
                        for spec in candidates
                    }
                    for future in as_completed(futures):
                        spec = futures[future]
                        outcome = future.result()
                        outcomes[spec] = outcome
                        progress.update(status=spec.label, failed=isinstance(outcome, FitFailure))

        ranking = sorted(
            (RankedModel.from_fit(o) for o in outcomes.values() if isinstance(o, FittedModel)),
            key=self._rank_key
        )
        failures = sorted(
            (o for o in outcomes.values() if isinstance(o, FitFailure)),
            key=lambda f: f.spec.label
        )

        for failure in failures:
            self.logger.warning(
                f"Candidate {failure.spec.label} failed ({failure.error_type}): {failure.reason}"
            )
        if ranking:
            self.logger.info(
                f"Model ranking by {self.criterion.upper()} ({len(ranking)} fitted, "
                f"{len(failures)} failed):\n"
                + "\n".join(
                    f"  {rank:2d}. {entry.spec.label:<32} AIC={entry.aic:12.4f} "
                    f"BIC={entry.bic:12.4f} LL={entry.loglikelihood:12.4f}"
                    for rank, entry in enumerate(ranking, start=1)
                )
            )
        else:
            self.logger.error("No candidate model converged")

        return SelectionResult(
            criterion=self.criterion,
            ranking=tuple(ranking),
            failures=tuple(failures)
        )
