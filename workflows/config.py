"""Configuration of a selection + VaR analysis run"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union
import pandas as pd

from garch.estimator import COVARIANCE_TYPES
from garch.exceptions import InvalidSpec
from garch.models import ModelSpec
from garch.selector import CRITERIA

SplitPoint = Union[float, str, pd.Timestamp, None]


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Every knob of ``run_var_sequence``. Required fields carry no defaults.

    Attributes:
        candidates: Model specifications compared on the in-sample window
        criterion: 'aic' or 'bic'
        confidence_level: VaR confidence, e.g. 0.99 for the 1% lower tail
        diagnostic_lags: Lags for Ljung-Box and ARCH-LM tests
        max_iterations: Optimizer iteration budget per fit
        time_budget: Wall-clock seconds per fit, or None for no limit
        freeze_quantile: Reuse the in-sample quantile out of sample instead of
            re-deriving it on the out-of-sample window
        out_of_sample_start: Timestamp or in-sample fraction in (0, 1) where the
            out-of-sample window begins; None runs in-sample only
    """
    candidates: Tuple[ModelSpec, ...]
    criterion: str
    confidence_level: float
    diagnostic_lags: int
    max_iterations: int
    time_budget: Optional[float]
    freeze_quantile: bool
    out_of_sample_start: SplitPoint
    significance_level: float = 0.05
    covariance_type: str = 'hessian'
    max_workers: int = 1

    def __post_init__(self):
        candidates = tuple(self.candidates)
        if not candidates:
            raise ValueError("At least one candidate specification is required")
        for spec in candidates:
            if not isinstance(spec, ModelSpec):
                raise InvalidSpec(f"Candidates must be ModelSpec instances, got {type(spec).__name__}")
        object.__setattr__(self, 'candidates', candidates)

        criterion = str(self.criterion).lower()
        if criterion not in CRITERIA:
            raise ValueError(f"criterion must be one of {CRITERIA}, got '{self.criterion}'")
        object.__setattr__(self, 'criterion', criterion)

        if not 0.0 < self.confidence_level < 1.0:
            raise ValueError(f"confidence_level must lie in (0, 1), got {self.confidence_level}")
        if self.diagnostic_lags < 1:
            raise ValueError(f"diagnostic_lags must be positive, got {self.diagnostic_lags}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.time_budget is not None and self.time_budget <= 0:
            raise ValueError(f"time_budget must be positive, got {self.time_budget}")
        if self.significance_level not in (0.10, 0.05, 0.01):
            raise ValueError(
                f"significance_level must be 0.10, 0.05 or 0.01, got {self.significance_level}"
            )
        if self.covariance_type not in COVARIANCE_TYPES:
            raise ValueError(
                f"covariance_type must be one of {COVARIANCE_TYPES}, got '{self.covariance_type}'"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")

        split = self.out_of_sample_start
        if isinstance(split, float) and not 0.0 < split < 1.0:
            raise ValueError(f"Fractional out_of_sample_start must lie in (0, 1), got {split}")
