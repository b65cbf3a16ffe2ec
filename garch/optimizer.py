"""Numerical optimizer capability used by the estimator.

Any algorithm can sit behind ``Optimizer.maximize``; the default wraps
SciPy's SLSQP, which handles bounds and inequality constraints together.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple
import logging
import time
import numpy as np
from scipy.optimize import minimize

logger = logging.getLogger(__name__)

Bounds = Sequence[Tuple[Optional[float], Optional[float]]]
# Each constraint g must satisfy g(x) >= 0 at a feasible point
Constraint = Callable[[np.ndarray], float]


@dataclass
class OptimizationResult:
    x: np.ndarray
    value: float
    success: bool
    iterations: int
    evaluations: int
    message: str


class _BudgetExhausted(Exception):
    pass


class Optimizer(ABC):
    """Maximizes an objective subject to bounds and inequality constraints"""

    @abstractmethod
    def maximize(self, objective: Callable[[np.ndarray], float],
                 initial: np.ndarray,
                 bounds: Bounds,
                 constraints: List[Constraint]) -> OptimizationResult:
        ...


class ScipyOptimizer(Optimizer):
    """SLSQP with an iteration budget and a cooperative wall-clock budget"""

    def __init__(self, max_iterations: int = 1000,
                 time_budget: Optional[float] = None,
                 tolerance: float = 1e-8,
                 method: str = 'SLSQP'):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")
        if time_budget is not None and time_budget <= 0:
            raise ValueError(f"time_budget must be positive, got {time_budget}")
        self.max_iterations = max_iterations
        self.time_budget = time_budget
        self.tolerance = tolerance
        self.method = method

    def maximize(self, objective, initial, bounds, constraints) -> OptimizationResult:
        deadline = None
        if self.time_budget is not None:
            deadline = time.monotonic() + self.time_budget
        evaluations = 0

        def negative(x):
            nonlocal evaluations
            # deadline is checked between evaluations, never mid-recursion
            if deadline is not None and time.monotonic() > deadline:
                raise _BudgetExhausted
            evaluations += 1
            return -objective(x)

        scipy_constraints = [{'type': 'ineq', 'fun': g} for g in constraints]
        try:
            # floating-point errors are silenced per thread only
            with np.errstate(all='ignore'):
                result = minimize(
                    negative,
                    np.asarray(initial, dtype=float),
                    method=self.method,
                    bounds=list(bounds),
                    constraints=scipy_constraints,
                    options={'maxiter': self.max_iterations, 'ftol': self.tolerance},
                )
        except _BudgetExhausted:
            logger.warning(
                f"Optimizer stopped after {evaluations} evaluations: "
                f"time budget of {self.time_budget}s exhausted"
            )
            return OptimizationResult(
                x=np.asarray(initial, dtype=float),
                value=np.nan,
                success=False,
                iterations=0,
                evaluations=evaluations,
                message=f"time budget of {self.time_budget}s exhausted",
            )

        return OptimizationResult(
            x=np.asarray(result.x, dtype=float),
            value=float(-result.fun),
            success=bool(result.success),
            iterations=int(getattr(result, 'nit', 0)),
            evaluations=evaluations,
            message=str(result.message),
        )
