"""Error taxonomy for GARCH estimation, selection and VaR."""


class GARCHError(Exception):
    """Base class for all estimation and risk errors"""


class InvalidSpec(GARCHError, ValueError):
    """Model specification is malformed (negative order, unknown family, ...)"""


class InvalidSeriesError(GARCHError, ValueError):
    """Return series is malformed (NaN values, unordered index, ...)"""


class InsufficientDataError(GARCHError, ValueError):
    """Series is too short for the requested model orders"""


class DegenerateSeriesError(InsufficientDataError):
    """Series carries no variance information (e.g. constant returns)"""


class ConvergenceFailure(GARCHError):
    """Optimizer did not reach a stationary feasible point"""

    def __init__(self, message: str, iterations: int = 0):
        super().__init__(message)
        self.iterations = iterations


class NonStationaryFit(GARCHError):
    """Estimates violate the stability constraint at convergence"""

    def __init__(self, message: str, persistence: float, params: dict = None):
        super().__init__(message)
        self.persistence = persistence
        self.params = params or {}


class AlignmentError(GARCHError, ValueError):
    """Two series do not share a common contiguous time index"""
