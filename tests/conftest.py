import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
import pandas as pd

from garch.estimator import GARCHEstimator
from garch.models import ModelSpec
from garch.simulation import simulate_returns

GARCH_SPEC = ModelSpec(variance_family='garch', q=1, p=1)
GARCH_PARAMS = {'mu': 0.0002, 'omega': 5e-6, 'alpha[1]': 0.05, 'beta[1]': 0.90}

ARCH_SPEC = ModelSpec(variance_family='arch', q=1, p=0, include_mean=False)
ARCH_PARAMS = {'omega': 0.0001, 'alpha[1]': 0.3}

EGARCH_SPEC = ModelSpec(variance_family='egarch', q=1, p=1)
EGARCH_PARAMS = {'mu': 0.0, 'omega': -0.46, 'alpha[1]': -0.10, 'gamma[1]': 0.15, 'beta[1]': 0.95}


def business_days(n: int) -> pd.DatetimeIndex:
    return pd.bdate_range('2010-01-04', periods=n)


@pytest.fixture(scope='session')
def garch_returns():
    """GARCH(1,1) returns with known parameters on business-day dates"""
    return simulate_returns(GARCH_SPEC, GARCH_PARAMS, 2000, seed=7, index=business_days(2000))


@pytest.fixture(scope='session')
def long_garch_returns():
    """Long GARCH(1,1) sample for calibration checks"""
    return simulate_returns(GARCH_SPEC, GARCH_PARAMS, 5000, seed=11, index=business_days(5000))


@pytest.fixture(scope='session')
def arch_returns():
    """Zero-mean ARCH(1) returns with omega=0.0001, alpha=0.3"""
    return simulate_returns(ARCH_SPEC, ARCH_PARAMS, 3000, seed=3, index=business_days(3000))


@pytest.fixture(scope='session')
def egarch_returns():
    """EGARCH(1,1) returns with a leverage effect"""
    return simulate_returns(EGARCH_SPEC, EGARCH_PARAMS, 1500, seed=5, index=business_days(1500))


@pytest.fixture
def estimator():
    """Create GARCH estimator instance"""
    return GARCHEstimator(max_iterations=500)


@pytest.fixture(scope='session')
def garch_fit(garch_returns):
    """GARCH(1,1) fitted once for tests that only read the result"""
    return GARCHEstimator().fit(garch_returns, GARCH_SPEC)
