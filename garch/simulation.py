"""Synthetic return series from known ARCH/GARCH/EGARCH processes.

Simulation is delegated to the ``arch`` package. Parameters are given in
this package's convention (``ModelSpec.parameter_names``) and mapped to
arch's: arch's ``p`` counts shock lags and ``q`` variance lags, and its EGARCH
pairs alpha with the magnitude term and gamma with the sign term.
"""

from typing import Dict, Optional
import logging
import numpy as np
import pandas as pd
from arch.univariate import (ARCH, ARX, EGARCH, GARCH, ConstantMean, Normal,
                             StudentsT, ZeroMean)

from .distributions import expected_abs
from .exceptions import InvalidSpec
from .models import ModelSpec

logger = logging.getLogger(__name__)


def _volatility_process(spec: ModelSpec):
    if spec.variance_family == 'arch':
        return ARCH(p=spec.q)
    if spec.variance_family == 'garch':
        return GARCH(p=spec.q, o=0, q=spec.p)
    return EGARCH(p=spec.q, o=spec.q, q=spec.p)


def _arch_parameters(spec: ModelSpec, params: Dict[str, float]) -> np.ndarray:
    missing = [name for name in spec.parameter_names if name not in params]
    if missing:
        raise InvalidSpec(f"{spec.label}: missing parameters {missing}")

    values = []
    if spec.include_mean:
        values.append(params['mu'])
    values += [params[f'phi[{k}]'] for k in range(1, spec.mean_order + 1)]

    alphas = [params[f'alpha[{i}]'] for i in range(1, spec.q + 1)]
    betas = [params[f'beta[{j}]'] for j in range(1, spec.p + 1)]
    if spec.variance_family == 'egarch':
        gammas = [params[f'gamma[{i}]'] for i in range(1, spec.q + 1)]
        # arch centres |z| with sqrt(2/pi) for every distribution
        nu = params.get('nu')
        shift = sum(gammas) * (np.sqrt(2.0 / np.pi) - expected_abs(spec.distribution, nu))
        values += [params['omega'] + shift] + gammas + alphas + betas
    else:
        values += [params['omega']] + alphas + betas

    if spec.distribution == 'studentst':
        values.append(params['nu'])
    return np.array(values, dtype=float)


def simulate_returns(spec: ModelSpec, params: Dict[str, float], nobs: int,
                     seed: Optional[int] = None, burn: int = 500,
                     index: Optional[pd.Index] = None) -> pd.Series:
    """
    Draw a return path from a known process

    Args:
        spec: Process specification (in-mean terms are not supported)
        params: Parameter values keyed by ``spec.parameter_names``
        nobs: Number of returned observations
        seed: Seed for the innovation generator
        burn: Discarded initial draws
        index: Index for the result; a RangeIndex when omitted

    Returns:
        Series of simulated log returns
    """
    if spec.mean_in_variance:
        raise InvalidSpec("Simulation of in-mean models is not supported")
    if nobs < 1:
        raise ValueError(f"nobs must be positive, got {nobs}")
    if index is not None and len(index) != nobs:
        raise ValueError(f"index has {len(index)} entries for {nobs} observations")

    rng = np.random.default_rng(seed)
    distribution = StudentsT(seed=rng) if spec.distribution == 'studentst' else Normal(seed=rng)
    volatility = _volatility_process(spec)

    if spec.mean_order > 0:
        model = ARX(None, lags=spec.mean_order, constant=spec.include_mean,
                    volatility=volatility, distribution=distribution)
    elif spec.include_mean:
        model = ConstantMean(None, volatility=volatility, distribution=distribution)
    else:
        model = ZeroMean(None, volatility=volatility, distribution=distribution)

    simulated = model.simulate(_arch_parameters(spec, params), nobs, burn=burn)
    logger.debug(
        f"Simulated {nobs} observations of {spec.label}: "
        f"std={simulated['data'].std():.6f}"
    )
    return pd.Series(
        simulated['data'].to_numpy(),
        index=index if index is not None else pd.RangeIndex(nobs),
        name='returns'
    )
