"""
Pilot script for the selection and VaR pipeline on a simulated return series.
"""

import logging
from pathlib import Path
import sys
import pandas as pd

# Add parent directory to path to import our modules
sys.path.append(str(Path(__file__).parent.parent))

from garch.models import ModelSpec
from garch.selector import build_candidate_grid
from garch.simulation import simulate_returns
from workflows.config import AnalysisConfig
from workflows.run_var_sequence import run_var_sequence

# Data parameters
TRAIN_YEARS = 8
TEST_YEARS = 2
TRADING_DAYS = 252

# Daily process roughly matching an equity index
TRUE_SPEC = ModelSpec(variance_family='garch', q=1, p=1, distribution='studentst')
TRUE_PARAMS = {
    'mu': 0.0003,
    'omega': 2e-6,
    'alpha[1]': 0.08,
    'beta[1]': 0.90,
    'nu': 7.0,
}


def setup_logging():
    """Configure logging with both file and console output"""
    log_file = 'pilot_run.log'

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
    return logging.getLogger('pilot')


if __name__ == "__main__":
    logger = setup_logging()

    try:
        logger.info("Starting pilot run...")
        nobs = (TRAIN_YEARS + TEST_YEARS) * TRADING_DAYS
        dates = pd.bdate_range('2012-01-02', periods=nobs)
        returns = simulate_returns(TRUE_SPEC, TRUE_PARAMS, nobs, seed=42, index=dates)
        logger.info(f"Simulated {len(returns)} returns from {TRUE_SPEC.label}")

        candidates = build_candidate_grid(
            variance_families=('arch', 'garch', 'egarch'),
            orders=((1, 1), (1, 2), (2, 1)),
            distributions=('normal', 'studentst'),
            mean_orders=(0, 1)
        )

        config = AnalysisConfig(
            candidates=tuple(candidates),
            criterion='bic',
            confidence_level=0.99,
            diagnostic_lags=10,
            max_iterations=500,
            time_budget=60.0,
            freeze_quantile=True,
            out_of_sample_start=dates[TRAIN_YEARS * TRADING_DAYS],
            max_workers=4
        )
        analysis = run_var_sequence(returns, config)

        logger.info(f"Selection:\n{analysis.selection.to_dataframe().head(10).to_string()}")
        logger.info(f"Selected model:\n{analysis.fitted.summary().to_string()}")
        logger.info(f"Diagnostics:\n{analysis.diagnostics.to_dataframe().to_string()}")
        logger.info(f"VaR summary:\n{analysis.summary().to_string()}")
        logger.info("Pilot analysis completed successfully")

    except Exception as e:
        logger.error(f"Pilot analysis failed: {str(e)}")
        raise
