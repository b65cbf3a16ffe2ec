"""
End-to-end selection and VaR workflows.
"""

from .config import AnalysisConfig
from .run_var_sequence import VaRAnalysis, run_var_sequence, split_series

__all__ = ['AnalysisConfig', 'VaRAnalysis', 'run_var_sequence', 'split_series']
