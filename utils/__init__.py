"""Utility functions and classes for GARCH analysis"""

from .progress import ProgressMonitor

__all__ = ['ProgressMonitor']
