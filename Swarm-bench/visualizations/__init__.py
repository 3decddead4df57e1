"""
Plot visualization modules for benchmark results.
"""

from .base import BasePlotter
from .latency_plots import LatencyPlotter

__all__ = ['BasePlotter', 'LatencyPlotter']
