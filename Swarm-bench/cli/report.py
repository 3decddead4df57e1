"""
Reporting for swarm benchmark results.

Loads one or more Parquet result files, prints the per-wave summary and
writes latency plots.
"""

import pandas as pd
import os
import logging
from typing import List

from common.metrics_utils import summarize_by_wave
from persistence.parquet import load_records
from visualizations.latency_plots import LatencyPlotter

logger = logging.getLogger(__name__)


class BenchmarkReporter:
    """Summaries and plots over the run records of a whole fleet."""

    def __init__(self, parquet_files: List[str], output_dir: str = "plots"):
        self.parquet_files = parquet_files
        self.output_dir = output_dir
        self.data = None

        # Ensure output directory exists
        os.makedirs(output_dir, exist_ok=True)

        # Load data
        self._load_data()

        self.latency_plotter = LatencyPlotter(self.data, self.output_dir) if self.data is not None else None

        if self.latency_plotter is not None:
            logger.info(f"Waves present: {self.latency_plotter.get_unique_waves()}")
        logger.info(f"Initialized reporter for {len(parquet_files)} result files")

    def _load_data(self):
        """Load and concatenate run records from Parquet files."""
        self.data = load_records(self.parquet_files)
        if self.data is not None:
            logger.info(f"Loaded {len(self.data)} records")

    def summary(self) -> pd.DataFrame:
        if self.data is None:
            return summarize_by_wave(pd.DataFrame())
        return summarize_by_wave(self.data)

    def create_all_plots(self) -> List[str]:
        """Create all plots and return the paths that were written."""
        if self.latency_plotter is None:
            logger.warning("No data available for plots")
            return []
        plots = [
            self.latency_plotter.create_wave_boxplot(),
            self.latency_plotter.create_latency_cdf(),
            self.latency_plotter.create_failure_plot(),
        ]
        return [p for p in plots if p]
