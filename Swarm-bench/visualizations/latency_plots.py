"""
Fetch latency and failure visualization plots.
"""

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import logging
import os

from .base import BasePlotter

logger = logging.getLogger(__name__)


class LatencyPlotter(BasePlotter):
    """Plotter for fetch latency and failure visualizations."""

    def create_wave_boxplot(self):
        """Create fetch latency box plot by wave."""
        successful_data = self.filter_successful_fetches()
        if successful_data is None or len(successful_data) == 0:
            logger.warning("No successful fetches for wave box plot")
            return None

        waves = sorted(int(w) for w in successful_data['wave'].unique())
        latency_by_wave = [successful_data[successful_data['wave'] == w]['fetch_latency_ms'].values
                           for w in waves]

        fig, ax = plt.subplots(figsize=(12, 8))
        box_plot = ax.boxplot(latency_by_wave, patch_artist=True)
        ax.set_xticks(range(1, len(waves) + 1))
        ax.set_xticklabels([str(w) for w in waves])

        colors = plt.cm.Set3(range(len(waves)))
        for patch, color in zip(box_plot['boxes'], colors):
            patch.set_facecolor(color)
            patch.set_alpha(0.7)

        ax.set_title('Fetch Latency by Wave', fontsize=14)
        ax.set_xlabel('Wave', fontsize=12)
        ax.set_ylabel('Time to fetch (ms)', fontsize=12)
        ax.grid(True, alpha=0.3)
        fig.tight_layout()

        output_file = os.path.join(self.output_dir, 'fetch_latency_by_wave.png')
        fig.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Created wave box plot: {output_file}")
        return output_file

    def create_latency_cdf(self):
        """Create the fetch latency CDF, one line per file size."""
        successful_data = self.filter_successful_fetches()
        if successful_data is None or len(successful_data) == 0:
            logger.warning("No successful fetches for latency CDF")
            return None

        fig, ax = plt.subplots(figsize=(12, 8))
        for file_size in sorted(successful_data['file_size'].unique()):
            latencies = np.sort(successful_data[successful_data['file_size'] == file_size]['fetch_latency_ms'].values)
            y = np.arange(1, len(latencies) + 1) / len(latencies)
            ax.plot(latencies, y, linewidth=2, label=f'{file_size:,} bytes')

        # Baseline latencies, when measured, for comparison
        baseline = successful_data[successful_data['baseline_latency_ns'] > 0]['baseline_latency_ns'].values / 1e6
        if len(baseline) > 0:
            baseline = np.sort(baseline)
            ax.plot(baseline, np.arange(1, len(baseline) + 1) / len(baseline),
                    'k--', linewidth=1.5, label='TCP baseline')

        ax.set_title('Cumulative Distribution of Fetch Latency', fontsize=14)
        ax.set_xlabel('Time to fetch (ms)', fontsize=12)
        ax.set_ylabel('Cumulative probability', fontsize=12)
        ax.grid(True, alpha=0.3)
        ax.legend()
        fig.tight_layout()

        output_file = os.path.join(self.output_dir, 'fetch_latency_cdf.png')
        fig.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Created latency CDF: {output_file}")
        return output_file

    def create_failure_plot(self):
        """Create a bar chart of fetch failures per run."""
        consumers = self.filter_consumer_records()
        if consumers is None or len(consumers) == 0:
            logger.warning("No consumer records for failure plot")
            return None

        failures = consumers.groupby('run_id', sort=False)['failure_count'].sum()

        fig, ax = plt.subplots(figsize=(12, 6))
        ax.bar(range(len(failures)), failures.values, color='lightcoral', edgecolor='black')
        ax.set_xticks(range(len(failures)))
        ax.set_xticklabels(failures.index, rotation=45, ha='right')
        ax.set_title('Fetch Failures per Run', fontsize=14)
        ax.set_xlabel('Run (file-run)', fontsize=12)
        ax.set_ylabel('Failed fetches', fontsize=12)
        ax.grid(True, axis='y', alpha=0.3)
        fig.tight_layout()

        output_file = os.path.join(self.output_dir, 'fetch_failures.png')
        fig.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Created failure plot: {output_file}")
        return output_file
