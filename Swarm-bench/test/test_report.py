"""
Tests for the report command: summaries and plots from saved Parquet results.
"""

import os
import sys
import tempfile
import unittest

# Add the parent directory to Python path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cli.__main__ import SwarmBenchCLI
from cli.report import BenchmarkReporter
from common.context import NodeRole
from persistence.metrics_aggregator import MetricsAggregator
from persistence.parquet import ParquetPersistence


class TestBenchmarkReporter(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        persistence = ParquetPersistence(os.path.join(self.tmp.name, "results"))
        aggregator = MetricsAggregator(persistence)
        for run in (1, 2):
            aggregator.emit(run=run, seq=1, group_seq=0, latency_ms=0, bandwidth_mb=0, file_size=4096,
                            role=NodeRole.PRODUCER, role_index=0, fetch_latency_ns=0,
                            baseline_latency_ns=0, failure_count=0, max_connection_rate=100)
            for seq, wave in ((2, 0), (3, 1)):
                failed = seq == 3 and run == 2
                aggregator.emit(run=run, seq=seq, group_seq=0, latency_ms=0, bandwidth_mb=0,
                                file_size=4096, role=NodeRole.CONSUMER, role_index=seq - 2,
                                fetch_latency_ns=0 if failed else seq * 1_000_000,
                                baseline_latency_ns=500_000, failure_count=1 if failed else 0,
                                max_connection_rate=100, wave=wave,
                                bytes_transferred=0 if failed else 4096)
        self.parquet_file = persistence.save_to_file("node-all")
        self.plots_dir = os.path.join(self.tmp.name, "plots")

    def tearDown(self):
        self.tmp.cleanup()

    def test_summary(self):
        reporter = BenchmarkReporter([self.parquet_file], self.plots_dir)
        summary = reporter.summary()
        self.assertEqual(len(summary), 3)
        self.assertEqual(int(summary['failures'].sum()), 1)
        self.assertEqual(int(summary['fetches'].sum()), 3)

    def test_plots_written(self):
        reporter = BenchmarkReporter([self.parquet_file], self.plots_dir)
        plots = reporter.create_all_plots()
        self.assertEqual(len(plots), 3)
        for plot in plots:
            self.assertTrue(os.path.exists(plot))

    def test_unreadable_files_are_skipped(self):
        broken = os.path.join(self.tmp.name, "broken.parquet")
        with open(broken, 'w') as f:
            f.write("not parquet")
        reporter = BenchmarkReporter([broken], self.plots_dir)
        self.assertEqual(len(reporter.summary()), 0)
        self.assertEqual(reporter.create_all_plots(), [])


class TestCLI(unittest.TestCase):

    def test_no_command_prints_help(self):
        self.assertEqual(SwarmBenchCLI().run([]), 1)

    def test_report_missing_files(self):
        self.assertEqual(SwarmBenchCLI().run(['report', '--parquet-files', '/nonexistent.parquet']), 1)

    def test_report_command(self):
        with tempfile.TemporaryDirectory() as tmp:
            persistence = ParquetPersistence(tmp)
            MetricsAggregator(persistence).emit(
                run=1, seq=2, group_seq=0, latency_ms=0, bandwidth_mb=0, file_size=10,
                role=NodeRole.CONSUMER, role_index=0, fetch_latency_ns=1_000, baseline_latency_ns=0,
                failure_count=0, max_connection_rate=100, wave=0, bytes_transferred=10,
            )
            path = persistence.save_to_file("node-2")
            code = SwarmBenchCLI().run(['report', '--parquet-files', path,
                                        '--output-dir', os.path.join(tmp, 'plots')])
        self.assertEqual(code, 0)


if __name__ == '__main__':
    unittest.main()
