"""
Simple Prometheus metrics exporter for the swarm benchmark.
"""

import logging
from prometheus_client import start_http_server, Counter, Histogram, Gauge, CollectorRegistry

from persistence.record import RunRecord

logger = logging.getLogger(__name__)


class SimplePrometheusExporter:
    """Simple Prometheus metrics exporter."""

    def __init__(self, port: int = 9100, registry: CollectorRegistry = None):
        self.port = port
        self.server_started = False
        self.registry = registry or CollectorRegistry()

        # Define metrics
        self.runs_total = Counter('swarm_bench_runs_total', 'Emitted run records', ['role'],
                                  registry=self.registry)
        self.fetch_failures = Counter('swarm_bench_fetch_failures_total', 'Failed fetches', ['role'],
                                      registry=self.registry)
        self.fetch_duration = Histogram('swarm_bench_fetch_duration_seconds', 'Time to fetch a file',
                                        ['wave'], registry=self.registry)
        self.bytes_fetched = Counter('swarm_bench_bytes_fetched_total', 'Total bytes fetched',
                                     registry=self.registry)
        self.baseline_latency = Gauge('swarm_bench_baseline_latency_seconds',
                                      'Raw transport fetch latency of the last file',
                                      registry=self.registry)

    def start_server(self):
        """Start the Prometheus HTTP server."""
        if not self.server_started:
            try:
                start_http_server(self.port, registry=self.registry)
                self.server_started = True
                logger.info(f"Prometheus server started on port {self.port}")
            except OSError as e:
                logger.error(f"Failed to start Prometheus server: {e}")

    def record_run(self, record: RunRecord):
        """Record a run metric."""
        self.runs_total.labels(role=record.role).inc()
        if record.failure_count:
            self.fetch_failures.labels(role=record.role).inc(record.failure_count)
        if record.fetched:
            wave = '' if record.wave is None else str(record.wave)
            self.fetch_duration.labels(wave=wave).observe(record.fetch_latency_ns / 1e9)
            self.bytes_fetched.inc(record.bytes_transferred)
        if record.baseline_latency_ns:
            self.baseline_latency.set(record.baseline_latency_ns / 1e9)
