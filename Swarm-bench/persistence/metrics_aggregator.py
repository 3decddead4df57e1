"""
Metrics aggregator turning per-run observations into normalized run records.
"""

import logging
from typing import List, Optional

import pandas as pd

from common.context import NodeRole
from common.errors import MetricsError
from common.metrics_utils import summarize_by_wave, ns_to_ms
from persistence.base import MetricsSink
from persistence.record import RunRecord

logger = logging.getLogger(__name__)


class MetricsAggregator:
    """Emits one record per (node, file, run), whatever the node's role.

    Records go to the configured sink and, when set, to a Prometheus
    exporter. A consumer record carries its wave so that "not entitled to
    fetch" (zero latency, zero failures) stays distinguishable from a failed
    fetch downstream.
    """

    def __init__(self, sink: MetricsSink, exporter=None):
        """Initialize the metrics aggregator.

        Args:
            sink: Destination for emitted records
            exporter: Optional SimplePrometheusExporter
        """
        self.sink = sink
        self.exporter = exporter
        self.records: List[RunRecord] = []

    def emit(self, run: int, seq: int, group_seq: int, latency_ms: int, bandwidth_mb: int,
             file_size: int, role: NodeRole, role_index: int, fetch_latency_ns: int,
             baseline_latency_ns: int, failure_count: int, max_connection_rate: int,
             run_id: str = "", file_index: int = 0, wave: Optional[int] = None,
             bytes_transferred: int = 0) -> RunRecord:
        """Validate and emit the record of one run.

        Raises:
            MetricsError: if the observation is inconsistent or the sink fails
        """
        for name, value in (('fetch_latency_ns', fetch_latency_ns),
                            ('baseline_latency_ns', baseline_latency_ns),
                            ('failure_count', failure_count),
                            ('bytes_transferred', bytes_transferred),
                            ('file_size', file_size)):
            if value < 0:
                raise MetricsError(f"{name} must not be negative, got {value} (run {run_id})")

        if role != NodeRole.CONSUMER:
            if fetch_latency_ns or failure_count or wave is not None:
                raise MetricsError(
                    f"Only consumers fetch; {role} reported latency={fetch_latency_ns}, "
                    f"failures={failure_count}, wave={wave} (run {run_id})"
                )
        elif wave is None:
            raise MetricsError(f"Consumer record without a wave (run {run_id})")

        record = RunRecord(
            run_id=run_id or f"{file_index}-{run}",
            run_number=run,
            file_index=file_index,
            seq=seq,
            group_seq=group_seq,
            role=role.value,
            role_index=role_index,
            latency_ms=latency_ms,
            bandwidth_mb=bandwidth_mb,
            file_size=file_size,
            fetch_latency_ns=fetch_latency_ns,
            baseline_latency_ns=baseline_latency_ns,
            failure_count=failure_count,
            max_connection_rate=max_connection_rate,
            wave=wave,
            bytes_transferred=bytes_transferred,
        )

        try:
            self.sink.store_record(record)
        except Exception as e:
            raise MetricsError(f"Failed to store metrics for run {record.run_id}: {e}") from e
        self.records.append(record)

        if self.exporter is not None:
            try:
                self.exporter.record_run(record)
            except Exception as e:
                logger.error(f"Failed to export metrics for run {record.run_id}: {e}")

        logger.info(
            f"Metrics {record.metric_id()}: fetch={ns_to_ms(fetch_latency_ns):.1f} ms, "
            f"baseline={ns_to_ms(baseline_latency_ns):.1f} ms, failures={failure_count}"
        )
        return record

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame([r.to_dict() for r in self.records])
        if len(df) > 0:
            df['wave'] = df['wave'].astype('Int64')
        return df

    def summarize(self) -> pd.DataFrame:
        """Per (file size, role, wave) summary of everything emitted so far."""
        return summarize_by_wave(self.to_dataframe())

    def get_total_records(self) -> int:
        """Get total number of records.

        Returns:
            Total number of records
        """
        return len(self.records)
