"""
Metrics sink contract and an in-memory sink.
"""

from typing import List, Optional

from persistence.record import RunRecord


class MetricsSink:
    """Destination for emitted run records."""

    def store_record(self, record: RunRecord) -> None:
        raise NotImplementedError

    def save_to_file(self, filename_prefix: str = "benchmark") -> Optional[str]:
        """Persist stored records; sinks without a file return None."""
        return None


class SimpleMetricsCollector(MetricsSink):
    """Keeps records in memory."""

    def __init__(self):
        self.records: List[RunRecord] = []

    def store_record(self, record: RunRecord) -> None:
        """Add a run record."""
        self.records.append(record)

    def get_summary(self):
        """Get basic summary statistics."""
        if not self.records:
            return {}

        consumer_records = [r for r in self.records if r.wave is not None]
        fetched = [r for r in consumer_records if r.fetched]
        total_failures = sum(r.failure_count for r in consumer_records)

        return {
            'total_records': len(self.records),
            'consumer_records': len(consumer_records),
            'successful_fetches': len(fetched),
            'failed_fetches': total_failures,
            'total_bytes': sum(r.bytes_transferred for r in consumer_records),
            'avg_fetch_latency_ms': (
                sum(r.fetch_latency_ns for r in fetched) / len(fetched) / 1e6 if fetched else 0
            ),
        }
