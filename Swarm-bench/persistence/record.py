"""
Per-run metrics record for the swarm benchmark.
"""

import time
from typing import Any, Dict, Optional


class RunRecord:
    """One measurement of one node for one (file, run) pair.

    ``fetch_latency_ns`` is 0 for producers and for consumers whose fetch
    failed; ``wave`` is set only for consumers.
    """

    def __init__(self, run_id: str, run_number: int, file_index: int, seq: int, group_seq: int,
                 role: str, role_index: int, latency_ms: int, bandwidth_mb: int, file_size: int,
                 fetch_latency_ns: int, baseline_latency_ns: int, failure_count: int,
                 max_connection_rate: int, wave: Optional[int] = None,
                 bytes_transferred: int = 0, ts: float = None):
        self.ts = ts or time.time()
        self.run_id = run_id
        self.run_number = run_number
        self.file_index = file_index
        self.seq = seq
        self.group_seq = group_seq
        self.role = role
        self.role_index = role_index
        self.wave = wave
        self.latency_ms = latency_ms
        self.bandwidth_mb = bandwidth_mb
        self.file_size = file_size
        self.fetch_latency_ns = fetch_latency_ns
        self.baseline_latency_ns = baseline_latency_ns
        self.failure_count = failure_count
        self.bytes_transferred = bytes_transferred
        self.max_connection_rate = max_connection_rate

    @property
    def fetched(self) -> bool:
        return self.fetch_latency_ns > 0

    def metric_id(self) -> str:
        """Flat identifier carrying the run coordinates, one segment per tag."""
        return (
            f"run:{self.run_id}/seq:{self.seq}/grpseq:{self.group_seq}/role:{self.role}"
            f"/tpindex:{self.role_index}/wave:{'' if self.wave is None else self.wave}"
            f"/latency:{self.latency_ms}/bandwidth:{self.bandwidth_mb}/size:{self.file_size}"
            f"/maxConnRate:{self.max_connection_rate}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ts': self.ts,
            'run_id': self.run_id,
            'run_number': self.run_number,
            'file_index': self.file_index,
            'seq': self.seq,
            'group_seq': self.group_seq,
            'role': self.role,
            'role_index': self.role_index,
            'wave': self.wave,
            'latency_ms': self.latency_ms,
            'bandwidth_mb': self.bandwidth_mb,
            'file_size': self.file_size,
            'fetch_latency_ns': self.fetch_latency_ns,
            'baseline_latency_ns': self.baseline_latency_ns,
            'failure_count': self.failure_count,
            'bytes_transferred': self.bytes_transferred,
            'max_connection_rate': self.max_connection_rate,
        }

    def __repr__(self) -> str:
        return (f"RunRecord(run_id='{self.run_id}', seq={self.seq}, role={self.role}, "
                f"wave={self.wave}, fetch_latency_ns={self.fetch_latency_ns}, "
                f"failures={self.failure_count})")
