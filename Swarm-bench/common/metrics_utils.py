"""
Shared utilities for benchmark metrics calculations: latency statistics, failure rates and wave summaries.
"""

import pandas as pd
import logging
from configuration import (
    NANOS_PER_MS,
    NANOS_PER_SECOND,
)

logger = logging.getLogger(__name__)


def ns_to_ms(value_ns: float) -> float:
    """Convert nanoseconds to milliseconds."""
    return value_ns / NANOS_PER_MS


def calculate_throughput_mbps(total_bytes: float, latency_ns: float) -> float:
    """
    Calculate throughput in megabits per second from bytes and a latency in nanoseconds.

    Args:
        total_bytes: Total bytes transferred
        latency_ns: Transfer duration in nanoseconds

    Returns:
        Throughput in Mbps, 0 when the duration is not positive
    """
    if latency_ns <= 0:
        return 0.0
    return (total_bytes * 8) / (latency_ns / NANOS_PER_SECOND) / 1_000_000


def calculate_latency_stats(data: pd.DataFrame, latency_col: str = 'fetch_latency_ns') -> dict:
    """
    Calculate fetch latency statistics (mean and percentiles) in milliseconds.

    Only rows with a positive latency count: a zero latency means the node did
    not fetch successfully in that run.

    Args:
        data: DataFrame of run records
        latency_col: Column name for latency values (default: 'fetch_latency_ns')

    Returns:
        Dictionary with avg, p50, p95, p99 latency statistics
    """
    if len(data) == 0 or latency_col not in data.columns:
        return {'avg': 0.0, 'p50': 0.0, 'p95': 0.0, 'p99': 0.0}

    latencies = data.loc[data[latency_col] > 0, latency_col] / NANOS_PER_MS
    if len(latencies) == 0:
        return {'avg': 0.0, 'p50': 0.0, 'p95': 0.0, 'p99': 0.0}

    return {
        'avg': float(latencies.mean()),
        'p50': float(latencies.quantile(0.5)),
        'p95': float(latencies.quantile(0.95)),
        'p99': float(latencies.quantile(0.99)),
    }


def calculate_failure_rate(data: pd.DataFrame) -> float:
    """
    Failed fetches per attempted fetch among consumer rows.

    An attempt is a successful fetch (positive latency) or a counted failure;
    rows with neither belong to consumers that were not entitled to fetch.
    """
    consumers = data[data['wave'].notna()] if 'wave' in data.columns else data.iloc[0:0]
    if len(consumers) == 0:
        return 0.0
    failures = int(consumers['failure_count'].sum())
    successes = int((consumers['fetch_latency_ns'] > 0).sum())
    attempts = failures + successes
    return failures / attempts if attempts > 0 else 0.0


def summarize_by_wave(data: pd.DataFrame) -> pd.DataFrame:
    """
    Summarize run records grouped by (file_size, role, wave).

    Returns:
        DataFrame with one row per group: runs, fetches, failures, failure_rate,
        avg/p50/p95 fetch latency (ms) and mean baseline latency (ms)
    """
    columns = ['file_size', 'role', 'wave', 'runs', 'fetches', 'failures', 'failure_rate',
               'avg_fetch_ms', 'p50_fetch_ms', 'p95_fetch_ms', 'avg_baseline_ms']
    if len(data) == 0:
        return pd.DataFrame(columns=columns)

    rows = []
    for (file_size, role, wave), group in data.groupby(['file_size', 'role', 'wave'], dropna=False):
        stats = calculate_latency_stats(group)
        baselines = group.loc[group['baseline_latency_ns'] > 0, 'baseline_latency_ns']
        rows.append({
            'file_size': file_size,
            'role': role,
            'wave': wave,
            'runs': len(group),
            'fetches': int((group['fetch_latency_ns'] > 0).sum()),
            'failures': int(group['failure_count'].sum()),
            'failure_rate': calculate_failure_rate(group),
            'avg_fetch_ms': stats['avg'],
            'p50_fetch_ms': stats['p50'],
            'p95_fetch_ms': stats['p95'],
            'avg_baseline_ms': ns_to_ms(float(baselines.mean())) if len(baselines) else 0.0,
        })

    summary = pd.DataFrame(rows, columns=columns)
    logger.debug(f"Summarized {len(data)} records into {len(summary)} groups")
    return summary
