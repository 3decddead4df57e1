"""
Configuration constants for the swarm transfer benchmark.

This module contains all configuration parameters including:
- Rendezvous (sync service) endpoint and polling settings
- Transfer provider settings (local content store, S3 bucket)
- Test parameters (run count, timeouts, waves, stagger, connection rate)
- Wave scheduling policy values
- File size constants and conversion factors
"""

import os
from typing import List


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_sizes(name: str, default: List[int]) -> List[int]:
    value = os.getenv(name)
    if not value:
        return default
    return [int(part) for part in value.split(",") if part.strip()]


# =============================================================================
# SYNC SERVICE CONFIGURATION
# =============================================================================

SYNC_SERVICE_URL: str = os.getenv("SYNC_SERVICE_URL", "http://127.0.0.1:5050")
SYNC_SERVICE_HOST: str = os.getenv("SYNC_SERVICE_HOST", "0.0.0.0")
SYNC_SERVICE_PORT: int = int(os.getenv("SYNC_SERVICE_PORT", "5050"))

# Upper bound for a single long-poll request; longer waits are split into
# several polls so proxies do not cut the connection
SYNC_LONG_POLL_SECONDS: float = 30.0

# =============================================================================
# TRANSFER PROVIDER CONFIGURATION
# =============================================================================

# Content-addressed directory shared by the local provider
STORE_DIR: str = os.getenv("STORE_DIR", "/tmp/swarm-bench/store")

# S3-compatible provider
BUCKET_NAME: str = os.getenv("BUCKET_NAME", "")
S3_ENDPOINT: str = os.getenv("S3_ENDPOINT", "")
S3_PREFIX: str = os.getenv("S3_PREFIX", "swarm-bench")
AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
AWS_REGION: str = os.getenv("AWS_REGION", "eu-north-1")

CONTENT_ID_PREFIX: str = "sha256-"

# =============================================================================
# NODE CONFIGURATION
# =============================================================================

NODE_HOST: str = os.getenv("NODE_HOST", "127.0.0.1")
NODE_PORT: int = int(os.getenv("NODE_PORT", "0"))  # 0 = pick a free port
WORK_DIR: str = os.getenv("WORK_DIR", "/tmp/swarm-bench/work")

# Recorded with every metric; shaping itself is done outside the benchmark
LATENCY_MS: int = int(os.getenv("LATENCY_MS", "0"))
BANDWIDTH_MB: int = int(os.getenv("BANDWIDTH_MB", "0"))

# =============================================================================
# TEST PARAMETERS
# =============================================================================

RUN_COUNT: int = int(os.getenv("RUN_COUNT", "1"))
RUN_TIMEOUT_SECONDS: float = float(os.getenv("RUN_TIMEOUT_SECONDS", "90"))
BENCHMARK_TIMEOUT_SECONDS: float = float(os.getenv("BENCHMARK_TIMEOUT_SECONDS", "600"))
NUM_WAVES: int = int(os.getenv("NUM_WAVES", "1"))
REQUEST_STAGGER_SECONDS: float = float(os.getenv("REQUEST_STAGGER_SECONDS", "0"))
MAX_CONNECTION_RATE: int = int(os.getenv("MAX_CONNECTION_RATE", "100"))  # percent of peers
TCP_ENABLED: bool = _env_bool("TCP_ENABLED", False)

# Payloads generated when no input files are given
FILE_SIZES: List[int] = _env_sizes("FILE_SIZES", [1024 * 1024])
RANDOM_SEED: int = int(os.getenv("RANDOM_SEED", "42"))

# =============================================================================
# WAVE SCHEDULING POLICY
# =============================================================================

INTER_WAVE_PAUSE_SECONDS: float = 5.0  # Pause between non-final waves
FETCH_TIMEOUT_FRACTION: float = 0.5  # Share of the run timeout a single fetch may use

# =============================================================================
# DIAL AND LIVENESS
# =============================================================================

DIAL_TIMEOUT_SECONDS: float = 5.0
HEARTBEAT_INTERVAL_SECONDS: float = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "10"))

# =============================================================================
# FILE SIZE CONSTANTS
# =============================================================================

BYTES_PER_KB: int = 1024
BYTES_PER_MB: int = 1024 * 1024
BYTES_PER_GB: int = 1024 * 1024 * 1024
NANOS_PER_MS: int = 1_000_000
NANOS_PER_SECOND: int = 1_000_000_000
STREAM_CHUNK_SIZE: int = 64 * 1024

# =============================================================================
# CLI DEFAULTS
# =============================================================================

DEFAULT_OUTPUT_DIR: str = "results"
DEFAULT_PLOTS_DIR: str = "plots"
DEFAULT_PROMETHEUS_PORT: int = 0  # 0 = exporter disabled
