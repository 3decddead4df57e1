"""
Exception hierarchy for the benchmark.

Everything except TransferError aborts the node's participation. A
TransferError raised by a fetch is caught by the wave scheduler and counted as
a failure instead.
"""


class BenchmarkError(Exception):
    """Base class for fatal benchmark errors."""


class ConfigurationError(BenchmarkError):
    """Invalid test parameters or node configuration."""


class BarrierError(BenchmarkError):
    """The sync service failed while signaling or waiting on a barrier."""


class BarrierTimeoutError(BarrierError):
    """A barrier did not reach its target count before the deadline."""

    def __init__(self, state: str, target: int, count: int = None):
        self.state = state
        self.target = target
        self.count = count
        seen = "unknown" if count is None else str(count)
        super().__init__(f"Timed out waiting for barrier '{state}' ({seen}/{target} signaled)")


class IngestError(BenchmarkError):
    """Publishing or preparing a file failed, or its root content id is unusable."""


class BaselineError(BenchmarkError):
    """The raw-transport baseline test failed."""


class TransferError(BenchmarkError):
    """A transfer provider operation failed."""


class CleanupError(BenchmarkError):
    """Run-scoped or file-scoped cleanup failed."""


class MetricsError(BenchmarkError):
    """A metrics record was inconsistent or could not be stored."""


class PhaseDeadlineError(BenchmarkError):
    """A node was still waiting inside a phase when its run deadline expired."""
