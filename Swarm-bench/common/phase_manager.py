"""
Phase manager for tracking benchmark phases and their durations.
"""

import time
import logging
from typing import Optional, Dict, Any, List, Tuple

logger = logging.getLogger(__name__)


class PhaseManager:
    """Tracks the phase a node is in and how long each completed phase took."""

    def __init__(self, clock=time.monotonic):
        """Initialize the phase manager.

        Args:
            clock: Time source, monotonic by default
        """
        self.clock = clock
        self.phase_id: str = ""
        self.phase_start_ts: Optional[float] = None
        self.history: List[Tuple[str, float]] = []

    def begin_phase(self, phase_id: str) -> None:
        """Begin a new phase, closing the current one if any.

        Args:
            phase_id: Barrier-derived phase name (e.g., "start-run-0-1")
        """
        self.end_phase()
        self.phase_id = phase_id
        self.phase_start_ts = self.clock()
        logger.debug(f"Began phase: {phase_id}")

    def end_phase(self) -> Optional[float]:
        """Close the current phase and record its duration.

        Returns:
            Duration of the closed phase in seconds, or None if no phase was active
        """
        if not self.phase_id or self.phase_start_ts is None:
            return None
        duration = self.clock() - self.phase_start_ts
        self.history.append((self.phase_id, duration))
        logger.debug(f"Phase {self.phase_id} took {duration:.3f}s")
        self.phase_id = ""
        self.phase_start_ts = None
        return duration

    def durations_since(self, index: int) -> Dict[str, float]:
        """Durations of phases completed after position ``index`` of the history."""
        return dict(self.history[index:])

    def get_phase_info(self) -> Dict[str, Any]:
        """Get current phase information.

        Returns:
            Dictionary with current phase information
        """
        return {
            'phase_id': self.phase_id,
            'phase_start_ts': self.phase_start_ts,
            'phase_duration': self.clock() - self.phase_start_ts if self.phase_start_ts is not None else None,
            'completed_phases': len(self.history),
        }

    def is_phase_active(self) -> bool:
        """Check if a phase is currently active.

        Returns:
            True if a phase is active
        """
        return bool(self.phase_id)

    def reset(self) -> None:
        """Reset the phase manager to initial state."""
        self.phase_id = ""
        self.phase_start_ts = None
        self.history = []

        logger.debug("PhaseManager reset")

    def __repr__(self) -> str:
        """String representation of the phase manager."""
        return f"PhaseManager(phase_id='{self.phase_id}', completed={len(self.history)})"
