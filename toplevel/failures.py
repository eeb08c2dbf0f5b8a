"""
Crash loop detection for supervised services.

Keeps a per-service tally of recent exit times. A service that exits
CRITICAL_FAIL_THRESHOLD times within FAILURE_WINDOW seconds is considered to be
crash looping, at which point the supervisor gives up and lets the platform
restart the whole tree.
"""

import logging
from collections import defaultdict

logger = logging.getLogger(__name__)

# Exits older than this many seconds no longer count towards the tally
FAILURE_WINDOW = 60.0

# Exits within the window that indicate a crash loop
CRITICAL_FAIL_THRESHOLD = 5


class FailureTracker:
    """Sliding-window exit counter, keyed by service identity."""

    def __init__(self, window: float = FAILURE_WINDOW, threshold: int = CRITICAL_FAIL_THRESHOLD):
        self.window = window
        self.threshold = threshold
        self._tally: dict[str, list[float]] = defaultdict(list)

    def record_exit(self, identity, exit_time: float) -> bool:
        """
        Record an exit and report whether the service is crash looping.

        Entries more than `window` seconds older than exit_time are pruned
        before the new one is counted. Returns True once the retained tally
        reaches the threshold.
        """
        tally = [t for t in self._tally[identity] if exit_time - t <= self.window]
        tally.append(exit_time)
        self._tally[identity] = tally

        if len(tally) >= self.threshold:
            logger.error(
                f"Failure tally for {identity} reached critical threshold of "
                f"{self.threshold} within {self.window:g}s"
            )
            return True

        return False

    def tally(self, identity) -> list[float]:
        """Get the retained exit times for a service."""
        return list(self._tally.get(identity, ()))
