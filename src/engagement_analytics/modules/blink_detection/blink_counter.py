"""
Debounced Blink Counter

A single physical blink usually spans several processed frames. Blink
frames are only counted when enough time has passed since the previously
counted blink, and the rate is reported in blinks per minute over the
elapsed session time.
"""

from typing import Optional


class BlinkCounter:
    """Counts debounced blinks and reports blinks per minute."""

    def __init__(self, debounce_seconds: float = 0.2, min_elapsed_minutes: float = 0.1):
        """
        Initialize blink counter.

        Args:
            debounce_seconds: Minimum gap between two counted blinks
            min_elapsed_minutes: Floor for the rate denominator, avoids
                spikes right after the session starts
        """
        self.debounce_seconds = debounce_seconds
        self.min_elapsed_minutes = min_elapsed_minutes

        self.blink_count = 0
        self.last_blink_time: Optional[float] = None
        self.start_time: Optional[float] = None

    def start(self, timestamp: float) -> None:
        """Reset the counter for a new session starting at ``timestamp``."""
        self.blink_count = 0
        self.last_blink_time = None
        self.start_time = timestamp

    def register(self, blink_detected: bool, timestamp: float) -> bool:
        """
        Register one frame's blink state.

        Args:
            blink_detected: Whether the frame's EAR crossed the blink threshold
            timestamp: Frame time in seconds

        Returns:
            True if this frame was counted as a new blink
        """
        if self.start_time is None:
            self.start_time = timestamp

        if not blink_detected:
            return False

        if self.last_blink_time is not None and timestamp - self.last_blink_time < self.debounce_seconds:
            return False

        self.blink_count += 1
        self.last_blink_time = timestamp
        return True

    def blink_rate(self, now: float) -> float:
        """
        Blinks per minute since the session started.

        Args:
            now: Current time in seconds

        Returns:
            Blink rate in blinks per minute
        """
        if self.start_time is None:
            return 0.0

        elapsed_minutes = max((now - self.start_time) / 60.0, self.min_elapsed_minutes)
        return self.blink_count / elapsed_minutes
