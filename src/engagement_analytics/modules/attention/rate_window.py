"""
Sliding Time-Window Rate Tracker

Keeps a trailing window of timestamped boolean samples and reports the
percentage of samples flagged true. Used for the attention rate (share of
frames in the last minute where the learner was present and looking at the
screen).
"""

from collections import deque
from typing import Deque, Optional, Tuple

from ..utils import round_int


class RateWindow:
    """
    Time-bounded, append-only sample buffer supporting percentage queries.

    Entries are stored in arrival order and are never reordered. Entries
    older than ``window_duration`` are purged on every write and read.
    """

    def __init__(self, window_duration: float = 60.0):
        """
        Initialize rate window.

        Args:
            window_duration: Trailing window length in seconds
        """
        if window_duration <= 0:
            raise ValueError(f"window_duration must be positive, got {window_duration}")

        self.window_duration = window_duration
        self._entries: Deque[Tuple[float, bool]] = deque()
        self._true_count = 0

    def record(self, timestamp: float, value: bool) -> None:
        """Append a sample and drop entries that fell out of the window."""
        value = bool(value)
        self._entries.append((timestamp, value))
        if value:
            self._true_count += 1
        self.purge(timestamp)

    def purge(self, now: float) -> int:
        """
        Drop entries older than the window.

        Args:
            now: Current time in seconds

        Returns:
            Number of entries removed
        """
        cutoff = now - self.window_duration
        removed = 0
        while self._entries and self._entries[0][0] < cutoff:
            _, value = self._entries.popleft()
            if value:
                self._true_count -= 1
            removed += 1
        return removed

    def rate(self, now: Optional[float] = None) -> int:
        """
        Percentage of true samples in the window (0-100).

        Args:
            now: Current time; defaults to the newest sample time

        Returns:
            Rounded percentage, or 0 for an empty window
        """
        if now is None:
            if not self._entries:
                return 0
            now = self._entries[-1][0]

        self.purge(now)
        if not self._entries:
            return 0

        return round_int(100.0 * self._true_count / len(self._entries))

    def count(self, now: Optional[float] = None) -> int:
        """Number of samples currently in the window."""
        if now is not None:
            self.purge(now)
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._true_count = 0

    def __len__(self) -> int:
        return len(self._entries)
