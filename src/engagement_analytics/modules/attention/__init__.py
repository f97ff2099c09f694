"""
Attention Tracking Module

Sliding-window accumulators used for live attention statistics.
"""

from .rate_window import RateWindow

__all__ = ['RateWindow']
