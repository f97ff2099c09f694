"""
Shared utilities for the analysis modules.
"""

from .math_utils import clamp, round_half_up, round_int, safe_mean, safe_ratio

__all__ = ['clamp', 'round_half_up', 'round_int', 'safe_mean', 'safe_ratio']
