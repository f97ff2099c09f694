"""
Numeric helpers shared by the scoring and analytics code.
"""

import math
from typing import Iterable

import numpy as np


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    """Clamp ``value`` into ``[lower, upper]``."""
    return float(np.clip(value, lower, upper))


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves up (72.5 -> 73), unlike the built-in ``round``."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value))


def safe_mean(values: Iterable[float], default: float = 0.0) -> float:
    """Arithmetic mean, or ``default`` for an empty input."""
    values = list(values)
    if not values:
        return default
    return float(np.mean(values))


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    if not denominator:
        return default
    return numerator / denominator

