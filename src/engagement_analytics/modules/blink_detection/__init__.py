"""
Blink and Gaze Analysis Module

Eye aspect ratio, gaze direction and debounced blink counting computed
from face mesh landmarks.
"""

from .blink_counter import BlinkCounter
from .ear_calculator import (
    calculate_eye_aspect_ratio,
    estimate_gaze_direction,
    is_blink,
    is_looking_at_screen
)

__all__ = [
    'BlinkCounter',
    'calculate_eye_aspect_ratio',
    'estimate_gaze_direction',
    'is_blink',
    'is_looking_at_screen'
]
