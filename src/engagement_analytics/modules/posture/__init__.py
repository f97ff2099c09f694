"""
Posture Module

Neck angle, back angle and shoulder alignment scoring from body pose
landmarks.
"""

from .posture_calculator import (
    PostureScorer,
    calculate_back_angle,
    calculate_neck_angle,
    calculate_posture_score,
    calculate_shoulder_alignment,
    classify_posture_quality
)

__all__ = [
    'PostureScorer',
    'calculate_back_angle',
    'calculate_neck_angle',
    'calculate_posture_score',
    'calculate_shoulder_alignment',
    'classify_posture_quality'
]
