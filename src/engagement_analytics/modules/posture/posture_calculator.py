"""
Posture Calculation Utilities

Geometric posture assessment from the 33-point body pose returned by the
pose provider. Angles are measured in degrees from the normalized image
coordinates of the nose, both shoulders and the left hip.
"""

import math
import logging
from typing import Optional, Sequence

import numpy as np

from ...types import Landmark, PostureResult, POSTURE_UNKNOWN
from ..utils import clamp


# Pose landmark indices
NOSE = 0
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_HIP = 23

REQUIRED_LANDMARKS = (NOSE, LEFT_SHOULDER, RIGHT_SHOULDER, LEFT_HIP)

STATUS_KNOWN = 'known'


def calculate_neck_angle(landmarks: Sequence[Landmark]) -> float:
    """
    Calculate neck angle between the nose and the shoulder midpoint.

    Args:
        landmarks: Body pose landmarks

    Returns:
        Deviation from vertical in degrees
    """
    nose = landmarks[NOSE]
    left_shoulder = landmarks[LEFT_SHOULDER]
    right_shoulder = landmarks[RIGHT_SHOULDER]

    mid_x = (left_shoulder.x + right_shoulder.x) / 2.0
    mid_y = (left_shoulder.y + right_shoulder.y) / 2.0

    return abs(math.degrees(math.atan2(nose.y - mid_y, nose.x - mid_x)) - 90.0)


def calculate_back_angle(landmarks: Sequence[Landmark]) -> float:
    """Angle of the left shoulder to left hip segment, measured from vertical."""
    shoulder = landmarks[LEFT_SHOULDER]
    hip = landmarks[LEFT_HIP]

    return abs(math.degrees(math.atan2(shoulder.y - hip.y, shoulder.x - hip.x)) - 90.0)


def calculate_shoulder_alignment(landmarks: Sequence[Landmark]) -> float:
    """Shoulder levelness normalized to 0-1 (1 = perfectly level)."""
    height_diff = abs(landmarks[LEFT_SHOULDER].y - landmarks[RIGHT_SHOULDER].y)
    return max(0.0, 1.0 - height_diff * 5.0)


def calculate_posture_score(neck_angle: float, back_angle: float, shoulder_alignment: float) -> float:
    """
    Calculate overall posture score.

    Args:
        neck_angle: Neck angle in degrees
        back_angle: Back angle in degrees
        shoulder_alignment: Alignment in 0-1

    Returns:
        Posture score (0-100)
    """
    score = 100.0

    # Penalize poor neck angle
    if neck_angle > 30:
        score -= 30
    elif neck_angle > 15:
        score -= 15

    # Penalize poor back angle
    if back_angle > 20:
        score -= 25
    elif back_angle > 10:
        score -= 10

    if shoulder_alignment < 0.8:
        score -= 15

    return clamp(score)


def classify_posture_quality(score: Optional[float]) -> str:
    """Map a posture score to ``good`` / ``acceptable`` / ``poor``."""
    if score is None:
        return POSTURE_UNKNOWN
    if score > 80:
        return 'good'
    if score > 60:
        return 'acceptable'
    return 'poor'


class PostureScorer:
    """
    Converts body pose landmarks into a ``PostureResult``.

    A frame whose required landmarks are missing or poorly visible yields an
    explicit unknown result rather than a low score.
    """

    def __init__(self, min_visibility: float = 0.5):
        """
        Initialize posture scorer.

        Args:
            min_visibility: Minimum visibility for each required landmark
        """
        self.min_visibility = min_visibility
        self.logger = logging.getLogger(__name__)

    def unknown(self) -> PostureResult:
        return PostureResult(status=POSTURE_UNKNOWN, confidence=0.0)

    def score(self, landmarks: Optional[Sequence[Landmark]]) -> PostureResult:
        """
        Score posture for one frame.

        Args:
            landmarks: 33 body pose landmarks, or None when no body was found

        Returns:
            PostureResult with angles, score and quality label
        """
        if not landmarks or len(landmarks) <= max(REQUIRED_LANDMARKS):
            return self.unknown()

        visibilities = [landmarks[i].visibility for i in REQUIRED_LANDMARKS]
        if min(visibilities) < self.min_visibility:
            self.logger.debug(f"Posture landmarks below visibility threshold: {visibilities}")
            return self.unknown()

        neck_angle = calculate_neck_angle(landmarks)
        back_angle = calculate_back_angle(landmarks)
        shoulder_alignment = calculate_shoulder_alignment(landmarks)
        posture_score = calculate_posture_score(neck_angle, back_angle, shoulder_alignment)

        return PostureResult(
            status=STATUS_KNOWN,
            confidence=float(np.mean(visibilities)),
            score=posture_score,
            quality=classify_posture_quality(posture_score),
            neck_angle=neck_angle,
            back_angle=back_angle,
            shoulder_alignment=shoulder_alignment
        )
