"""
Engagement Scoring

Converts the fused per-frame signals into the instantaneous 0-100
engagement score.
"""

from typing import Any, Dict, Optional
import logging

from ..modules.utils import clamp


DEFAULT_WEIGHTS = {
    'face': 40.0,
    'looking': 40.0,
    'posture': 20.0,
    'phone': -30.0
}


class EngagementScorer:
    """
    Additive engagement score from presence, gaze, posture and phone signals.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize engagement scorer.

        Args:
            config: Fusion configuration (``weights``, ``posture_bonus_threshold``)
        """
        config = config or {}
        self.weights = dict(DEFAULT_WEIGHTS)
        self.weights.update(config.get('weights', {}))
        self.posture_bonus_threshold = config.get('posture_bonus_threshold', 70.0)

        self.logger = logging.getLogger(__name__)

    def compute_engagement_score(self, face_detected: bool, looking_at_screen: bool,
                                 posture_score: Optional[float], has_phone: bool) -> float:
        """
        Compute the instantaneous engagement score.

        Args:
            face_detected: A face is present in the frame
            looking_at_screen: Gaze is inside the screen thresholds
            posture_score: Posture score, or None when posture is unknown
            has_phone: A phone was detected

        Returns:
            Engagement score (0-100)
        """
        score = 0.0

        if face_detected:
            score += self.weights['face']
        if looking_at_screen:
            score += self.weights['looking']
        # Unknown posture never earns the bonus
        if posture_score is not None and posture_score > self.posture_bonus_threshold:
            score += self.weights['posture']
        if has_phone:
            score += self.weights['phone']

        return clamp(score)
