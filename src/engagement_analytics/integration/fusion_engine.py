"""
Frame Signal Fusion Engine

Merges one frame's face, face mesh, pose and object detections into a
single ``MetricSnapshot``. Fusion is deterministic and has no side effects;
every missing signal degrades to its default instead of failing the frame.
"""

from typing import Any, Dict, Optional, Sequence, Tuple
import logging

from ..types import (
    DetectedObject, DetectionSnapshot, Landmark, MetricSnapshot, PostureResult
)
from ..modules.blink_detection import (
    calculate_eye_aspect_ratio, estimate_gaze_direction, is_blink, is_looking_at_screen
)
from ..modules.posture import PostureScorer
from .scoring import EngagementScorer


PHONE_LABEL = 'cell phone'
DISTRACTING_LABELS = frozenset({'cell phone', 'cup', 'bottle'})

# Fields compared when deciding whether a frame changed anything
CHANGE_FIELDS = ('face_detected', 'looking_at_screen', 'engagement_score', 'posture_score', 'has_phone')


class FrameSignalFuser:
    """
    Engine for fusing per-frame detector outputs into metric snapshots.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 posture_config: Optional[Dict[str, Any]] = None):
        """
        Initialize fusion engine.

        Args:
            config: Fusion configuration
            posture_config: Posture scorer configuration
        """
        config = config or {}
        posture_config = posture_config or {}

        self.config = config
        self.gaze_threshold = config.get('gaze_threshold', 0.3)
        self.ear_blink_threshold = config.get('ear_blink_threshold', 0.2)
        self.object_confidence = config.get('object_confidence', 0.5)

        self.scorer = EngagementScorer(config)
        self.posture_scorer = PostureScorer(min_visibility=posture_config.get('min_visibility', 0.5))

        self.logger = logging.getLogger(__name__)

    def fuse(self, detection: DetectionSnapshot,
             previous: Optional[MetricSnapshot] = None) -> MetricSnapshot:
        """
        Fuse one frame's detections.

        Args:
            detection: Provider results for the frame
            previous: Snapshot returned for the previous frame

        Returns:
            A new snapshot, or ``previous`` itself when nothing material changed
        """
        return self.deduplicate(self.build_snapshot(detection), previous)

    def build_snapshot(self, detection: DetectionSnapshot) -> MetricSnapshot:
        """Fuse one frame without change detection."""
        face_detected, face_count = self._face_signal(detection)
        looking, ear, blink = self._eye_signal(detection.face_landmarks)
        posture = self._posture_signal(detection.pose_landmarks)
        has_phone, has_distracting, labels = self._object_signal(detection.objects)

        engagement = self.scorer.compute_engagement_score(
            face_detected, looking, posture.score, has_phone
        )

        return MetricSnapshot(
            timestamp=detection.timestamp,
            face_detected=face_detected,
            face_count=face_count,
            looking_at_screen=looking,
            eye_aspect_ratio=ear,
            blink_detected=blink,
            posture_score=posture.score if posture.is_known else 0.0,
            posture_quality=posture.quality,
            neck_angle=posture.neck_angle or 0.0,
            back_angle=posture.back_angle or 0.0,
            shoulder_alignment=posture.shoulder_alignment or 0.0,
            has_phone=has_phone,
            has_distracting_object=has_distracting,
            objects=labels,
            engagement_score=engagement
        )

    @staticmethod
    def is_material_change(current: MetricSnapshot, previous: Optional[MetricSnapshot]) -> bool:
        if previous is None:
            return True
        return any(getattr(current, name) != getattr(previous, name) for name in CHANGE_FIELDS)

    def deduplicate(self, current: MetricSnapshot,
                    previous: Optional[MetricSnapshot]) -> MetricSnapshot:
        if self.is_material_change(current, previous):
            return current
        return previous

    def _face_signal(self, detection: DetectionSnapshot) -> Tuple[bool, int]:
        if detection.face is None:
            return False, 0
        return bool(detection.face.face_detected), int(detection.face.face_count)

    def _eye_signal(self, landmarks: Optional[Sequence[Landmark]]) -> Tuple[bool, float, bool]:
        """Returns (looking_at_screen, eye_aspect_ratio, blink_detected)."""
        if not landmarks:
            return False, 0.0, False

        ear = calculate_eye_aspect_ratio(landmarks)
        gaze = estimate_gaze_direction(landmarks)

        return (
            is_looking_at_screen(gaze, self.gaze_threshold),
            ear,
            is_blink(ear, self.ear_blink_threshold)
        )

    def _posture_signal(self, landmarks: Optional[Sequence[Landmark]]) -> PostureResult:
        if not landmarks:
            return self.posture_scorer.unknown()
        return self.posture_scorer.score(landmarks)

    def _object_signal(self, objects: Optional[Sequence[DetectedObject]]) -> Tuple[bool, bool, Tuple[str, ...]]:
        """Returns (has_phone, has_distracting_object, confident labels)."""
        if not objects:
            return False, False, ()

        labels = tuple(obj.label for obj in objects if obj.confidence > self.object_confidence)

        has_phone = PHONE_LABEL in labels
        has_distracting = any(label in DISTRACTING_LABELS for label in labels)

        return has_phone, has_distracting, labels
