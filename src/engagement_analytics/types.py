"""
Core data types shared by the sensing and analytics layers.

Detection types mirror what the external face / mesh / pose / object
providers hand back for one frame. ``MetricSnapshot`` is the fused,
immutable per-frame result produced by the fusion engine.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple


POSTURE_UNKNOWN = 'unknown'


@dataclass(frozen=True)
class Landmark:
    """Normalized landmark point with optional visibility."""
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @classmethod
    def from_payload(cls, payload: Any) -> 'Landmark':
        if isinstance(payload, Landmark):
            return payload
        if isinstance(payload, dict):
            visibility = payload.get('visibility')
            return cls(
                x=float(payload['x']),
                y=float(payload['y']),
                z=float(payload.get('z', 0.0)),
                visibility=1.0 if visibility is None else float(visibility)
            )
        # (x, y[, z[, visibility]]) sequences
        values = list(payload)
        return cls(*[float(v) for v in values[:4]])


@dataclass(frozen=True)
class FaceDetection:
    """Face detector output for one frame."""
    face_detected: bool
    face_count: int = 0
    confidence: float = 0.0

    @classmethod
    def from_payload(cls, payload: Any) -> 'FaceDetection':
        if isinstance(payload, FaceDetection):
            return payload
        if isinstance(payload, dict):
            count = int(payload.get('face_count', 1 if payload.get('face_detected') else 0))
            return cls(
                face_detected=bool(payload.get('face_detected', count > 0)),
                face_count=count,
                confidence=float(payload.get('confidence', 0.0))
            )
        return cls(face_detected=bool(payload), face_count=1 if payload else 0)


@dataclass(frozen=True)
class DetectedObject:
    """Object detector result."""
    label: str
    confidence: float
    bbox: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_payload(cls, payload: Any) -> 'DetectedObject':
        if isinstance(payload, DetectedObject):
            return payload
        label = payload.get('class', payload.get('label', ''))
        bbox = tuple(float(v) for v in payload.get('bbox', (0, 0, 0, 0)))
        return cls(label=str(label), confidence=float(payload.get('confidence', payload.get('score', 0.0))),
                   bbox=bbox)


@dataclass(frozen=True)
class DetectionSnapshot:
    """
    Everything the providers returned for one processed frame.

    A ``None`` field means the corresponding provider failed, timed out or
    found nothing; the fusion engine degrades that signal to its default.
    """
    timestamp: float
    face: Optional[FaceDetection] = None
    face_landmarks: Optional[Sequence[Landmark]] = None
    pose_landmarks: Optional[Sequence[Landmark]] = None
    objects: Optional[Sequence[DetectedObject]] = None


@dataclass(frozen=True)
class PostureResult:
    """Output of the posture scorer."""
    status: str
    confidence: float
    score: Optional[float] = None
    quality: str = POSTURE_UNKNOWN
    neck_angle: Optional[float] = None
    back_angle: Optional[float] = None
    shoulder_alignment: Optional[float] = None

    @property
    def is_known(self) -> bool:
        return self.score is not None


@dataclass(frozen=True)
class MetricSnapshot:
    """Fused per-frame metrics. Never mutated after creation."""
    timestamp: float
    face_detected: bool = False
    face_count: int = 0
    looking_at_screen: bool = False
    eye_aspect_ratio: float = 0.0
    blink_detected: bool = False
    posture_score: float = 0.0
    posture_quality: str = POSTURE_UNKNOWN
    neck_angle: float = 0.0
    back_angle: float = 0.0
    shoulder_alignment: float = 0.0
    has_phone: bool = False
    has_distracting_object: bool = False
    objects: Tuple[str, ...] = field(default_factory=tuple)
    engagement_score: float = 0.0

    @property
    def attentive(self) -> bool:
        return self.face_detected and self.looking_at_screen

    @property
    def posture_known(self) -> bool:
        return self.posture_quality != POSTURE_UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['objects'] = list(self.objects)
        return data


def coerce_landmarks(payload: Any) -> Optional[List[Landmark]]:
    """Convert a provider landmark payload to a list of ``Landmark``."""
    if payload is None:
        return None
    if isinstance(payload, dict):
        payload = payload.get('landmarks')
        if payload is None:
            return None
    landmarks = [Landmark.from_payload(p) for p in payload]
    return landmarks or None


def coerce_objects(payload: Any) -> Optional[List[DetectedObject]]:
    """Convert an object detector payload to a list of ``DetectedObject``."""
    if payload is None:
        return None
    if isinstance(payload, dict):
        payload = payload.get('objects', [])
    return [DetectedObject.from_payload(p) for p in payload]
