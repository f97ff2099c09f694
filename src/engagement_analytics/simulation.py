"""
Simulated Detection Providers

Synthetic face mesh, body pose and object payloads for running sessions
without a camera. The landmark builders produce geometry that the fusion
engine reads back as the requested EAR, gaze offsets and posture angles.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .integration.detection import DetectionProvider
from .types import Landmark


FACE_MESH_SIZE = 468
POSE_SIZE = 33

EYE_WIDTH = 0.06
EYE_Y = 0.40


def build_face_mesh(ear: float = 0.3, horizontal_gaze: float = 0.0,
                    vertical_gaze: float = 0.0) -> List[Landmark]:
    """
    Build a 468-point face mesh.

    Args:
        ear: Eye aspect ratio of both eyes
        horizontal_gaze: Horizontal gaze offset
        vertical_gaze: Vertical gaze offset

    Returns:
        List of landmarks
    """
    points = [Landmark(0.5, 0.5) for _ in range(FACE_MESH_SIZE)]
    half_opening = ear * (EYE_WIDTH + 0.001) / 2.0

    def place_eye(outer: int, inner: int, top: int, bottom: int, outer_x: float, inner_x: float):
        center_x = (outer_x + inner_x) / 2.0
        points[outer] = Landmark(outer_x, EYE_Y)
        points[inner] = Landmark(inner_x, EYE_Y)
        points[top] = Landmark(center_x, EYE_Y - half_opening)
        points[bottom] = Landmark(center_x, EYE_Y + half_opening)

    place_eye(33, 133, 159, 145, 0.40, 0.40 + EYE_WIDTH)
    place_eye(263, 362, 386, 374, 0.60, 0.60 - EYE_WIDTH)

    # Eye center is (0.5, EYE_Y); gaze is twice the nose offset
    points[1] = Landmark(0.5 + horizontal_gaze / 2.0, EYE_Y + vertical_gaze / 2.0)
    return points


def build_pose(neck_angle: float = 0.0, back_angle: float = 0.0, shoulder_tilt: float = 0.0,
               visibility: float = 1.0) -> List[Landmark]:
    """
    Build a 33-point body pose with the requested posture angles.

    Args:
        neck_angle: Neck angle in degrees
        back_angle: Back angle in degrees
        shoulder_tilt: Height difference between the shoulders
        visibility: Visibility of every landmark

    Returns:
        List of landmarks
    """
    points = [Landmark(0.5, 0.5, visibility=visibility) for _ in range(POSE_SIZE)]

    left_shoulder = Landmark(0.4, 0.5, visibility=visibility)
    right_shoulder = Landmark(0.6, 0.5 + shoulder_tilt, visibility=visibility)
    points[11] = left_shoulder
    points[12] = right_shoulder

    mid_x = (left_shoulder.x + right_shoulder.x) / 2.0
    mid_y = (left_shoulder.y + right_shoulder.y) / 2.0
    neck = math.radians(90.0 - neck_angle)
    points[0] = Landmark(mid_x + 0.2 * math.cos(neck), mid_y + 0.2 * math.sin(neck), visibility=visibility)

    back = math.radians(90.0 - back_angle)
    points[23] = Landmark(left_shoulder.x - 0.3 * math.cos(back), left_shoulder.y - 0.3 * math.sin(back),
                          visibility=visibility)
    return points


@dataclass(frozen=True)
class LearnerState:
    """What the simulated camera sees in one frame."""
    present: bool = True
    looking: bool = True
    eyes_closed: bool = False
    neck_angle: float = 5.0
    back_angle: float = 5.0
    phone: bool = False


def render_face(state: LearnerState) -> Dict[str, Any]:
    return {'face_detected': state.present, 'face_count': int(state.present), 'confidence': 0.95}


def render_face_mesh(state: LearnerState) -> Optional[List[Landmark]]:
    if not state.present:
        return None
    gaze = 0.0 if state.looking else 0.6
    return build_face_mesh(ear=0.1 if state.eyes_closed else 0.3, horizontal_gaze=gaze)


def render_pose(state: LearnerState) -> Optional[List[Landmark]]:
    if not state.present:
        return None
    return build_pose(neck_angle=state.neck_angle, back_angle=state.back_angle)


def render_objects(state: LearnerState) -> List[Dict[str, Any]]:
    if not state.phone:
        return []
    return [{'class': 'cell phone', 'confidence': 0.9, 'bbox': [0.1, 0.6, 0.1, 0.2]}]


RENDERERS: Dict[str, Callable[[LearnerState], Any]] = {
    'face': render_face,
    'face_mesh': render_face_mesh,
    'pose': render_pose,
    'objects': render_objects
}


class SimulatedProvider(DetectionProvider):
    """Renders the payload of one provider kind from a ``LearnerState`` frame."""

    def __init__(self, kind: str):
        self.kind = kind
        self.render = RENDERERS[kind]

    def detect(self, frame: LearnerState, timestamp_ms: float) -> Any:
        return self.render(frame)


class SimulatedLearner:
    """
    Random-walk learner used as a frame source.

    Each call returns the next ``LearnerState``; attention drifts, the
    learner blinks, slouches and occasionally picks up a phone.
    """

    def __init__(self, seed: int = 0, blink_probability: float = 0.05,
                 distraction_probability: float = 0.01, away_probability: float = 0.005):
        self.rng = np.random.default_rng(seed)
        self.blink_probability = blink_probability
        self.distraction_probability = distraction_probability
        self.away_probability = away_probability
        self.state = LearnerState()

    def __call__(self) -> LearnerState:
        return self.next_frame()

    def next_frame(self) -> LearnerState:
        state = self.state

        if state.phone:
            phone = self.rng.random() > 0.1
        else:
            phone = self.rng.random() < self.distraction_probability

        if state.present:
            present = self.rng.random() > self.away_probability
        else:
            present = self.rng.random() < 0.2

        neck = float(np.clip(state.neck_angle + self.rng.normal(0.0, 1.5), 0.0, 45.0))
        back = float(np.clip(state.back_angle + self.rng.normal(0.0, 1.0), 0.0, 30.0))

        self.state = replace(
            state,
            present=present,
            looking=present and not phone and self.rng.random() > 0.1,
            eyes_closed=self.rng.random() < self.blink_probability,
            neck_angle=neck,
            back_angle=back,
            phone=phone
        )
        return self.state

    @staticmethod
    def providers() -> Dict[str, DetectionProvider]:
        return {kind: SimulatedProvider(kind) for kind in RENDERERS}
