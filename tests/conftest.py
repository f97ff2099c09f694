"""
Shared fixtures for the engagement analytics tests.
"""

import sys
from pathlib import Path

import pytest

# Run against the source tree without installing
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from engagement_analytics.exceptions import PersistenceError
from engagement_analytics.integration.persistence import InMemoryPersistence
from engagement_analytics.simulation import build_face_mesh, build_pose
from engagement_analytics.types import DetectedObject, DetectionSnapshot, FaceDetection


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


class FlakyPersistence(InMemoryPersistence):
    """Fails the next ``failures`` save_metric calls."""

    def __init__(self, failures=0):
        super().__init__()
        self.failures = failures
        self.save_attempts = 0

    def save_metric(self, session_id, metric_type, payload):
        self.save_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("backend unavailable")
        return super().save_metric(session_id, metric_type, payload)


def make_detection(timestamp, face=True, looking=True, ear=0.3, neck_angle=5.0, back_angle=5.0,
                   pose=True, phone=False, objects=None):
    """Detection snapshot for a frame with the given signals."""
    mesh = build_face_mesh(ear=ear, horizontal_gaze=0.0 if looking else 0.6) if face else None
    landmarks = build_pose(neck_angle=neck_angle, back_angle=back_angle) if pose else None

    if objects is None:
        objects = [DetectedObject('cell phone', 0.9)] if phone else []

    return DetectionSnapshot(
        timestamp=timestamp,
        face=FaceDetection(face_detected=face, face_count=int(face), confidence=0.9),
        face_landmarks=mesh,
        pose_landmarks=landmarks,
        objects=objects
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def persistence():
    return InMemoryPersistence()
