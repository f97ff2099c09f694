"""
Tests for the parallel detection provider join.
"""

import threading

import pytest

from engagement_analytics.integration.detection import (
    DetectionCoordinator, DetectionProvider, snapshot_from_payloads
)
from engagement_analytics.simulation import LearnerState, SimulatedLearner, build_face_mesh


class FailingProvider(DetectionProvider):
    def detect(self, frame, timestamp_ms):
        raise RuntimeError("model crashed")


class BlockingProvider(DetectionProvider):
    """Blocks until released."""

    def __init__(self):
        self.release = threading.Event()

    def detect(self, frame, timestamp_ms):
        self.release.wait(5.0)
        return {'face_detected': True}


class StaticProvider(DetectionProvider):
    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    def detect(self, frame, timestamp_ms):
        self.calls.append(timestamp_ms)
        return self.payload


def test_collects_all_simulated_providers():
    coordinator = DetectionCoordinator(SimulatedLearner.providers(), timeout=2.0)
    try:
        detection = coordinator.collect(LearnerState(phone=True), 10.0)
    finally:
        coordinator.shutdown()

    assert detection.timestamp == 10.0
    assert detection.face.face_detected
    assert len(detection.face_landmarks) == 468
    assert len(detection.pose_landmarks) == 33
    assert detection.objects[0].label == 'cell phone'


def test_providers_receive_milliseconds():
    provider = StaticProvider({'face_detected': True})
    coordinator = DetectionCoordinator({'face': provider}, timeout=2.0)
    try:
        coordinator.collect(object(), 1.5)
    finally:
        coordinator.shutdown()

    assert provider.calls == [1500.0]


def test_failing_provider_is_absent_for_that_frame():
    providers = {'face': StaticProvider({'face_detected': True}), 'pose': FailingProvider()}
    coordinator = DetectionCoordinator(providers, timeout=2.0)
    try:
        detection = coordinator.collect(object(), 1.0)
    finally:
        coordinator.shutdown()

    assert detection.face.face_detected
    assert detection.pose_landmarks is None


def test_malformed_payload_is_absent():
    coordinator = DetectionCoordinator({'objects': StaticProvider([{'confidence': 'high'}])}, timeout=2.0)
    try:
        detection = coordinator.collect(object(), 1.0)
    finally:
        coordinator.shutdown()

    assert detection.objects is None


def test_late_provider_is_dropped_and_marks_busy():
    blocking = BlockingProvider()
    coordinator = DetectionCoordinator({'face': blocking}, timeout=0.05)
    try:
        detection = coordinator.collect(object(), 1.0)

        assert detection.face is None
        assert coordinator.is_busy()

        blocking.release.set()
        coordinator.executor.shutdown(wait=True)
        assert not coordinator.is_busy()
    finally:
        blocking.release.set()
        coordinator.shutdown()


def test_unknown_provider_kind_rejected():
    with pytest.raises(ValueError):
        DetectionCoordinator({'audio': StaticProvider(None)})


def test_snapshot_from_payloads():
    detection = snapshot_from_payloads({
        'face': {'face_detected': True, 'face_count': 2},
        'face_mesh': [{'x': p.x, 'y': p.y} for p in build_face_mesh()],
        'objects': [{'class': 'cup', 'score': 0.8, 'bbox': [0, 0, 1, 1]}],
        'unused': 123
    }, 4.0)

    assert detection.face.face_count == 2
    assert len(detection.face_landmarks) == 468
    assert detection.pose_landmarks is None
    assert detection.objects[0].label == 'cup'
    assert detection.objects[0].confidence == 0.8
