"""
Tests for per-frame signal fusion and engagement scoring.
"""

import pytest

from engagement_analytics.integration import EngagementScorer, FrameSignalFuser
from engagement_analytics.types import DetectedObject, DetectionSnapshot, FaceDetection

from conftest import make_detection


@pytest.fixture
def fuser():
    return FrameSignalFuser()


def test_scorer_full_engagement():
    assert EngagementScorer().compute_engagement_score(True, True, 75.0, False) == 100


def test_scorer_distracted_learner():
    assert EngagementScorer().compute_engagement_score(True, False, 0.0, True) == 10


def test_scorer_clamps_at_zero():
    assert EngagementScorer().compute_engagement_score(False, False, None, True) == 0


def test_scorer_posture_bonus_needs_known_score_above_threshold():
    scorer = EngagementScorer()
    assert scorer.compute_engagement_score(True, True, 70.0, False) == 80
    assert scorer.compute_engagement_score(True, True, None, False) == 80


def test_scorer_reads_configured_weights():
    scorer = EngagementScorer({'weights': {'phone': -50.0}, 'posture_bonus_threshold': 50.0})
    assert scorer.compute_engagement_score(True, True, 60.0, True) == 50


def test_fused_attentive_frame(fuser):
    snapshot = fuser.fuse(make_detection(1.0))

    assert snapshot.timestamp == 1.0
    assert snapshot.face_detected
    assert snapshot.face_count == 1
    assert snapshot.looking_at_screen
    assert snapshot.eye_aspect_ratio == pytest.approx(0.3)
    assert not snapshot.blink_detected
    assert snapshot.posture_score == 100
    assert snapshot.posture_quality == 'good'
    assert snapshot.engagement_score == 100
    assert snapshot.attentive


def test_fused_distracted_frame(fuser):
    snapshot = fuser.fuse(make_detection(1.0, looking=False, neck_angle=40.0, back_angle=30.0,
                                         phone=True))

    assert not snapshot.looking_at_screen
    assert snapshot.has_phone
    assert snapshot.has_distracting_object
    assert snapshot.objects == ('cell phone',)
    assert snapshot.engagement_score == 10


def test_blink_frame(fuser):
    snapshot = fuser.fuse(make_detection(1.0, ear=0.1))
    assert snapshot.blink_detected


def test_missing_signals_degrade(fuser):
    snapshot = fuser.fuse(DetectionSnapshot(timestamp=2.0))

    assert not snapshot.face_detected
    assert not snapshot.looking_at_screen
    assert snapshot.eye_aspect_ratio == 0.0
    assert not snapshot.blink_detected
    assert snapshot.posture_score == 0.0
    assert snapshot.posture_quality == 'unknown'
    assert not snapshot.has_phone
    assert snapshot.engagement_score == 0


def test_missing_pose_gets_no_posture_bonus(fuser):
    snapshot = fuser.fuse(make_detection(1.0, pose=False))

    assert snapshot.posture_quality == 'unknown'
    assert snapshot.engagement_score == 80


def test_low_confidence_objects_ignored(fuser):
    objects = [DetectedObject('cell phone', 0.5), DetectedObject('cup', 0.7), DetectedObject('book', 0.9)]
    snapshot = fuser.fuse(make_detection(1.0, objects=objects))

    assert not snapshot.has_phone
    assert snapshot.has_distracting_object
    assert snapshot.objects == ('cup', 'book')


def test_unchanged_frame_returns_previous_snapshot(fuser):
    first = fuser.fuse(make_detection(1.0))
    second = fuser.fuse(make_detection(1.1, ear=0.28), first)

    assert second is first


def test_material_change_returns_new_snapshot(fuser):
    first = fuser.fuse(make_detection(1.0))
    second = fuser.fuse(make_detection(1.1, phone=True), first)

    assert second is not first
    assert second.has_phone
    assert second.timestamp == 1.1


def test_fusion_is_deterministic(fuser):
    detection = make_detection(3.0, looking=False, neck_angle=22.0)
    assert fuser.build_snapshot(detection) == fuser.build_snapshot(detection)


def test_scores_stay_bounded(fuser):
    for face in (True, False):
        for looking in (True, False):
            for phone in (True, False):
                detection = DetectionSnapshot(
                    timestamp=0.0,
                    face=FaceDetection(face_detected=face, face_count=int(face)),
                    objects=[DetectedObject('cell phone', 0.9)] if phone else []
                )
                snapshot = fuser.fuse(detection)
                assert 0 <= snapshot.engagement_score <= 100
                assert 0 <= snapshot.posture_score <= 100
