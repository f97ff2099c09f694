"""
Tests for the session lifecycle, throttled flushing and idempotent end.
"""

import threading
import time

import pytest

from engagement_analytics.exceptions import PersistenceError, SessionStartError, SessionStateError
from engagement_analytics.integration import EngagementSession, InMemoryPersistence, SessionState
from engagement_analytics.integration.detection import DetectionProvider
from engagement_analytics.simulation import SimulatedLearner

from conftest import FlakyPersistence, make_detection


def new_session(clock, persistence=None, **session_config):
    config = {'session': session_config} if session_config else None
    return EngagementSession(config, persistence=persistence or InMemoryPersistence(), clock=clock)


def record(session, clock, steps=1, dt=0.1, **signals):
    snapshot = None
    for _ in range(steps):
        snapshot = session.record_frame(make_detection(clock(), **signals))
        clock.advance(dt)
    return snapshot


def test_start_session(clock, persistence):
    session = new_session(clock, persistence)
    session_id = session.start_session({'title': 'Chemistry', 'total_pages': 12}, background=False)

    assert session.state == SessionState.ACTIVE
    assert session.session_id == session_id
    assert persistence.sessions[session_id]['metadata']['title'] == 'Chemistry'


def test_metadata_session_id_is_used(clock):
    session = new_session(clock)
    assert session.start_session({'session_id': 'fixed-id'}, background=False) == 'fixed-id'


def test_record_before_start_raises(clock):
    session = new_session(clock)
    with pytest.raises(SessionStateError):
        session.record_frame(make_detection(clock()))


def test_start_twice_raises(clock):
    session = new_session(clock)
    session.start_session(background=False)
    with pytest.raises(SessionStateError):
        session.start_session(background=False)


def test_persistence_start_failure_raises_start_error(clock):
    class BrokenPersistence(InMemoryPersistence):
        def start_session(self, session_id, metadata):
            raise PersistenceError("database offline")

    session = new_session(clock, BrokenPersistence())
    with pytest.raises(SessionStartError):
        session.start_session(background=False)
    assert session.state == SessionState.IDLE


def test_frame_source_without_providers_raises_start_error(clock):
    session = EngagementSession(frame_source=lambda: None, clock=clock)
    with pytest.raises(SessionStartError):
        session.start_session(background=False)


def test_attention_rate_over_recorded_frames(clock):
    session = new_session(clock)
    session.start_session(background=False)

    record(session, clock, steps=7)
    record(session, clock, steps=3, looking=False)

    assert session.get_attention_rate() == 70


def test_blink_debounce_through_frames(clock):
    session = new_session(clock)
    session.start_session(background=False)

    session.record_frame(make_detection(clock(), ear=0.1))
    session.record_frame(make_detection(clock.advance(0.15), ear=0.1))
    session.record_frame(make_detection(clock.advance(0.10), ear=0.1))

    assert session.get_status()['blink_count'] == 2
    # 2 blinks over the 0.1 minute floor
    assert session.get_blink_rate() == pytest.approx(20.0)


def test_engagement_score_of_latest_frame(clock):
    session = new_session(clock)
    session.start_session(background=False)
    assert session.get_engagement_score() == 0.0

    record(session, clock, looking=False, pose=False, phone=True)
    assert session.get_engagement_score() == 10


def test_phone_rising_edges_become_distraction_events(clock):
    session = new_session(clock)
    session.start_session(background=False)

    record(session, clock, steps=2)
    record(session, clock, steps=3, phone=True)
    record(session, clock, steps=2)
    record(session, clock, steps=1, phone=True)

    report = session.end_session()
    assert report.distraction.count == 2
    assert report.distraction.types == {'phone': 2}


def test_flush_sends_buffer_and_drains(clock, persistence):
    session = new_session(clock, persistence)
    session_id = session.start_session(background=False)

    record(session, clock, steps=5)
    record(session, clock, steps=1, phone=True)

    assert session.get_status()['pending_snapshots'] == 2
    assert session.flush()

    saved = persistence.records[session_id]
    assert len(saved) == 1
    assert saved[0]['type'] == 'face_metric'
    assert len(saved[0]['payload']['snapshots']) == 2
    assert saved[0]['payload']['latest']['has_phone']
    assert saved[0]['payload']['frame_count'] == 6
    assert session.get_status()['pending_snapshots'] == 0


def test_flush_failure_is_retried_on_next_tick(clock):
    persistence = FlakyPersistence(failures=1)
    session = new_session(clock, persistence)
    session_id = session.start_session(background=False)
    record(session, clock, steps=3)

    assert not session.flush()
    status = session.get_status()
    assert status['consecutive_flush_failures'] == 1
    assert status['pending_snapshots'] == 1

    clock.advance(3.0)
    assert session.flush()
    assert session.get_status()['consecutive_flush_failures'] == 0
    assert len(persistence.records[session_id]) == 1


def test_persistence_marked_unavailable_after_max_failures(clock):
    persistence = FlakyPersistence(failures=100)
    session = new_session(clock, persistence, max_flush_failures=3)
    session.start_session(background=False)
    record(session, clock)

    for _ in range(5):
        session.flush()
        clock.advance(3.0)

    status = session.get_status()
    assert not status['persistence_available']
    assert persistence.save_attempts == 3


def test_buffer_drops_oldest_when_full(clock):
    session = new_session(clock, buffer_size=2)
    session.start_session(background=False)

    for i in range(5):
        record(session, clock, phone=bool(i % 2))

    status = session.get_status()
    assert status['pending_snapshots'] == 2
    assert status['buffer_overflows'] == 3


def test_double_end_returns_identical_report_and_ends_once(clock, persistence):
    session = new_session(clock, persistence)
    session_id = session.start_session(background=False)
    record(session, clock, steps=10)
    session.flush()

    first = session.end_session()
    second = session.end_session()

    assert first is second
    assert first == second
    assert persistence.end_calls[session_id] == 1
    assert session.state == SessionState.ENDED


def test_end_flushes_remaining_snapshots_once(clock, persistence):
    session = new_session(clock, persistence)
    session_id = session.start_session(background=False)
    record(session, clock, steps=4)

    session.end_session()
    session.end_session()

    assert len(persistence.records[session_id]) == 1
    assert session.get_status()['pending_snapshots'] == 0


def test_already_ended_in_persistence_counts_as_success(clock, persistence):
    session = new_session(clock, persistence)
    session_id = session.start_session(background=False)
    record(session, clock, steps=2)
    session.flush()
    persistence.end_session(session_id)

    report = session.end_session()

    assert report.session_id == session_id
    assert session.state == SessionState.ENDED


def test_concurrent_end_calls_serialize(clock, persistence):
    session = new_session(clock, persistence)
    session_id = session.start_session(background=False)
    record(session, clock, steps=5)

    reports = []
    threads = [threading.Thread(target=lambda: reports.append(session.end_session())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5.0)

    assert len(reports) == 8
    assert all(r is reports[0] for r in reports)
    assert persistence.end_calls[session_id] == 1


def test_frames_after_end_are_ignored(clock):
    session = new_session(clock)
    session.start_session(background=False)
    last = record(session, clock, steps=3)
    session.end_session()

    assert session.record_frame(make_detection(clock(), phone=True)) is last
    assert session.get_status()['frame_count'] == 3


def test_events_after_end_raise(clock):
    session = new_session(clock)
    session.start_session(background=False)
    session.end_session()

    with pytest.raises(SessionStateError):
        session.track_event('break')


def test_end_before_start_raises(clock):
    with pytest.raises(SessionStateError):
        new_session(clock).end_session()


def test_inactivity_event_at_most_once_per_timeout(clock):
    session = new_session(clock)
    session.start_session(background=False)

    clock.advance(301.0)
    session.flush()
    clock.advance(10.0)
    session.flush()

    report_events = [e for e in session._acc.history.events if e.type == 'inactivity']
    assert len(report_events) == 1
    assert report_events[0].data['duration'] == pytest.approx(301.0)


def test_interaction_postpones_inactivity(clock):
    session = new_session(clock)
    session.start_session(background=False)

    clock.advance(200.0)
    session.add_highlight({'text': 'mitochondria'})
    clock.advance(200.0)
    session.flush()

    assert not [e for e in session._acc.history.events if e.type == 'inactivity']


def test_content_tracking_flows_into_report(clock):
    session = new_session(clock)
    session.start_session({'total_pages': 4}, background=False)

    session.track_page_view(1)
    clock.advance(90.0)
    session.add_highlight({'text': 'key term'})
    session.track_page_view(2)
    clock.advance(150.0)
    session.add_annotation({'note': 'revisit'})
    session.track_event('yawn')
    report = session.end_session()

    assert report.content.pages_visited == 2
    assert report.content.total_pages == 4
    assert report.content.completion_rate == 50
    assert report.content.avg_time_per_page == 120
    assert report.content.most_studied_pages == ({'page': 2, 'time': 150.0}, {'page': 1, 'time': 90.0})
    assert report.content.highlights_count == 1
    assert report.content.annotations_count == 1


def test_history_sampled_once_per_flush(clock):
    session = new_session(clock)
    session.start_session(background=False)

    for _ in range(3):
        record(session, clock, steps=30)
        session.flush()
    # No frames since the last flush
    session.flush()

    records = session._acc.history.records
    assert len(records) == 3
    assert all(r.posture_score == 100 for r in records)


def test_unknown_posture_sampled_as_none(clock):
    session = new_session(clock)
    session.start_session(background=False)
    record(session, clock, pose=False)
    session.flush()

    assert session._acc.history.records[0].posture_score is None


def test_live_analytics(clock):
    session = new_session(clock)
    session.start_session(background=False)

    record(session, clock, steps=30)
    session.flush()
    record(session, clock, steps=30, looking=False)
    session.flush()

    analytics = session.get_live_analytics()
    assert analytics['attention_rate'] == 50
    assert analytics['distraction_count'] == 0
    assert analytics['duration'] == 6


class BlockingProvider(DetectionProvider):
    def __init__(self):
        self.release = threading.Event()

    def detect(self, frame, timestamp_ms):
        self.release.wait(5.0)
        return {'face_detected': True}


def test_tick_dropped_while_detectors_busy(clock):
    provider = BlockingProvider()
    session = EngagementSession({'session': {'detector_timeout': 0.02}}, providers={'face': provider},
                                frame_source=lambda: 'frame', clock=clock)
    session.start_session(background=False)
    try:
        first = session.tick()
        second = session.tick()

        assert first is not None
        assert not first.face_detected
        assert second is None
        assert session.get_status()['dropped_ticks'] == 1
    finally:
        provider.release.set()
        session.end_session()


def test_background_session_with_simulated_learner():
    learner = SimulatedLearner(seed=3)
    persistence = InMemoryPersistence()
    session = EngagementSession(
        {'session': {'tick_interval': 0.01, 'flush_interval': 0.05, 'detector_timeout': 1.0}},
        persistence=persistence,
        providers=learner.providers(),
        frame_source=learner
    )

    session_id = session.start_session({'total_pages': 5})
    time.sleep(0.4)
    report = session.end_session()

    status = session.get_status()
    assert status['state'] == 'ended'
    assert status['frame_count'] > 0
    assert len(persistence.records[session_id]) >= 1
    assert persistence.end_calls[session_id] == 1
    assert 0 <= report.engagement.overall_score <= 100
    assert session.end_session() is report


def test_total_pages_metadata_is_converted(clock):
    session = new_session(clock)
    session.start_session({'total_pages': '12'}, background=False)
    session.track_page_view(1)
    clock.advance(30.0)

    report = session.end_session()

    assert report.content.total_pages == 12
    assert report.content.completion_rate == 8


def test_non_numeric_total_pages_raises_start_error(clock, persistence):
    session = new_session(clock, persistence)
    with pytest.raises(SessionStartError):
        session.start_session({'total_pages': 'twelve'}, background=False)
    assert session.state == SessionState.IDLE
    assert persistence.sessions == {}


def test_failed_report_still_ends_session(clock, persistence, monkeypatch):
    from engagement_analytics.integration import session_manager

    real_build = session_manager.build_session_report
    calls = []

    def failing_once(history, config):
        calls.append(history.session_id)
        if len(calls) == 1:
            raise RuntimeError("report failed")
        return real_build(history, config)

    monkeypatch.setattr(session_manager, 'build_session_report', failing_once)

    session = new_session(clock, persistence)
    session_id = session.start_session(background=False)
    record(session, clock, steps=3)

    with pytest.raises(RuntimeError):
        session.end_session()
    assert session.state == SessionState.ENDED

    report = session.end_session()
    assert report.session_id == session_id
    assert session.end_session() is report
    assert persistence.end_calls[session_id] == 1
    assert len(calls) == 2


def test_owned_coordinator_shut_down_when_report_fails(clock, monkeypatch):
    from engagement_analytics.integration import session_manager

    def failing(history, config):
        raise RuntimeError("report failed")

    monkeypatch.setattr(session_manager, 'build_session_report', failing)

    learner = SimulatedLearner(seed=1)
    session = EngagementSession(providers=learner.providers(), frame_source=learner, clock=clock)
    session.start_session(background=False)
    shutdowns = []
    monkeypatch.setattr(session.coordinator, 'shutdown', lambda: shutdowns.append(True))

    with pytest.raises(RuntimeError):
        session.end_session()

    assert shutdowns == [True]
    assert session.state == SessionState.ENDED
