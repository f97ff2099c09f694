"""
Study Session Manager

Owns the lifecycle of one study session: fuses incoming frames into metric
snapshots, keeps the live attention and blink statistics, buffers snapshots
and flushes them to the persistence service on a slower cadence, and builds
the session report exactly once when the session ends.

Two background workers drive a running session:

- the sense tick (default every 100 ms) pulls a frame from the frame source,
  runs the detection providers and records the fused snapshot;
- the persist tick (default every 3 s) samples the live metrics into the
  session history and flushes the snapshot buffer.
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional, Tuple, Union
import logging
import threading
import time
import uuid

from ..analytics import build_session_report, calculate_current_analytics
from ..analytics.history import MetricRecord, PageView, SessionEvent, SessionHistory
from ..analytics.report import SessionReport
from ..config import get_default_config, merge_config
from ..exceptions import SessionAlreadyEndedError, SessionStartError, SessionStateError
from ..modules.attention import RateWindow
from ..modules.blink_detection import BlinkCounter
from ..modules.utils import round_half_up
from ..types import DetectionSnapshot, MetricSnapshot
from .detection import DetectionCoordinator, DetectionProvider, snapshot_from_payloads
from .fusion_engine import FrameSignalFuser
from .persistence import InMemoryPersistence, PersistenceService


logger = logging.getLogger(__name__)

METRIC_TYPE = 'face_metric'


class SessionState(Enum):
    IDLE = 'idle'
    ACTIVE = 'active'
    ENDING = 'ending'
    ENDED = 'ended'


class PeriodicWorker:
    """Calls ``target`` every ``interval`` seconds on a daemon thread until stopped."""

    def __init__(self, name: str, interval: float, target: Callable[[], Any]):
        self.name = name
        self.interval = interval
        self.target = target

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: float = 5.0) -> None:
        # A worker may end the session from its own thread
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.target()
            except Exception as e:
                logger.error(f"{self.name} tick failed: {e}")


@dataclass
class SessionAccumulator:
    """Mutable per-session state, guarded by the session lock."""
    session_id: str
    metadata: Dict[str, Any]
    start_time: float
    history: SessionHistory
    buffer: Deque[Tuple[int, MetricSnapshot]]
    frame_count: int = 0
    dropped_ticks: int = 0
    buffer_overflows: int = 0
    next_seq: int = 0
    frames_since_sample: int = 0
    flush_count: int = 0
    last_flush_time: Optional[float] = None
    consecutive_failures: int = 0
    persistence_available: bool = True
    last_snapshot: Optional[MetricSnapshot] = None
    phone_active: bool = False
    last_interaction_time: float = 0.0
    last_inactivity_event: Optional[float] = None
    current_page: Optional[Tuple[int, float]] = None
    ended: bool = False
    report: Optional[SessionReport] = None


class EngagementSession:
    """
    One study session from start to report.

    Frames can be pushed with ``record_frame`` or pulled by the sense tick
    from ``frame_source`` through the detection providers.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 persistence: Optional[PersistenceService] = None,
                 providers: Optional[Dict[str, DetectionProvider]] = None,
                 coordinator: Optional[DetectionCoordinator] = None,
                 frame_source: Optional[Callable[[], Any]] = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize session.

        Args:
            config: Engine configuration, merged over the defaults
            persistence: Persistence service (in-memory when omitted)
            providers: Detection providers by kind; builds a coordinator owned by the session
            coordinator: Pre-built detection coordinator, owned by the caller
            frame_source: Callable returning the next frame, or None when no frame is ready
            clock: Time source in seconds
        """
        self.config = merge_config(get_default_config(), config)
        session_config = self.config['session']

        self.persistence = persistence if persistence is not None else InMemoryPersistence()
        self.frame_source = frame_source
        self.clock = clock

        self.tick_interval = session_config['tick_interval']
        self.flush_interval = session_config['flush_interval']
        self.buffer_size = session_config['buffer_size']
        self.max_flush_failures = session_config['max_flush_failures']
        self.inactivity_timeout = session_config['inactivity_timeout']

        self._owns_coordinator = coordinator is None and bool(providers)
        if self._owns_coordinator:
            timeout = session_config['detector_timeout'] or self.tick_interval
            coordinator = DetectionCoordinator(providers, timeout=timeout,
                                               max_workers=session_config['max_workers'])
        self.coordinator = coordinator

        self.fuser = FrameSignalFuser(self.config['fusion'], self.config['posture'])
        self.attention_window = RateWindow(session_config['attention_window'])
        self.blink_counter = BlinkCounter(
            debounce_seconds=self.config['blink']['debounce_seconds'],
            min_elapsed_minutes=self.config['blink']['min_elapsed_minutes']
        )

        self._state = SessionState.IDLE
        self._acc: Optional[SessionAccumulator] = None

        # _lifecycle_lock -> _flush_lock -> _lock
        self._lifecycle_lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._lock = threading.Lock()

        self._workers = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._acc.session_id if self._acc else None

    def start_session(self, metadata: Optional[Dict[str, Any]] = None, background: bool = True) -> str:
        """
        Start the session.

        Args:
            metadata: Free-form session metadata; ``session_id`` and
                ``total_pages`` are picked up when present
            background: Start the sense and persist workers

        Returns:
            Session ID
        """
        metadata = dict(metadata or {})

        with self._lifecycle_lock:
            if self._state != SessionState.IDLE:
                raise SessionStateError(f"Session already started (state: {self._state.value})")

            if self.frame_source is not None and (self.coordinator is None or not self.coordinator.providers):
                raise SessionStartError("A frame source is configured but no detection providers are")
            if self.coordinator is not None and self.frame_source is None:
                raise SessionStartError("Detection providers are configured without a frame source")

            total_pages = metadata.get('total_pages')
            if total_pages is not None:
                try:
                    total_pages = int(total_pages)
                except (TypeError, ValueError) as e:
                    raise SessionStartError(f"total_pages must be an integer, got {total_pages!r}") from e

            session_id = str(metadata.get('session_id') or uuid.uuid4().hex)
            try:
                self.persistence.start_session(session_id, metadata)
            except Exception as e:
                raise SessionStartError(f"Could not start session {session_id}: {e}") from e

            now = self.clock()
            history = SessionHistory(
                session_id=session_id,
                start_time=now,
                total_pages=total_pages,
                sample_interval=self.flush_interval,
                metadata=metadata
            )

            with self._lock:
                self._acc = SessionAccumulator(
                    session_id=session_id,
                    metadata=metadata,
                    start_time=now,
                    history=history,
                    buffer=deque(maxlen=self.buffer_size),
                    last_interaction_time=now
                )
                self.attention_window.clear()
                self.blink_counter.start(now)
                self._state = SessionState.ACTIVE

            if background:
                self._start_workers()

        logger.info(f"Session {session_id} started")
        return session_id

    def _start_workers(self) -> None:
        if self.coordinator is not None and self.frame_source is not None:
            self._workers.append(PeriodicWorker('sense-tick', self.tick_interval, self.tick))
        self._workers.append(PeriodicWorker('persist-tick', self.flush_interval, self.flush))

        for worker in self._workers:
            worker.start()

    def _stop_workers(self) -> None:
        for worker in self._workers:
            worker.stop()
        for worker in self._workers:
            worker.join()
        self._workers = []

    def record_frame(self, detections: Union[DetectionSnapshot, Dict[str, Any]]) -> Optional[MetricSnapshot]:
        """
        Fuse and record one frame.

        Args:
            detections: Detection snapshot, or a mapping of provider kind to
                payload with an optional ``timestamp``

        Returns:
            The current metric snapshot
        """
        if not isinstance(detections, DetectionSnapshot):
            payloads = dict(detections)
            timestamp = payloads.pop('timestamp', None)
            detections = snapshot_from_payloads(payloads, self.clock() if timestamp is None else timestamp)

        with self._lock:
            if self._state == SessionState.IDLE:
                raise SessionStateError("Cannot record frames before the session starts")
            acc = self._acc
            if self._state != SessionState.ACTIVE:
                return acc.last_snapshot

            fresh = self.fuser.build_snapshot(detections)
            snapshot = self.fuser.deduplicate(fresh, acc.last_snapshot)
            timestamp = fresh.timestamp

            acc.frame_count += 1
            acc.frames_since_sample += 1
            self.attention_window.record(timestamp, fresh.attentive)
            self.blink_counter.register(fresh.blink_detected, timestamp)

            if fresh.has_phone and not acc.phone_active:
                acc.history.events.append(SessionEvent(timestamp, 'distraction', {'kind': 'phone'}))
                logger.debug(f"Phone distraction at {timestamp:.3f}")
            acc.phone_active = fresh.has_phone

            if snapshot is not acc.last_snapshot:
                if len(acc.buffer) == acc.buffer.maxlen:
                    acc.buffer_overflows += 1
                acc.buffer.append((acc.next_seq, snapshot))
                acc.next_seq += 1

            acc.last_snapshot = snapshot
            return snapshot

    def tick(self) -> Optional[MetricSnapshot]:
        """
        Sense tick: run the providers on the next frame and record it.

        Returns:
            The recorded snapshot, or None when the tick was dropped or no
            frame was available
        """
        if not self._tick_lock.acquire(blocking=False):
            self._drop_tick("previous tick still running")
            return None

        try:
            if self._state != SessionState.ACTIVE or self.coordinator is None:
                return None
            if self.coordinator.is_busy():
                self._drop_tick("detectors still busy")
                return None

            frame = self.frame_source()
            if frame is None:
                return None

            detections = self.coordinator.collect(frame, self.clock())
            return self.record_frame(detections)
        except Exception as e:
            logger.error(f"Error processing frame: {e}")
            return None
        finally:
            self._tick_lock.release()

    def _drop_tick(self, reason: str) -> None:
        with self._lock:
            if self._acc is not None:
                self._acc.dropped_ticks += 1
        logger.debug(f"Sense tick dropped: {reason}")

    def flush(self, force: bool = False) -> bool:
        """
        Persist tick: sample live metrics into the history and flush the
        snapshot buffer.

        Args:
            force: Attempt the write even after persistence was marked unavailable

        Returns:
            True if the buffer is empty after the call
        """
        with self._flush_lock:
            with self._lock:
                acc = self._acc
                if acc is None or acc.ended:
                    return False

                now = self.clock()
                self._sample_record(acc, now)
                self._check_inactivity(acc, now)

                if not acc.persistence_available and not force:
                    return False
                if not acc.buffer:
                    acc.last_flush_time = now
                    return True

                entries = list(acc.buffer)
                last_seq = entries[-1][0]
                payload = {
                    'snapshots': [snapshot.to_dict() for _, snapshot in entries],
                    'latest': entries[-1][1].to_dict(),
                    'attention_rate': self.attention_window.rate(now),
                    'blink_rate': round_half_up(self.blink_counter.blink_rate(now), 1),
                    'frame_count': acc.frame_count
                }

            try:
                self.persistence.save_metric(acc.session_id, METRIC_TYPE, payload)
            except Exception as e:
                with self._lock:
                    acc.consecutive_failures += 1
                    failures = acc.consecutive_failures
                    if failures >= self.max_flush_failures:
                        acc.persistence_available = False
                logger.warning(f"Flush failed for session {acc.session_id} "
                               f"({failures}/{self.max_flush_failures}): {e}")
                if failures >= self.max_flush_failures:
                    logger.error(f"Persistence unavailable for session {acc.session_id}, "
                                 f"periodic writes stopped")
                return False

            with self._lock:
                while acc.buffer and acc.buffer[0][0] <= last_seq:
                    acc.buffer.popleft()
                acc.consecutive_failures = 0
                acc.last_flush_time = now
                acc.flush_count += 1
                logger.debug(f"Flushed {len(entries)} snapshots for session {acc.session_id}")
                return not acc.buffer

    def _sample_record(self, acc: SessionAccumulator, now: float) -> None:
        if acc.frames_since_sample == 0 or acc.last_snapshot is None:
            return

        snapshot = acc.last_snapshot
        acc.history.records.append(MetricRecord(
            timestamp=now,
            face_detected=snapshot.face_detected,
            looking_at_screen=snapshot.looking_at_screen,
            engagement_score=snapshot.engagement_score,
            posture_score=snapshot.posture_score if snapshot.posture_known else None,
            attention_rate=self.attention_window.rate(now),
            blink_rate=round_half_up(self.blink_counter.blink_rate(now), 1),
            has_phone=snapshot.has_phone
        ))
        acc.frames_since_sample = 0

    def _check_inactivity(self, acc: SessionAccumulator, now: float) -> None:
        idle_for = now - acc.last_interaction_time
        if idle_for < self.inactivity_timeout:
            return
        if acc.last_inactivity_event is not None and now - acc.last_inactivity_event < self.inactivity_timeout:
            return

        acc.history.events.append(SessionEvent(now, 'inactivity', {'duration': idle_for}))
        acc.last_inactivity_event = now
        logger.info(f"Session {acc.session_id} inactive for {idle_for:.0f}s")

    def _active_accumulator(self) -> SessionAccumulator:
        if self._state != SessionState.ACTIVE:
            raise SessionStateError(f"Session is not active (state: {self._state.value})")
        return self._acc

    def track_event(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> SessionEvent:
        """
        Record a session event (distraction, break, alert, yawn, head_drop, ...).

        Args:
            event_type: Event type
            data: Event details; ``kind`` classifies distractions

        Returns:
            The recorded event
        """
        with self._lock:
            acc = self._active_accumulator()
            event = SessionEvent(self.clock(), event_type, dict(data or {}))
            acc.history.events.append(event)
        logger.debug(f"Event {event_type} tracked: {event.data}")
        return event

    def track_page_view(self, page: int) -> None:
        """Switch the current page; time on the previous page is closed off."""
        with self._lock:
            acc = self._active_accumulator()
            now = self.clock()
            self._close_page_view(acc, now)
            acc.current_page = (int(page), now)
            acc.last_interaction_time = now

    def _close_page_view(self, acc: SessionAccumulator, now: float) -> None:
        if acc.current_page is None:
            return
        page, opened = acc.current_page
        acc.history.page_views.append(PageView(page=page, timestamp=opened, duration=max(0.0, now - opened)))
        acc.current_page = None

    def add_highlight(self, data: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            acc = self._active_accumulator()
            now = self.clock()
            acc.history.highlights.append(dict(data or {}, timestamp=now))
            acc.last_interaction_time = now

    def add_annotation(self, data: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            acc = self._active_accumulator()
            now = self.clock()
            acc.history.annotations.append(dict(data or {}, timestamp=now))
            acc.last_interaction_time = now

    def _now(self) -> float:
        # Live queries freeze at the end of the session
        if self._acc is not None and self._acc.history.end_time is not None:
            return self._acc.history.end_time
        return self.clock()

    def get_attention_rate(self) -> int:
        """Share of attentive frames over the trailing attention window (0-100)."""
        with self._lock:
            if self._acc is None:
                return 0
            return self.attention_window.rate(self._now())

    def get_blink_rate(self) -> float:
        """Debounced blinks per minute since the session started."""
        with self._lock:
            if self._acc is None:
                return 0.0
            return self.blink_counter.blink_rate(self._now())

    def get_engagement_score(self) -> float:
        """Instantaneous engagement score of the latest snapshot."""
        with self._lock:
            if self._acc is None or self._acc.last_snapshot is None:
                return 0.0
            return self._acc.last_snapshot.engagement_score

    def get_live_analytics(self) -> Dict[str, Any]:
        """Aggregate analytics over the records sampled so far."""
        with self._lock:
            if self._acc is None:
                return calculate_current_analytics([])
            records = list(self._acc.history.records)
            start_time = self._acc.start_time
            now = self._now()
        return calculate_current_analytics(records, start_time=start_time, now=now)

    def get_status(self) -> Dict[str, Any]:
        """Lifecycle and persistence health of the session."""
        with self._lock:
            acc = self._acc
            if acc is None:
                return {'state': self._state.value, 'session_id': None}

            return {
                'state': self._state.value,
                'session_id': acc.session_id,
                'frame_count': acc.frame_count,
                'dropped_ticks': acc.dropped_ticks,
                'pending_snapshots': len(acc.buffer),
                'buffer_overflows': acc.buffer_overflows,
                'flush_count': acc.flush_count,
                'last_flush_time': acc.last_flush_time,
                'consecutive_flush_failures': acc.consecutive_failures,
                'persistence_available': acc.persistence_available,
                'blink_count': self.blink_counter.blink_count
            }

    def end_session(self) -> SessionReport:
        """
        End the session and build its report.

        Stops both workers, flushes the buffer once, closes the session in
        persistence once and caches the report. The session is ENDED even
        when building the report raises. Later calls return the cached
        report without side effects, building it again if it is missing.

        Returns:
            SessionReport
        """
        with self._lifecycle_lock:
            if self._state == SessionState.ENDED:
                if self._acc.report is None:
                    # Report building failed on the first call; the history is final
                    self._acc.report = build_session_report(self._acc.history, self.config)
                return self._acc.report
            if self._state == SessionState.IDLE:
                raise SessionStateError("Cannot end a session that was never started")
            if self._state == SessionState.ENDING:
                raise SessionStateError("Session is already ending")

            with self._lock:
                self._state = SessionState.ENDING
            acc = self._acc

            self._stop_workers()
            if not self.flush(force=True):
                logger.warning(f"Session {acc.session_id} ended with {len(acc.buffer)} unsent snapshots")

            try:
                self.persistence.end_session(acc.session_id)
            except SessionAlreadyEndedError:
                logger.info(f"Session {acc.session_id} was already closed in persistence")
            except Exception as e:
                logger.error(f"Could not close session {acc.session_id} in persistence: {e}")

            with self._lock:
                now = self.clock()
                self._close_page_view(acc, now)
                acc.history.end_time = now
                acc.ended = True
                self._state = SessionState.ENDED

            try:
                acc.report = build_session_report(acc.history, self.config)
            finally:
                if self._owns_coordinator:
                    self.coordinator.shutdown()

        logger.info(f"Session {acc.session_id} ended after {acc.history.duration:.1f}s, "
                    f"{acc.frame_count} frames")
        return acc.report
