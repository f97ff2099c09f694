"""
Detection Coordination

Runs the external detection providers (face, face mesh, pose, objects) for
one frame in parallel and joins their results within the frame budget.
A provider that raises, times out or returns a malformed payload is treated
as absent for that frame only.
"""

from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List
import logging
import threading

from ..types import DetectionSnapshot, FaceDetection, coerce_landmarks, coerce_objects


logger = logging.getLogger(__name__)

PROVIDER_KINDS = ('face', 'face_mesh', 'pose', 'objects')

# Payload converters per provider kind
_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    'face': lambda payload: None if payload is None else FaceDetection.from_payload(payload),
    'face_mesh': coerce_landmarks,
    'pose': coerce_landmarks,
    'objects': coerce_objects
}

# DetectionSnapshot field per provider kind
_FIELDS = {
    'face': 'face',
    'face_mesh': 'face_landmarks',
    'pose': 'pose_landmarks',
    'objects': 'objects'
}


class DetectionProvider:
    """
    Interface for an external detector.

    ``detect`` returns the provider payload for one frame and raises on
    failure. The payload shapes accepted per kind are documented on
    ``DetectionCoordinator``.
    """

    kind = 'face'

    def detect(self, frame: Any, timestamp_ms: float) -> Any:
        raise NotImplementedError


class DetectionCoordinator:
    """
    Parallel, best-effort detector join for one frame.

    Accepted payloads: ``face`` a ``FaceDetection`` or dict with
    ``face_detected``/``face_count``/``confidence``; ``face_mesh`` and
    ``pose`` a list of landmarks (``Landmark``, dicts or tuples);
    ``objects`` a list of dicts with ``class``, ``confidence``/``score``
    and ``bbox``.
    """

    def __init__(self, providers: Dict[str, DetectionProvider], timeout: float = 0.1,
                 max_workers: int = 4):
        """
        Initialize detection coordinator.

        Args:
            providers: Mapping of provider kind to provider
            timeout: Frame budget in seconds for joining provider results
            max_workers: Thread pool size
        """
        unknown = set(providers) - set(PROVIDER_KINDS)
        if unknown:
            raise ValueError(f"Unknown provider kinds: {sorted(unknown)}")

        self.providers = dict(providers)
        self.timeout = timeout
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='detector')

        self._pending: List[Future] = []
        self._lock = threading.Lock()

        logger.info(f"DetectionCoordinator initialized with providers: {sorted(self.providers)}")

    def is_busy(self) -> bool:
        """True while a provider call from an earlier frame is still running."""
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            return bool(self._pending)

    def collect(self, frame: Any, timestamp: float) -> DetectionSnapshot:
        """
        Run all providers on ``frame`` and build the detection snapshot.

        Args:
            frame: Opaque frame handed to every provider
            timestamp: Frame time in seconds

        Returns:
            DetectionSnapshot with absent signals set to None
        """
        futures = {
            kind: self.executor.submit(provider.detect, frame, timestamp * 1000.0)
            for kind, provider in self.providers.items()
        }

        wait(list(futures.values()), timeout=self.timeout)

        fields: Dict[str, Any] = {}
        late = []
        for kind, future in futures.items():
            if not future.done():
                logger.warning(f"Provider {kind} exceeded the frame budget of {self.timeout:.3f}s")
                late.append(future)
                continue

            try:
                fields[_FIELDS[kind]] = convert_payload(kind, future.result())
            except Exception as e:
                logger.warning(f"Provider {kind} processing failed: {e}")

        if late:
            with self._lock:
                self._pending.extend(late)

        return DetectionSnapshot(timestamp=timestamp, **fields)

    def shutdown(self) -> None:
        """Shutdown the thread pool without waiting for late providers."""
        self.executor.shutdown(wait=False)
        logger.info("DetectionCoordinator shut down")


def convert_payload(kind: str, payload: Any) -> Any:
    """Convert one provider payload to the type stored on ``DetectionSnapshot``."""
    return _CONVERTERS[kind](payload)


def snapshot_from_payloads(payloads: Dict[str, Any], timestamp: float) -> DetectionSnapshot:
    """
    Build a detection snapshot from already-collected provider payloads.

    Args:
        payloads: Mapping of provider kind to payload; missing kinds are absent
        timestamp: Frame time in seconds

    Returns:
        DetectionSnapshot
    """
    fields = {}
    for kind, payload in payloads.items():
        if kind not in _FIELDS:
            continue
        try:
            fields[_FIELDS[kind]] = convert_payload(kind, payload)
        except Exception as e:
            logger.warning(f"Malformed {kind} payload ignored: {e}")
    return DetectionSnapshot(timestamp=timestamp, **fields)
