"""
Persistence Services

The session accumulator talks to storage only through ``PersistenceService``.
Two implementations ship with the engine: an in-memory store used by tests
and demos, and a JSON-lines store writing one file per session.
"""

import json
import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional

from ..exceptions import PersistenceError, SessionAlreadyEndedError


logger = logging.getLogger(__name__)


class PersistenceService:
    """
    Interface for session storage.

    Every method raises ``PersistenceError`` on failure. ``end_session``
    raises ``SessionAlreadyEndedError`` when the session was already closed.
    """

    def start_session(self, session_id: str, metadata: Dict[str, Any]) -> None:
        raise NotImplementedError

    def save_metric(self, session_id: str, metric_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def end_session(self, session_id: str) -> None:
        raise NotImplementedError


class InMemoryPersistence(PersistenceService):
    """Thread-safe in-memory store."""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.records: Dict[str, List[Dict[str, Any]]] = {}
        self.end_calls: Dict[str, int] = {}
        self._lock = threading.Lock()

    def start_session(self, session_id: str, metadata: Dict[str, Any]) -> None:
        with self._lock:
            if session_id in self.sessions:
                raise PersistenceError(f"Session {session_id} already exists")
            self.sessions[session_id] = {'metadata': dict(metadata), 'ended': False}
            self.records[session_id] = []
            self.end_calls[session_id] = 0

    def save_metric(self, session_id: str, metric_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            session = self._get(session_id)
            if session['ended']:
                raise SessionAlreadyEndedError(f"Session {session_id} already ended")

            record = {
                'id': len(self.records[session_id]) + 1,
                'session_id': session_id,
                'type': metric_type,
                'payload': payload
            }
            self.records[session_id].append(record)
            return record

    def end_session(self, session_id: str) -> None:
        with self._lock:
            session = self._get(session_id)
            self.end_calls[session_id] += 1
            if session['ended']:
                raise SessionAlreadyEndedError(f"Session {session_id} already ended")
            session['ended'] = True

    def _get(self, session_id: str) -> Dict[str, Any]:
        session = self.sessions.get(session_id)
        if session is None:
            raise PersistenceError(f"Unknown session {session_id}")
        return session


class JsonLinesPersistence(PersistenceService):
    """
    Appends one JSON object per line to ``<directory>/<session_id>.jsonl``.

    The first line holds the session metadata, the last line the end marker.
    """

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)
        self._lock = threading.Lock()
        self._ended = set()

    def path_for(self, session_id: str) -> str:
        return os.path.join(self.directory, f"{session_id}.jsonl")

    def start_session(self, session_id: str, metadata: Dict[str, Any]) -> None:
        path = self.path_for(session_id)
        with self._lock:
            if os.path.exists(path):
                raise PersistenceError(f"Session file {path} already exists")
            self._append(session_id, {'type': 'session_start', 'time': time.time(), 'metadata': metadata})
        logger.info(f"Session {session_id} persisting to {path}")

    def save_metric(self, session_id: str, metric_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = {'type': metric_type, 'time': time.time(), 'payload': payload}
        # The end marker stays the last line
        with self._lock:
            if session_id in self._ended:
                raise SessionAlreadyEndedError(f"Session {session_id} already ended")
            self._append(session_id, record)
        return record

    def end_session(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._ended:
                raise SessionAlreadyEndedError(f"Session {session_id} already ended")
            self._append(session_id, {'type': 'session_end', 'time': time.time()})
            self._ended.add(session_id)

    def read_records(self, session_id: str, metric_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read back the records of one session, optionally filtered by type."""
        try:
            with open(self.path_for(session_id), 'r') as f:
                records = [json.loads(line) for line in f if line.strip()]
        except OSError as e:
            raise PersistenceError(f"Could not read session {session_id}: {e}") from e

        if metric_type is None:
            return records
        return [r for r in records if r.get('type') == metric_type]

    def _append(self, session_id: str, record: Dict[str, Any]) -> None:
        """Write one line; the caller holds ``self._lock``."""
        try:
            line = json.dumps(record, default=str)
            with open(self.path_for(session_id), 'a') as f:
                f.write(line + '\n')
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not write session {session_id}: {e}") from e
