"""
Real-Time Integration Layer

Ties the signal modules together for a live study session:
- Parallel detection provider calls
- Per-frame signal fusion and engagement scoring
- Session lifecycle with throttled persistence
"""

from .detection import DetectionCoordinator, DetectionProvider
from .fusion_engine import FrameSignalFuser
from .persistence import InMemoryPersistence, JsonLinesPersistence, PersistenceService
from .scoring import EngagementScorer
from .session_manager import EngagementSession, SessionState

__all__ = [
    'DetectionCoordinator',
    'DetectionProvider',
    'FrameSignalFuser',
    'InMemoryPersistence',
    'JsonLinesPersistence',
    'PersistenceService',
    'EngagementScorer',
    'EngagementSession',
    'SessionState'
]
