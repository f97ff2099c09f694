"""
Study Engagement Analytics

Turns per-frame face, gaze, pose and object detections into live engagement
metrics and post-session study analytics.
"""

__version__ = "1.0.0"

from .analytics import SessionHistory, SessionReport, build_session_report
from .config import get_default_config, load_config
from .exceptions import (
    ConfigError,
    EngagementAnalyticsError,
    PersistenceError,
    SessionAlreadyEndedError,
    SessionStartError,
    SessionStateError
)
from .integration import EngagementSession, FrameSignalFuser
from .types import DetectionSnapshot, MetricSnapshot

__all__ = [
    'SessionHistory',
    'SessionReport',
    'build_session_report',
    'get_default_config',
    'load_config',
    'ConfigError',
    'EngagementAnalyticsError',
    'PersistenceError',
    'SessionAlreadyEndedError',
    'SessionStartError',
    'SessionStateError',
    'EngagementSession',
    'FrameSignalFuser',
    'DetectionSnapshot',
    'MetricSnapshot'
]
