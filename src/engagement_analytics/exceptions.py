"""
Exception hierarchy for the engagement analytics engine.
"""


class EngagementAnalyticsError(Exception):
    """Base class for all engine errors."""


class ConfigError(EngagementAnalyticsError):
    """Raised when a configuration value is invalid."""


class SessionStateError(EngagementAnalyticsError):
    """Raised when an operation is not allowed in the current session state."""


class SessionStartError(EngagementAnalyticsError):
    """Raised when a session cannot be started."""


class PersistenceError(EngagementAnalyticsError):
    """Raised by persistence services when a write fails."""


class SessionAlreadyEndedError(PersistenceError):
    """Raised by persistence services when a session was already closed."""
