"""
Session Analytics

Post-session report aggregation and cross-session analysis.
"""

from .aggregator import SessionAnalyticsAggregator, build_session_report, calculate_current_analytics
from .data_analyzer import SessionHistoryAnalyzer, compare_with_average, generate_recommendations
from .history import MetricRecord, PageView, SessionEvent, SessionHistory
from .report import SessionReport

__all__ = [
    'SessionAnalyticsAggregator',
    'build_session_report',
    'calculate_current_analytics',
    'SessionHistoryAnalyzer',
    'compare_with_average',
    'generate_recommendations',
    'MetricRecord',
    'PageView',
    'SessionEvent',
    'SessionHistory',
    'SessionReport'
]
