"""
Session report data types.

All sub-reports are frozen dataclasses; the aggregator builds them once and
they are never modified afterwards.
"""

import json
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class PeriodSummary:
    """Average engagement over one fixed-length slice of the session."""
    start_offset: float
    end_offset: float
    average_engagement: float


@dataclass(frozen=True)
class EngagementReport:
    overall_score: int
    average_score: int
    presence_percentage: int
    average_posture: int
    trend: str
    best_period: Optional[PeriodSummary]
    worst_period: Optional[PeriodSummary]
    focus_time: int
    break_time: int


@dataclass(frozen=True)
class AttentionReport:
    focus_rate: int
    span_count: int
    average_span: float
    longest_span: float


@dataclass(frozen=True)
class HealthReport:
    avg_blink_rate: int
    average_posture: int
    eye_strain_level: str
    fatigue_score: int
    health_score: int
    posture_issues: int
    recommended_breaks: int


@dataclass(frozen=True)
class DistractionReport:
    count: int
    rate_per_hour: float
    types: Dict[str, int]


@dataclass(frozen=True)
class ContentReport:
    pages_visited: int
    total_pages: int
    highlights_count: int
    annotations_count: int
    completion_rate: int
    avg_time_per_page: int
    most_studied_pages: Tuple[Dict[str, Any], ...]
    interaction_density: float


@dataclass(frozen=True)
class ImprovementArea:
    area: str
    severity: str
    message: str
    metric: str


@dataclass(frozen=True)
class PerformanceReport:
    quiz_readiness: float
    retention_estimate: int
    productivity_score: int
    improvement_areas: Tuple[ImprovementArea, ...]


@dataclass(frozen=True)
class SessionReport:
    """Complete post-session analytics."""
    session_id: str
    start_time: float
    end_time: float
    duration: float
    duration_minutes: int
    engagement: EngagementReport
    attention: AttentionReport
    health: HealthReport
    distraction: DistractionReport
    content: ContentReport
    performance: PerformanceReport

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)
