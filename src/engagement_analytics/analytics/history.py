"""
Session History

Everything the session accumulator keeps about one study session and hands
to the aggregator once the session ends: sampled metric records, tracked
events, page views and the learner's highlights and annotations.
"""

from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


EVENT_TYPES = ('distraction', 'break', 'alert', 'yawn', 'head_drop', 'inactivity')


@dataclass(frozen=True)
class MetricRecord:
    """One sampled point of the live metrics, taken on every persist tick."""
    timestamp: float
    face_detected: bool
    looking_at_screen: bool
    engagement_score: float
    posture_score: Optional[float]
    attention_rate: float
    blink_rate: float
    has_phone: bool = False

    @property
    def attentive(self) -> bool:
        return self.face_detected and self.looking_at_screen


@dataclass(frozen=True)
class SessionEvent:
    timestamp: float
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PageView:
    """Time spent on one page, from opening it until the next page view."""
    page: int
    timestamp: float
    duration: float = 0.0


@dataclass
class SessionHistory:
    """Accumulated history of one session. Input of the aggregator."""
    session_id: str
    start_time: float
    end_time: Optional[float] = None
    records: List[MetricRecord] = field(default_factory=list)
    events: List[SessionEvent] = field(default_factory=list)
    page_views: List[PageView] = field(default_factory=list)
    highlights: List[Dict[str, Any]] = field(default_factory=list)
    annotations: List[Dict[str, Any]] = field(default_factory=list)
    total_pages: Optional[int] = None
    sample_interval: float = 3.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        """Session length in seconds."""
        if self.end_time is None:
            if not self.records:
                return 0.0
            return max(0.0, self.records[-1].timestamp - self.start_time)
        return max(0.0, self.end_time - self.start_time)

    def events_of_type(self, event_type: str) -> List[SessionEvent]:
        return [e for e in self.events if e.type == event_type]

    def time_per_page(self) -> Dict[int, float]:
        """Total seconds per page, in first-visit order."""
        totals: Dict[int, float] = OrderedDict()
        for view in self.page_views:
            totals[view.page] = totals.get(view.page, 0.0) + view.duration
        return totals

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionHistory':
        return cls(
            session_id=str(data['session_id']),
            start_time=float(data['start_time']),
            end_time=None if data.get('end_time') is None else float(data['end_time']),
            records=[MetricRecord(**r) for r in data.get('records', [])],
            events=[SessionEvent(**e) for e in data.get('events', [])],
            page_views=[PageView(**p) for p in data.get('page_views', [])],
            highlights=list(data.get('highlights', [])),
            annotations=list(data.get('annotations', [])),
            total_pages=None if data.get('total_pages') is None else int(data['total_pages']),
            sample_interval=float(data.get('sample_interval', 3.0)),
            metadata=dict(data.get('metadata', {}))
        )
