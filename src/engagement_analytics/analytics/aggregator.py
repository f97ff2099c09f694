"""
Post-Session Analytics Aggregator

Derives the engagement, attention, health, distraction, content and
performance sub-reports from a session's accumulated history. Every function
here is a pure function of its arguments: no clock reads, no I/O, so the
same history always produces the same report.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..config import get_default_config
from ..modules.utils import clamp, round_half_up, round_int, safe_mean, safe_ratio
from .history import MetricRecord, SessionEvent, SessionHistory
from .report import (
    AttentionReport, ContentReport, DistractionReport, EngagementReport, HealthReport,
    ImprovementArea, PerformanceReport, PeriodSummary, SessionReport
)


logger = logging.getLogger(__name__)

# Weighted engagement
ENGAGEMENT_WEIGHTS = {
    'presence': 0.30,
    'posture': 0.15,
    'interactions': 0.15,
    'duration': 0.10,
    'consistency': 0.30
}

# Productivity
PRODUCTIVITY_WEIGHTS = {
    'engagement': 0.40,
    'completion': 0.30,
    'interactions': 0.30
}

# Live analytics
LIVE_WEIGHTS = {
    'attention_rate': 0.5,
    'posture_score': 0.3,
    'blink_compliance': 0.2
}
IDEAL_BLINK_RATE_MIN = 15
IDEAL_BLINK_RATE_MAX = 25
MAX_BLINK_DISTANCE = 50

DEFAULT_BLINK_RATE = 15.0
OPTIMAL_TIME_PER_PAGE = 120.0
MOST_STUDIED_LIMIT = 5
MIN_TREND_RECORDS = 10
BREAK_EVERY_MINUTES = 25


def normalize_duration(duration_minutes: float) -> float:
    """Duration score: 100 for 45-60 minutes, linear below, decaying above."""
    if 45 <= duration_minutes <= 60:
        return 100.0
    if duration_minutes < 45:
        return duration_minutes / 45.0 * 100.0
    return max(100.0 - (duration_minutes - 60.0) * 2.0, 50.0)


def calculate_weighted_engagement(presence: float, posture: float, interactions: int,
                                  duration_seconds: float) -> int:
    """
    Calculate the weighted session engagement score.

    Args:
        presence: Presence percentage (0-100)
        posture: Average posture score (0-100)
        interactions: Number of highlights
        duration_seconds: Session duration

    Returns:
        Rounded engagement score
    """
    normalized_interactions = min(interactions / 20.0 * 100.0, 100.0)
    normalized_duration = normalize_duration(duration_seconds / 60.0)
    consistency = 100.0 if presence > 80 and posture > 70 else 70.0

    score = (
        presence * ENGAGEMENT_WEIGHTS['presence'] +
        posture * ENGAGEMENT_WEIGHTS['posture'] +
        normalized_interactions * ENGAGEMENT_WEIGHTS['interactions'] +
        normalized_duration * ENGAGEMENT_WEIGHTS['duration'] +
        consistency * ENGAGEMENT_WEIGHTS['consistency']
    )
    return round_int(score)


def calculate_focus_time(records: Sequence[MetricRecord], distractions: Sequence[SessionEvent],
                         sample_interval: float, window: float = 60.0) -> float:
    """Seconds spent present with no distraction within ``window`` seconds."""
    focused = 0.0
    distraction_times = [e.timestamp for e in distractions]
    for record in records:
        if not record.face_detected:
            continue
        if any(abs(t - record.timestamp) < window for t in distraction_times):
            continue
        focused += sample_interval
    return focused


def calculate_break_time(records: Sequence[MetricRecord], sample_interval: float) -> float:
    """Seconds with no face present."""
    return sum(1 for r in records if not r.face_detected) * sample_interval


def classify_eye_strain(avg_blink_rate: float) -> str:
    if avg_blink_rate < 10:
        return 'high'
    if avg_blink_rate < 14:
        return 'medium'
    return 'low'


def calculate_fatigue_score(yawn_count: int, head_drops: int, duration_seconds: float) -> int:
    """
    Calculate fatigue score (0-100, higher = more fatigued).

    Args:
        yawn_count: Number of yawn events
        head_drops: Number of head drop events
        duration_seconds: Session duration

    Returns:
        Fatigue score
    """
    duration_minutes = duration_seconds / 60.0

    if duration_minutes > 0:
        yawns_per_hour = yawn_count / duration_minutes * 60.0
        drops_per_hour = head_drops / duration_minutes * 60.0
    else:
        yawns_per_hour = drops_per_hour = 0.0

    score = 0
    if yawns_per_hour > 6:
        score += 40
    elif yawns_per_hour > 3:
        score += 20

    if drops_per_hour > 3:
        score += 40
    elif drops_per_hour > 1:
        score += 20

    if duration_minutes > 90:
        score += 20

    return min(score, 100)


def calculate_health_score(blink_rate: float, fatigue: float, avg_posture: float,
                           duration_seconds: float) -> int:
    """Overall health score (0-100) from blink rate, fatigue, posture and duration."""
    score = 100.0

    if blink_rate < 10:
        score -= 25
    elif blink_rate < 12:
        score -= 15

    score -= fatigue * 0.3

    if avg_posture < 60:
        score -= 20
    elif avg_posture < 80:
        score -= 10

    duration_minutes = duration_seconds / 60.0
    if duration_minutes > 120:
        score -= 20
    elif duration_minutes > 90:
        score -= 10

    return max(0, round_int(score))


def calculate_quiz_readiness(completion_rate: float, highlights_count: int,
                             engagement_score: float, avg_time_per_page: float) -> float:
    """
    Predict quiz readiness on a 0-10 scale.

    Args:
        completion_rate: Content completion percentage
        highlights_count: Number of highlights
        engagement_score: Weighted engagement score
        avg_time_per_page: Average seconds per page

    Returns:
        Readiness rounded to one decimal
    """
    score = completion_rate / 100.0 * 3.0
    score += min(highlights_count / 15.0 * 2.0, 2.0)
    score += engagement_score / 100.0 * 3.0

    if 60 <= avg_time_per_page <= 180:
        time_score = 2.0
    else:
        time_score = max(0.0, 2.0 - abs(avg_time_per_page - OPTIMAL_TIME_PER_PAGE) / 60.0)
    score += time_score

    return clamp(round_half_up(score, 1), 0.0, 10.0)


def estimate_retention(engagement: float, interactions: int, focus_time: float,
                       total_duration: float) -> float:
    """Estimated retention percentage (0-100)."""
    retention = engagement * 0.6
    retention += min(interactions / 20.0 * 20.0, 20.0)
    retention += safe_ratio(focus_time, total_duration) * 20.0
    return min(retention, 100.0)


def calculate_productivity_score(engagement: float, completion_rate: float, interactions: int) -> int:
    interaction_score = min(interactions / 15.0 * 100.0, 100.0)
    score = (
        engagement * PRODUCTIVITY_WEIGHTS['engagement'] +
        completion_rate * PRODUCTIVITY_WEIGHTS['completion'] +
        interaction_score * PRODUCTIVITY_WEIGHTS['interactions']
    )
    return int(clamp(round_int(score)))


def identify_improvement_areas(engagement: EngagementReport, content: ContentReport,
                               health: HealthReport) -> List[ImprovementArea]:
    """Improvement areas, in a fixed order."""
    areas = []

    if engagement.presence_percentage < 80:
        areas.append(ImprovementArea(
            area='Presence',
            severity='high',
            message='Improve focus by minimizing distractions and staying present',
            metric=f"{engagement.presence_percentage}%"
        ))

    if engagement.average_posture < 70:
        areas.append(ImprovementArea(
            area='Posture',
            severity='medium',
            message='Adjust your sitting position for better posture',
            metric=f"{engagement.average_posture}%"
        ))

    if content.completion_rate < 60:
        areas.append(ImprovementArea(
            area='Content Coverage',
            severity='high',
            message='Try to cover more pages for comprehensive understanding',
            metric=f"{content.completion_rate}% completed"
        ))

    if content.highlights_count < 5:
        areas.append(ImprovementArea(
            area='Active Reading',
            severity='medium',
            message='Highlight more key points to improve retention',
            metric=f"{content.highlights_count} highlights"
        ))

    if health.eye_strain_level == 'high':
        areas.append(ImprovementArea(
            area='Eye Health',
            severity='high',
            message='Take more frequent breaks and follow the 20-20-20 rule',
            metric='High eye strain'
        ))

    if health.fatigue_score > 60:
        areas.append(ImprovementArea(
            area='Fatigue',
            severity='high',
            message='Consider shorter study sessions or take a longer break',
            metric=f"Fatigue: {health.fatigue_score}%"
        ))

    return areas


def calculate_blink_compliance(blink_rate: float) -> float:
    """Score (0-100) for how close the blink rate is to the 15-25 bpm range."""
    if IDEAL_BLINK_RATE_MIN <= blink_rate <= IDEAL_BLINK_RATE_MAX:
        return 100.0

    distance = min(abs(blink_rate - IDEAL_BLINK_RATE_MIN), abs(blink_rate - IDEAL_BLINK_RATE_MAX))
    penalty = min(distance / MAX_BLINK_DISTANCE, 1.0)
    return max(0.0, 100.0 * (1.0 - penalty))


def calculate_current_analytics(records: Sequence[MetricRecord],
                                start_time: Optional[float] = None,
                                now: Optional[float] = None) -> Dict[str, Any]:
    """
    Live aggregate analytics over a list of sampled records.

    Args:
        records: Sampled records, oldest first
        start_time: Session start; defaults to the first record time
        now: Reference time for the duration; defaults to the last record time

    Returns:
        Dictionary with engagement_score, attention_rate, blink_rate,
        distraction_count and duration (seconds)
    """
    if start_time is None:
        start_time = records[0].timestamp if records else 0.0
    if now is None:
        now = records[-1].timestamp if records else start_time
    duration = round_int(max(0.0, now - start_time))

    if not records:
        return {
            'engagement_score': 0,
            'attention_rate': 0,
            'blink_rate': 0,
            'distraction_count': 0,
            'duration': duration
        }

    total = len(records)
    attention_rate = round_int(100.0 * sum(1 for r in records if r.looking_at_screen) / total)
    avg_posture = sum(r.posture_score or 0.0 for r in records) / total
    avg_blink_rate = round_int(sum(r.blink_rate for r in records) / total)

    # Rising edges of phone presence
    distraction_count = 0
    phone_seen = False
    for record in records:
        if record.has_phone and not phone_seen:
            distraction_count += 1
        phone_seen = record.has_phone

    engagement = round_int(
        attention_rate * LIVE_WEIGHTS['attention_rate'] +
        avg_posture * LIVE_WEIGHTS['posture_score'] +
        calculate_blink_compliance(avg_blink_rate) * LIVE_WEIGHTS['blink_compliance']
    )

    return {
        'engagement_score': int(clamp(engagement)),
        'attention_rate': attention_rate,
        'blink_rate': avg_blink_rate,
        'distraction_count': distraction_count,
        'duration': duration
    }


class SessionAnalyticsAggregator:
    """
    Builds a ``SessionReport`` from a ``SessionHistory``.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize aggregator.

        Args:
            config: Analytics configuration section
        """
        defaults = get_default_config()['analytics']
        config = config or {}

        self.period_seconds = config.get('period_seconds', defaults['period_seconds'])
        self.trend_threshold = config.get('trend_threshold', defaults['trend_threshold'])
        self.focus_window = config.get('focus_distraction_window', defaults['focus_distraction_window'])

    def build_report(self, history: SessionHistory) -> SessionReport:
        """
        Compute all sub-reports for one session.

        Args:
            history: Accumulated session history

        Returns:
            Complete session report
        """
        duration = history.duration
        end_time = history.end_time if history.end_time is not None else history.start_time + duration

        engagement = self.engagement_report(history)
        content = self.content_report(history)
        health = self.health_report(history)

        report = SessionReport(
            session_id=history.session_id,
            start_time=history.start_time,
            end_time=end_time,
            duration=duration,
            duration_minutes=int(math.floor(duration / 60.0)),
            engagement=engagement,
            attention=self.attention_report(history),
            health=health,
            distraction=self.distraction_report(history),
            content=content,
            performance=self.performance_report(history, engagement, content, health)
        )
        logger.debug(f"Built report for session {history.session_id} from {len(history.records)} records")
        return report

    def engagement_report(self, history: SessionHistory) -> EngagementReport:
        records = history.records
        presence = self._presence(records)
        avg_posture = self._average_posture(records)

        overall = calculate_weighted_engagement(
            presence=presence,
            posture=avg_posture,
            interactions=len(history.highlights),
            duration_seconds=history.duration
        )

        best, worst = self._best_and_worst_period(history)
        distractions = history.events_of_type('distraction')

        return EngagementReport(
            overall_score=int(clamp(overall)),
            average_score=round_int(safe_mean(r.engagement_score for r in records)),
            presence_percentage=round_int(presence),
            average_posture=round_int(avg_posture),
            trend=self._trend([r.engagement_score for r in records]),
            best_period=best,
            worst_period=worst,
            focus_time=round_int(calculate_focus_time(records, distractions, history.sample_interval,
                                                      self.focus_window)),
            break_time=round_int(calculate_break_time(records, history.sample_interval))
        )

    def attention_report(self, history: SessionHistory) -> AttentionReport:
        records = history.records
        spans = self._attention_spans(records, history.sample_interval)

        return AttentionReport(
            focus_rate=round_int(100.0 * safe_ratio(sum(1 for r in records if r.attentive), len(records))),
            span_count=len(spans),
            average_span=round_half_up(float(np.mean(spans)), 1) if spans else 0.0,
            longest_span=float(np.max(spans)) if spans else 0.0
        )

    def health_report(self, history: SessionHistory) -> HealthReport:
        records = history.records
        duration = history.duration

        avg_blink_rate = safe_mean((r.blink_rate for r in records), default=DEFAULT_BLINK_RATE)
        avg_posture = self._average_posture(records)
        fatigue = calculate_fatigue_score(
            len(history.events_of_type('yawn')),
            len(history.events_of_type('head_drop')),
            duration
        )

        return HealthReport(
            avg_blink_rate=round_int(avg_blink_rate),
            average_posture=round_int(avg_posture),
            eye_strain_level=classify_eye_strain(avg_blink_rate),
            fatigue_score=int(clamp(fatigue)),
            health_score=int(clamp(calculate_health_score(avg_blink_rate, fatigue, avg_posture, duration))),
            posture_issues=sum(1 for r in records if r.posture_score is not None and r.posture_score <= 60),
            recommended_breaks=int(duration / 60.0 // BREAK_EVERY_MINUTES)
        )

    def distraction_report(self, history: SessionHistory) -> DistractionReport:
        distractions = history.events_of_type('distraction')
        hours = history.duration / 3600.0

        types: Dict[str, int] = {}
        for event in distractions:
            kind = str(event.data.get('kind', 'other'))
            types[kind] = types.get(kind, 0) + 1

        return DistractionReport(
            count=len(distractions),
            rate_per_hour=round_half_up(safe_ratio(len(distractions), hours), 1),
            types=dict(sorted(types.items()))
        )

    def content_report(self, history: SessionHistory) -> ContentReport:
        time_per_page = history.time_per_page()
        pages_visited = len(time_per_page)
        total_pages = history.total_pages or pages_visited

        completion = min(100.0 * safe_ratio(pages_visited, total_pages), 100.0)
        avg_time = safe_ratio(sum(time_per_page.values()), pages_visited)

        most_studied = sorted(time_per_page.items(), key=lambda item: (-item[1], item[0]))[:MOST_STUDIED_LIMIT]
        interactions = len(history.highlights) + len(history.annotations)

        return ContentReport(
            pages_visited=pages_visited,
            total_pages=total_pages,
            highlights_count=len(history.highlights),
            annotations_count=len(history.annotations),
            completion_rate=round_int(completion),
            avg_time_per_page=round_int(avg_time),
            most_studied_pages=tuple({'page': page, 'time': seconds} for page, seconds in most_studied),
            interaction_density=round_half_up(safe_ratio(interactions, pages_visited), 2)
        )

    def performance_report(self, history: SessionHistory, engagement: EngagementReport,
                           content: ContentReport, health: HealthReport) -> PerformanceReport:
        interactions = content.highlights_count + content.annotations_count

        return PerformanceReport(
            quiz_readiness=calculate_quiz_readiness(
                content.completion_rate,
                content.highlights_count,
                engagement.overall_score,
                content.avg_time_per_page
            ),
            retention_estimate=round_int(estimate_retention(
                engagement.overall_score, interactions, engagement.focus_time, history.duration
            )),
            productivity_score=calculate_productivity_score(
                engagement.overall_score, content.completion_rate, interactions
            ),
            improvement_areas=tuple(identify_improvement_areas(engagement, content, health))
        )

    def _presence(self, records: Sequence[MetricRecord]) -> float:
        return 100.0 * safe_ratio(sum(1 for r in records if r.face_detected), len(records))

    def _average_posture(self, records: Sequence[MetricRecord]) -> float:
        return safe_mean(r.posture_score for r in records if r.posture_score is not None)

    def _trend(self, scores: List[float]) -> str:
        """Compare the first and second half of the session."""
        if len(scores) < MIN_TREND_RECORDS:
            return 'insufficient_data'

        half = len(scores) // 2
        change = float(np.mean(scores[half:])) - float(np.mean(scores[:half]))

        if change > self.trend_threshold:
            return 'improving'
        elif change < -self.trend_threshold:
            return 'declining'
        return 'stable'

    def _best_and_worst_period(self, history: SessionHistory):
        if not history.records:
            return None, None

        buckets: Dict[int, List[float]] = {}
        for record in history.records:
            index = int(max(0.0, record.timestamp - history.start_time) // self.period_seconds)
            buckets.setdefault(index, []).append(record.engagement_score)

        periods = [
            PeriodSummary(
                start_offset=index * self.period_seconds,
                end_offset=(index + 1) * self.period_seconds,
                average_engagement=round_half_up(float(np.mean(scores)), 1)
            )
            for index, scores in sorted(buckets.items())
        ]

        # Earliest period wins ties
        best = max(periods, key=lambda p: p.average_engagement)
        worst = min(periods, key=lambda p: p.average_engagement)
        return best, worst

    @staticmethod
    def _attention_spans(records: Sequence[MetricRecord], sample_interval: float) -> List[float]:
        """Lengths in seconds of consecutive attentive runs."""
        flags = np.array([r.attentive for r in records], dtype=int)
        if flags.size == 0:
            return []

        # Run boundaries from the padded difference
        edges = np.diff(np.concatenate(([0], flags, [0])))
        starts = np.flatnonzero(edges == 1)
        ends = np.flatnonzero(edges == -1)

        return [float(length) * sample_interval for length in (ends - starts)]


def build_session_report(history: SessionHistory, config: Optional[Dict[str, Any]] = None) -> SessionReport:
    """
    Build the report for one session.

    Args:
        history: Accumulated session history
        config: Full engine configuration or just its ``analytics`` section

    Returns:
        SessionReport
    """
    if config and 'analytics' in config:
        config = config['analytics']
    return SessionAnalyticsAggregator(config).build_report(history)
