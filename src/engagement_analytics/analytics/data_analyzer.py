"""
Cross-Session Analysis

Tools for analyzing many session reports together: per-day trends, best
study hour, comparison with a class average and personalized
recommendations.
"""

import glob
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

import matplotlib.pyplot as plt
import pandas as pd

from ..modules.utils import round_int
from .report import SessionReport


logger = logging.getLogger(__name__)

ReportLike = Union[SessionReport, Dict[str, Any]]

COMPARISON_METRICS = ('engagement_score', 'presence', 'posture', 'completion_rate', 'interactions')


def _as_dict(report: ReportLike) -> Dict[str, Any]:
    if isinstance(report, SessionReport):
        return report.to_dict()
    return report


def load_reports(directory: str) -> List[Dict[str, Any]]:
    """
    Load every ``*.json`` session report in ``directory``.

    Args:
        directory: Directory holding report files

    Returns:
        List of report dictionaries sorted by start time
    """
    reports = []
    for path in sorted(glob.glob(os.path.join(directory, '*.json'))):
        try:
            with open(path, 'r') as f:
                reports.append(json.load(f))
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping unreadable report {path}: {e}")

    reports.sort(key=lambda r: r.get('start_time', 0))
    logger.info(f"Loaded {len(reports)} reports from {directory}")
    return reports


def format_hour_range(hour: int) -> str:
    return f"{hour}:00 - {hour + 1}:00"


def find_best_study_hour(reports: Sequence[ReportLike]) -> Optional[int]:
    """
    Hour of day (UTC) with the highest average engagement.

    Returns:
        Hour 0-23, or None when no session scored above zero
    """
    hourly: Dict[int, List[float]] = {}
    for report in reports:
        data = _as_dict(report)
        hour = datetime.fromtimestamp(data['start_time'], tz=timezone.utc).hour
        hourly.setdefault(hour, []).append(data['engagement']['overall_score'])

    best_hour = None
    best_score = 0.0
    for hour in sorted(hourly):
        average = sum(hourly[hour]) / len(hourly[hour])
        if average > best_score:
            best_score = average
            best_hour = hour

    return best_hour


def compare_with_average(user_stats: Dict[str, float],
                         class_average: Optional[Dict[str, float]]) -> Optional[Dict[str, Dict[str, Any]]]:
    """
    Compare a learner's statistics with the class average.

    Args:
        user_stats: Learner values keyed by metric name
        class_average: Class average values keyed by metric name

    Returns:
        Per-metric comparison, or None without a class average
    """
    if not class_average:
        return None

    comparison = {}
    for metric in COMPARISON_METRICS:
        user_value = user_stats.get(metric) or 0
        average_value = class_average.get(metric) or 0
        difference = user_value - average_value
        percent_diff = difference / average_value * 100 if average_value > 0 else 0

        if difference > 0:
            status = 'above'
        elif difference < 0:
            status = 'below'
        else:
            status = 'equal'

        comparison[metric] = {
            'user': user_value,
            'average': average_value,
            'difference': round_int(difference),
            'percent_diff': round_int(percent_diff),
            'status': status
        }

    return comparison


def generate_recommendations(report: ReportLike,
                             history: Sequence[ReportLike] = ()) -> List[Dict[str, str]]:
    """
    Personalized recommendations for one session.

    Args:
        report: Report of the session being reviewed
        history: Earlier session reports used for timing patterns

    Returns:
        List of recommendation dictionaries
    """
    data = _as_dict(report)
    recommendations = []

    best_hour = find_best_study_hour(history) if history else None
    if best_hour is not None:
        recommendations.append({
            'type': 'timing',
            'priority': 'high',
            'title': 'Optimal Study Time',
            'message': (f"Your engagement is highest at {format_hour_range(best_hour)}. "
                        "Schedule important sessions during this time.")
        })

    if data['performance']['productivity_score'] < 70:
        recommendations.append({
            'type': 'duration',
            'priority': 'medium',
            'title': 'Session Length',
            'message': 'Try shorter 45-minute sessions with 10-minute breaks for better focus.'
        })

    if data['health']['fatigue_score'] > 50:
        recommendations.append({
            'type': 'health',
            'priority': 'high',
            'title': 'Take More Breaks',
            'message': 'Increase break frequency to reduce fatigue. Try the Pomodoro technique (25/5).'
        })

    if data['content']['interaction_density'] < 1.5:
        recommendations.append({
            'type': 'learning',
            'priority': 'medium',
            'title': 'Increase Interaction',
            'message': 'Add more highlights and notes. Active reading improves retention by 40%.'
        })

    return recommendations


class SessionHistoryAnalyzer:
    """Analyzes a collection of session reports."""

    def __init__(self, reports: Sequence[ReportLike]):
        """
        Initialize analyzer

        Args:
            reports: Session reports (``SessionReport`` or dictionaries)
        """
        self.reports = [_as_dict(r) for r in reports]
        self.data = self.to_dataframe()

    def to_dataframe(self) -> pd.DataFrame:
        """
        Flatten the reports into one row per session

        Returns:
            DataFrame sorted by start time
        """
        rows = []
        for report in self.reports:
            rows.append({
                'session_id': report['session_id'],
                'start_time': pd.to_datetime(report['start_time'], unit='s', utc=True),
                'duration_minutes': report['duration_minutes'],
                'engagement_score': report['engagement']['overall_score'],
                'presence': report['engagement']['presence_percentage'],
                'posture': report['engagement']['average_posture'],
                'focus_rate': report['attention']['focus_rate'],
                'fatigue_score': report['health']['fatigue_score'],
                'health_score': report['health']['health_score'],
                'distractions': report['distraction']['count'],
                'completion_rate': report['content']['completion_rate'],
                'interactions': report['content']['highlights_count'] + report['content']['annotations_count'],
                'productivity_score': report['performance']['productivity_score']
            })

        data = pd.DataFrame(rows)
        if not data.empty:
            data = data.sort_values('start_time').reset_index(drop=True)
        return data

    def daily_trends(self) -> pd.DataFrame:
        """Per-day averages of the main scores plus session counts."""
        if self.data.empty:
            return pd.DataFrame()

        daily = self.data.assign(date=self.data['start_time'].dt.date).groupby('date')
        trends = daily.agg(
            sessions=('session_id', 'count'),
            engagement_score=('engagement_score', 'mean'),
            productivity_score=('productivity_score', 'mean'),
            study_minutes=('duration_minutes', 'sum')
        )
        return trends.round(1)

    def best_study_time(self) -> Optional[str]:
        hour = find_best_study_hour(self.reports)
        return format_hour_range(hour) if hour is not None else None

    def average_stats(self) -> Dict[str, float]:
        """Mean of the comparison metrics over all sessions."""
        if self.data.empty:
            return {}
        return {metric: float(self.data[metric].mean()) for metric in COMPARISON_METRICS}

    def summary(self) -> Dict[str, Any]:
        """
        Generate summary statistics

        Returns:
            Dictionary containing summary statistics
        """
        if self.data.empty:
            return {'total_sessions': 0}

        return {
            'total_sessions': len(self.data),
            'total_minutes': int(self.data['duration_minutes'].sum()),
            'average_engagement': float(self.data['engagement_score'].mean()),
            'max_engagement': float(self.data['engagement_score'].max()),
            'min_engagement': float(self.data['engagement_score'].min()),
            'average_productivity': float(self.data['productivity_score'].mean()),
            'total_distractions': int(self.data['distractions'].sum()),
            'best_study_time': self.best_study_time(),
            'engagement_trend': self._calculate_trend()
        }

    def _calculate_trend(self) -> str:
        """Compare the first and second half of the sessions."""
        if len(self.data) < 4:
            return 'insufficient_data'

        mid_point = len(self.data) // 2
        first_half_avg = self.data['engagement_score'].iloc[:mid_point].mean()
        second_half_avg = self.data['engagement_score'].iloc[mid_point:].mean()

        diff = second_half_avg - first_half_avg

        if diff > 5:
            return 'improving'
        elif diff < -5:
            return 'declining'
        else:
            return 'stable'

    def plot_engagement_over_time(self, save_path: Optional[str] = None) -> None:
        """
        Plot engagement and productivity per session

        Args:
            save_path: Path to save the plot (optional)
        """
        if self.data.empty:
            logger.warning("No data available for plotting")
            return

        plt.figure(figsize=(12, 6))
        plt.plot(self.data['start_time'], self.data['engagement_score'],
                 marker='o', linewidth=2, alpha=0.7, label='Engagement Score')
        plt.plot(self.data['start_time'], self.data['productivity_score'],
                 marker='s', linewidth=2, alpha=0.7, label='Productivity Score')

        plt.axhline(y=70, color='g', linestyle='--', alpha=0.5, label='Target')

        plt.xlabel('Session Start')
        plt.ylabel('Score')
        plt.ylim(0, 100)
        plt.title('Engagement Across Sessions')
        plt.legend()
        plt.grid(True, alpha=0.3)
        plt.xticks(rotation=45)
        plt.tight_layout()

        if save_path:
            plt.savefig(save_path, dpi=150, bbox_inches='tight')
            plt.close()
            logger.info(f"Plot saved to: {save_path}")
        else:
            plt.show()
