"""
Main Entry Point for the Study Engagement Analytics Engine

Command line interface for building session reports from recorded session
histories and for cross-session trend analysis.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .analytics import SessionHistory, SessionHistoryAnalyzer, build_session_report
from .analytics.data_analyzer import compare_with_average, generate_recommendations, load_reports
from .config import load_config
from .exceptions import EngagementAnalyticsError


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None):
    """Setup logging configuration."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def _write_output(text: str, output_path: Optional[str]):
    if output_path:
        with open(output_path, 'w') as f:
            f.write(text + '\n')
        logging.info(f"Output written to {output_path}")
    else:
        print(text)


def run_report(config: dict, history_path: str, output_path: Optional[str] = None,
               history_dir: Optional[str] = None) -> int:
    """
    Build the report of one recorded session.

    Args:
        config: System configuration
        history_path: Path to a session history JSON file
        output_path: Path to save the report JSON (stdout when omitted)
        history_dir: Directory of earlier reports used for recommendations
    """
    with open(history_path, 'r') as f:
        history = SessionHistory.from_dict(json.load(f))

    report = build_session_report(history, config)
    _write_output(report.to_json(), output_path)

    previous = load_reports(history_dir) if history_dir else []
    for recommendation in generate_recommendations(report, previous):
        logging.info(f"Recommendation ({recommendation['priority']}): {recommendation['message']}")

    logging.info(f"Session {report.session_id}: engagement {report.engagement.overall_score}, "
                 f"productivity {report.performance.productivity_score}")
    return 0


def run_trends(reports_dir: str, output_path: Optional[str] = None, plot_path: Optional[str] = None,
               class_average_path: Optional[str] = None) -> int:
    """
    Summarize many session reports.

    Args:
        reports_dir: Directory holding report JSON files
        output_path: Path to save the summary JSON (stdout when omitted)
        plot_path: Path to save the engagement plot
        class_average_path: JSON file with class average statistics
    """
    reports = load_reports(reports_dir)
    if not reports:
        logging.error(f"No session reports found in {reports_dir}")
        return 1

    analyzer = SessionHistoryAnalyzer(reports)
    summary = analyzer.summary()

    daily = analyzer.daily_trends()
    summary['daily'] = {
        str(date): {key: float(value) for key, value in row.items()}
        for date, row in daily.to_dict(orient='index').items()
    }

    if class_average_path:
        with open(class_average_path, 'r') as f:
            summary['comparison'] = compare_with_average(analyzer.average_stats(), json.load(f))

    _write_output(json.dumps(summary, indent=2, sort_keys=True, default=str), output_path)

    if plot_path:
        analyzer.plot_engagement_over_time(save_path=plot_path)

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Study Engagement Analytics')

    parser.add_argument('--config', '-c', type=str, default=None,
                        help='Path to configuration file')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default=None, help='Logging level')

    subparsers = parser.add_subparsers(dest='command', required=True)

    report_parser = subparsers.add_parser('report', help='Build a session report from a history file')
    report_parser.add_argument('history', help='Session history JSON file')
    report_parser.add_argument('--output', '-o', default=None, help='Output path for the report')
    report_parser.add_argument('--history-dir', default=None,
                               help='Directory of earlier reports for recommendations')

    trends_parser = subparsers.add_parser('trends', help='Summarize a directory of session reports')
    trends_parser.add_argument('reports_dir', help='Directory of report JSON files')
    trends_parser.add_argument('--output', '-o', default=None, help='Output path for the summary')
    trends_parser.add_argument('--plot', default=None, help='Save the engagement plot to this path')
    trends_parser.add_argument('--class-average', default=None,
                               help='JSON file with class average statistics')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main function with command line interface."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except EngagementAnalyticsError as e:
        setup_logging(args.log_level or 'INFO')
        logging.error(f"Invalid configuration: {e}")
        return 1

    setup_logging(args.log_level or config['logging']['level'], config['logging']['log_file'])

    try:
        if args.command == 'report':
            return run_report(config, args.history, args.output, args.history_dir)
        return run_trends(args.reports_dir, args.output, args.plot, args.class_average)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logging.error(f"Error running {args.command}: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
