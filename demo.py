#!/usr/bin/env python3
"""
Simple demo script to run a study session without a camera
"""

import sys
import os
import time
import logging

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

try:
    from engagement_analytics.config import get_default_config, merge_config
    from engagement_analytics.integration import EngagementSession, InMemoryPersistence
    from engagement_analytics.simulation import SimulatedLearner
    from engagement_analytics.analytics import generate_recommendations

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    print("✓ Study Engagement Analytics Demo")
    print("=" * 30)

    # Short ticks so the demo finishes quickly
    config = merge_config(get_default_config(), {
        'session': {'tick_interval': 0.05, 'flush_interval': 0.5}
    })

    learner = SimulatedLearner(seed=7)
    persistence = InMemoryPersistence()
    session = EngagementSession(config, persistence=persistence,
                                providers=learner.providers(), frame_source=learner)

    session_id = session.start_session({'title': 'Demo session', 'total_pages': 10})
    print(f"✓ Session {session_id} started")

    for page in range(1, 5):
        session.track_page_view(page)
        time.sleep(1.0)
        session.add_highlight({'page': page, 'text': f'Key point on page {page}'})
        print(f"  page {page}: engagement {session.get_engagement_score():.0f}, "
              f"attention {session.get_attention_rate()}%, blink rate {session.get_blink_rate():.1f}/min")

    report = session.end_session()
    status = session.get_status()

    print("\n" + "=" * 30)
    print(f"✓ Frames processed: {status['frame_count']} ({status['dropped_ticks']} ticks dropped)")
    print(f"✓ Flushes persisted: {len(persistence.records[session_id])}")
    print(f"✓ Overall engagement: {report.engagement.overall_score}")
    print(f"✓ Presence: {report.engagement.presence_percentage}%")
    print(f"✓ Quiz readiness: {report.performance.quiz_readiness}/10")
    print(f"✓ Productivity: {report.performance.productivity_score}%")

    for area in report.performance.improvement_areas:
        print(f"  [{area.severity}] {area.area}: {area.message} ({area.metric})")
    for recommendation in generate_recommendations(report):
        print(f"  → {recommendation['message']}")

    print("\nTo build reports from recorded sessions:")
    print("  engagement-analytics report history.json")
    print("  engagement-analytics trends reports/ --plot trends.png")

except Exception as e:
    print(f"✗ Error: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
