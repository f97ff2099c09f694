"""
Tests for the sliding attention window.
"""

import pytest

from engagement_analytics.modules.attention import RateWindow


def test_empty_window_rate_is_zero():
    window = RateWindow(60.0)
    assert window.rate() == 0
    assert window.rate(now=100.0) == 0


def test_rate_of_seven_attentive_out_of_ten():
    window = RateWindow(60.0)
    for i in range(10):
        window.record(float(i), i < 7)

    assert window.rate(now=10.0) == 70


def test_entries_older_than_window_are_purged():
    window = RateWindow(60.0)
    window.record(0.0, False)
    window.record(30.0, True)
    window.record(61.0, True)

    # Entry at 0.0 is older than 61 - 60
    assert window.rate(now=61.0) == 100
    assert len(window) == 2
    assert window.count(now=200.0) == 0
    assert window.rate(now=200.0) == 0


def test_entry_exactly_at_cutoff_is_kept():
    window = RateWindow(10.0)
    window.record(0.0, True)
    window.record(5.0, False)

    assert window.purge(10.0) == 0
    assert window.rate(now=10.0) == 50


def test_rate_rounds_half_up():
    window = RateWindow(60.0)
    # 5 of 8 = 62.5%
    for i in range(8):
        window.record(float(i), i < 5)

    assert window.rate(now=8.0) == 63


def test_rate_defaults_to_newest_sample_time():
    window = RateWindow(5.0)
    window.record(0.0, False)
    window.record(10.0, True)

    assert window.rate() == 100


def test_clear_resets_counts():
    window = RateWindow(60.0)
    window.record(1.0, True)
    window.clear()

    assert len(window) == 0
    assert window.rate(now=1.0) == 0


def test_rejects_non_positive_duration():
    with pytest.raises(ValueError):
        RateWindow(0)


def test_record_drops_expired_entries_without_reads():
    window = RateWindow(10.0)
    for i in range(1000):
        window.record(float(i), True)

    # Only samples from the last 10 seconds remain
    assert len(window) == 11
