from datetime import timedelta

from cycle_tracker.baseline import CycleBaselineTracker
from cycle_tracker.models import UNAVAILABLE, Available, DailyRecord


def test_first_sample_of_day_anchors_baseline(state, records, today):
    tracker = CycleBaselineTracker()

    result = tracker.update(state, records, today, Available(500))

    assert result == Available(0)
    assert state.baseline_date == today
    assert state.baseline_count == 500
    assert records.get(today).cycles == 0


def test_cycles_today_follow_lifetime_counter(state, records, today):
    tracker = CycleBaselineTracker()
    tracker.update(state, records, today, Available(500))

    assert tracker.update(state, records, today, Available(501)) == Available(1)
    assert tracker.update(state, records, today, Available(502)) == Available(2)
    assert tracker.update(state, records, today, Available(502)) == Available(2)
    assert records.get(today).cycles == 2


def test_midnight_reanchors_and_keeps_previous_day(state, records, today):
    tracker = CycleBaselineTracker()
    tracker.update(state, records, today, Available(500))
    tracker.update(state, records, today, Available(502))

    tomorrow = today + timedelta(days=1)
    result = tracker.update(state, records, tomorrow, Available(502))

    assert result == Available(0)
    assert state.baseline_count == 502
    assert records.get(today).cycles == 2
    assert records.get(tomorrow).cycles == 0

    assert tracker.update(state, records, tomorrow, Available(503)) == Available(1)


def test_restart_mid_day_continues_from_stored_count(state, records, today):
    records.put(DailyRecord(date=today, cycles=3))
    tracker = CycleBaselineTracker()

    assert tracker.update(state, records, today, Available(510)) == Available(3)
    assert state.baseline_count == 507
    assert tracker.update(state, records, today, Available(511)) == Available(4)


def test_zero_baseline_is_corrected(state, records, today):
    records.put(DailyRecord(date=today, cycles=3))
    state.baseline_date = today
    state.baseline_count = 0
    tracker = CycleBaselineTracker()

    result = tracker.update(state, records, today, Available(510))

    assert result == Available(3)
    assert state.baseline_count == 507


def test_missing_cycle_count_is_unavailable(state, records, today):
    tracker = CycleBaselineTracker()

    assert tracker.update(state, records, today, UNAVAILABLE) is UNAVAILABLE
    assert records.get(today) is None
    assert state.baseline_date is None


def test_increment_today_sticks_on_next_update(state, records, today):
    tracker = CycleBaselineTracker()
    tracker.update(state, records, today, Available(500))
    tracker.update(state, records, today, Available(502))

    assert tracker.increment_today(state, records, today, Available(502)) == 3
    assert records.get(today).cycles == 3
    assert tracker.update(state, records, today, Available(502)) == Available(3)


def test_counter_reset_clamps_cycles_today_to_zero(state, records, today):
    tracker = CycleBaselineTracker()
    tracker.update(state, records, today, Available(500))
    tracker.update(state, records, today, Available(502))

    # Firmware reset drops the lifetime counter below the baseline
    result = tracker.update(state, records, today, Available(10))

    assert result == Available(0)
    assert records.get(today).cycles == 0
    assert state.baseline_count == 500
