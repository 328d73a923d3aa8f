from datetime import date, datetime

import pytest

from cycle_tracker.models import UNAVAILABLE, Available, DailyRecord, PowerMode, TimeRemaining
from cycle_tracker.projection import Projection, ProjectionCalculator

from conftest import LOCAL


def discharging(minutes):
    return Available(TimeRemaining(minutes=minutes, is_charging=False))


def test_time_remaining_labels(clock):
    calc = ProjectionCalculator(clock)

    empty = calc.time_remaining(discharging(90))
    full = calc.time_remaining(Available(TimeRemaining(minutes=30, is_charging=True)))

    assert empty.text == "Time to Empty: 1h 30m"
    assert full.text == "Time to Full: 30m"
    assert calc.time_remaining(UNAVAILABLE).is_available is False
    assert calc.time_remaining(discharging(0)).is_available is False


def test_time_to_threshold_scales_time_to_empty(clock):
    calc = ProjectionCalculator(clock, threshold_percent=10.0)

    # threshold = 500 mAh; (4000 - 500) / 4000 of 240 minutes = 210 minutes
    projection = calc.time_to_threshold(Available(4000), Available(5000), discharging(240))

    assert projection.seconds == pytest.approx(210 * 60)
    assert projection.text == "Time to 10% Charge: 3h 30m"


def test_time_to_threshold_unavailable_below_threshold_or_charging(clock):
    calc = ProjectionCalculator(clock, threshold_percent=10.0)

    below = calc.time_to_threshold(Available(400), Available(5000), discharging(20))
    charging = calc.time_to_threshold(
        Available(4000), Available(5000), Available(TimeRemaining(minutes=20, is_charging=True))
    )

    assert below.is_available is False
    assert charging.is_available is False


def test_next_cycle_prefers_historical_throughput(clock, today):
    calc = ProjectionCalculator(clock)
    record = DailyRecord(date=today, total_mah_used=1000.0, time_on_battery=1000.0)

    projection = calc.time_to_next_cycle(
        PowerMode.BATTERY, Available(3600), record, Available(4000), discharging(60)
    )

    assert projection.source == ProjectionCalculator.HISTORICAL
    assert projection.seconds == pytest.approx(3600)
    assert projection.status == Projection.LIVE


def test_next_cycle_falls_back_to_instantaneous(clock, today):
    calc = ProjectionCalculator(clock)

    # 3600 mAh over 60 minutes = 1 mAh/s
    projection = calc.time_to_next_cycle(
        PowerMode.BATTERY, Available(1800), DailyRecord(date=today), Available(3600), discharging(60)
    )

    assert projection.source == ProjectionCalculator.INSTANTANEOUS
    assert projection.seconds == pytest.approx(1800)


def test_next_cycle_paused_on_external_power_shows_last_value(clock, today):
    calc = ProjectionCalculator(clock)
    record = DailyRecord(date=today, total_mah_used=1000.0, time_on_battery=1000.0)
    calc.time_to_next_cycle(PowerMode.BATTERY, Available(3600), record, Available(4000), UNAVAILABLE)

    paused = calc.time_to_next_cycle(PowerMode.EXTERNAL, Available(3600), record, Available(4000), UNAVAILABLE)

    assert paused.status == Projection.PAUSED
    assert paused.text == "Time Until Next Cycle: 1h (Paused)"


def test_next_cycle_without_estimate_is_unavailable_then_calculating(clock, today):
    calc = ProjectionCalculator(clock)

    first = calc.time_to_next_cycle(
        PowerMode.BATTERY, Available(3600), None, Available(4000), UNAVAILABLE
    )
    assert first.is_available is False
    assert first.text == "Time Until Next Cycle: —"

    record = DailyRecord(date=today, total_mah_used=1000.0, time_on_battery=1000.0)
    calc.time_to_next_cycle(PowerMode.BATTERY, Available(3600), record, Available(4000), UNAVAILABLE)
    calculating = calc.time_to_next_cycle(
        PowerMode.BATTERY, UNAVAILABLE, record, Available(4000), UNAVAILABLE
    )
    assert calculating.status == Projection.CALCULATING
    assert calculating.text.endswith("(Calculating)")


def test_cycles_per_day_needed(clock):
    calc = ProjectionCalculator(clock, target_total_cycles=1000, deadline=date(2026, 6, 1))
    now = datetime(2026, 5, 22, 0, 0, tzinfo=LOCAL)

    result = calc.cycles_per_day_needed(Available(900), now)

    assert result == Available(10.0)


def test_cycles_per_day_unavailable_on_or_after_deadline(clock):
    calc = ProjectionCalculator(clock, deadline=date(2026, 6, 1))

    assert calc.cycles_per_day_needed(Available(900), datetime(2026, 5, 31, 12, tzinfo=LOCAL)) is UNAVAILABLE
    assert calc.cycles_per_day_needed(Available(900), datetime(2026, 6, 2, tzinfo=LOCAL)) is UNAVAILABLE
    assert calc.cycles_per_day_needed(UNAVAILABLE) is UNAVAILABLE
