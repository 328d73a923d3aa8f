from datetime import timedelta

import pytest

from cycle_tracker.discharge import DischargeEstimator
from cycle_tracker.models import (
    UNAVAILABLE,
    Available,
    Capacity,
    PowerMode,
    TelemetrySample,
)


def sample(current, cycles=500, design=4000, maximum=4000):
    return TelemetrySample(
        cycle_count=Available(cycles) if cycles is not None else UNAVAILABLE,
        capacity=Available(Capacity(current=current, maximum=maximum)),
        design_capacity=Available(design) if design is not None else UNAVAILABLE,
        power_mode=PowerMode.BATTERY,
    )


def test_capacity_drops_reduce_charge_to_next_cycle(state, records, today):
    estimator = DischargeEstimator()

    results = [
        estimator.update(state, records, today, sample(current))
        for current in (4000, 3900, 3800)
    ]

    assert results == [Available(4000), Available(3900), Available(3800)]
    assert state.discharged_since_last_cycle == pytest.approx(200)


def test_charging_does_not_add_discharge(state, records, today):
    estimator = DischargeEstimator()
    for current in (3000, 2900, 3500, 3400):
        estimator.update(state, records, today, sample(current))

    # 100 + 0 (charge) + 100
    assert state.discharged_since_last_cycle == pytest.approx(200)


def test_counter_increment_resets_and_records_breakdown(state, records, today):
    estimator = DischargeEstimator()
    estimator.update(state, records, today, sample(4000, cycles=500))
    estimator.update(state, records, today, sample(1000, cycles=500))

    result = estimator.update(state, records, today, sample(900, cycles=501))

    assert result == Available(4000)
    assert state.discharged_since_last_cycle == 0
    assert state.cycle_day_mah == 0
    breakdowns = records.get(today).breakdowns
    assert len(breakdowns) == 1
    assert breakdowns[0].index == 1
    assert breakdowns[0].mah_used == pytest.approx(3000)
    assert breakdowns[0].completion_percent == pytest.approx(75.0)
    assert breakdowns[0].is_partial is False


def test_cycle_spanning_midnight_is_split_into_partials(state, records, today):
    estimator = DischargeEstimator()
    estimator.update(state, records, today, sample(4000))
    estimator.update(state, records, today, sample(3000))

    tomorrow = today + timedelta(days=1)
    estimator.update(state, records, tomorrow, sample(2500))
    assert state.cycle_started_previous_day is True

    estimator.update(state, records, tomorrow, sample(2000, cycles=501))

    yesterday_part = records.get(today).breakdowns
    today_part = records.get(tomorrow).breakdowns
    assert [b.mah_used for b in yesterday_part] == [pytest.approx(1000)]
    assert yesterday_part[0].is_partial is True
    assert [b.mah_used for b in today_part] == [pytest.approx(500)]
    assert today_part[0].is_partial is True
    assert state.cycle_started_previous_day is False


def test_missing_design_capacity_is_unavailable_and_leaves_state(state, records, today):
    estimator = DischargeEstimator()

    result = estimator.update(state, records, today, sample(4000, design=None))

    assert result is UNAVAILABLE
    assert state.last_capacity_for_cycle is None
    assert records.get(today) is None


def test_charge_to_next_cycle_never_negative(state, records, today):
    estimator = DischargeEstimator()
    estimator.update(state, records, today, sample(4000, design=1000))
    result = estimator.update(state, records, today, sample(2500, design=1000))

    assert result == Available(0)
