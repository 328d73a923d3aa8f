import json
from datetime import date

import pytest

from cycle_tracker.database import MemoryRecordStore, PersistenceError
from cycle_tracker.engine import CycleEngine
from cycle_tracker.models import DailyRecord, PowerMode
from cycle_tracker.projection import Projection, ProjectionCalculator
from cycle_tracker.state import MemoryStateStore, StateError
from cycle_tracker.telemetry import HealthRefresher


class FailingRecordStore(MemoryRecordStore):
    def __init__(self):
        super().__init__()
        self.fail = True

    def put(self, record):
        if self.fail:
            raise PersistenceError("disk full")
        super().put(record)


class FlakyBatchStore(MemoryRecordStore):
    def __init__(self, failures=0):
        super().__init__()
        self.failures = failures

    def put_many(self, records):
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("database is locked")
        super().put_many(records)


class FailingStateStore(MemoryStateStore):
    def save(self, state):
        raise StateError("read-only volume")


def test_tick_builds_snapshot(engine, records, state_store, today):
    snapshot = engine.tick()

    assert snapshot.cycle_count == 500
    assert snapshot.cycles_today == 0
    assert snapshot.mah_to_next_cycle == 5000
    assert snapshot.current_capacity == 4000
    assert snapshot.max_capacity == 5000
    assert snapshot.power_mode is PowerMode.BATTERY
    assert snapshot.cycles_per_day_needed == pytest.approx(500 / 82)
    assert snapshot.persistence_errors == []
    assert snapshot.lines[0] == "Cycles: 500 (50.00%)"
    assert "Time to Empty: 4h" in snapshot.lines
    assert records.get(today).cycles == 0
    assert state_store.save_count == 1


def test_ticks_accumulate_usage_and_discharge(engine, telemetry, clock, records, today):
    engine.tick()
    clock.advance(seconds=5)
    telemetry.current = 3900
    snapshot = engine.tick()

    assert snapshot.mah_to_next_cycle == 4900
    assert snapshot.total_mah_used_today == pytest.approx(100)
    assert records.get(today).time_on_battery == pytest.approx(5)
    assert records.get(today).raw_cycles == pytest.approx(100 / 5000)


def test_counter_increment_shows_in_cycles_today(engine, telemetry, clock, records, today):
    engine.tick()
    telemetry.current = 1000
    clock.advance(seconds=5)
    engine.tick()

    telemetry.cycles = 501
    clock.advance(seconds=5)
    snapshot = engine.tick()

    assert snapshot.cycles_today == 1
    assert snapshot.mah_to_next_cycle == 5000
    assert len(records.get(today).breakdowns) == 1


def test_unavailable_telemetry_shows_placeholders(engine, telemetry):
    telemetry.cycles = None
    telemetry.current = None
    telemetry.design = None
    telemetry.minutes = None

    snapshot = engine.tick()

    assert snapshot.cycle_count is None
    assert snapshot.cycles_today is None
    assert snapshot.mah_to_next_cycle is None
    assert snapshot.time_to_next_cycle.status == Projection.UNAVAILABLE
    assert "Capacity: Unknown" in snapshot.lines
    assert "mAh to Next Cycle: —" in snapshot.lines


def test_store_failure_is_reported_and_retried(telemetry, clock, today):
    records = FailingRecordStore()
    engine = CycleEngine(telemetry, records, MemoryStateStore(), clock=clock,
                         projections=ProjectionCalculator(clock))

    snapshot = engine.tick()

    assert snapshot.cycles_today is None
    assert any("cycle baseline" in error for error in snapshot.persistence_errors)
    assert engine.state.baseline_date is None

    records.fail = False
    clock.advance(seconds=5)
    snapshot = engine.tick()

    assert snapshot.persistence_errors == []
    assert snapshot.cycles_today == 0
    assert engine.state.baseline_date == today


def test_failed_midnight_breakdown_is_written_once(telemetry, clock, today):
    records = FlakyBatchStore()
    engine = CycleEngine(telemetry, records, MemoryStateStore(), clock=clock,
                         projections=ProjectionCalculator(clock))
    engine.tick()
    clock.advance(hours=14, minutes=59)
    telemetry.current = 3000
    engine.tick()

    # Counter increments on the first tick after midnight while the write fails
    records.failures = 1
    clock.advance(minutes=1, seconds=5)
    telemetry.current = 2900
    telemetry.cycles = 501
    snapshot = engine.tick()

    assert any("discharge estimator" in error for error in snapshot.persistence_errors)
    assert records.get(today).breakdowns == ()

    clock.advance(seconds=5)
    telemetry.current = 2800
    snapshot = engine.tick()

    assert snapshot.persistence_errors == []
    breakdowns = records.get(today).breakdowns
    assert len(breakdowns) == 1
    assert breakdowns[0].mah_used == pytest.approx(1000)
    assert breakdowns[0].is_partial is True
    assert snapshot.mah_to_next_cycle == 5000

    clock.advance(seconds=5)
    engine.tick()
    assert len(records.get(today).breakdowns) == 1


def test_state_save_failure_is_reported(telemetry, records, clock):
    engine = CycleEngine(telemetry, records, FailingStateStore(), clock=clock,
                         projections=ProjectionCalculator(clock))

    snapshot = engine.tick()

    assert snapshot.persistence_errors == ["read-only volume"]
    assert snapshot.cycle_count == 500


def test_state_survives_restart(telemetry, records, clock, today):
    state_store = MemoryStateStore()
    first = CycleEngine(telemetry, records, state_store, clock=clock)
    first.tick()
    telemetry.current = 3800
    clock.advance(seconds=5)
    first.tick()

    second = CycleEngine(telemetry, records, state_store, clock=clock)
    telemetry.current = 3700
    clock.advance(seconds=5)
    snapshot = second.tick()

    assert snapshot.mah_to_next_cycle == 4700
    assert snapshot.total_mah_used_today == pytest.approx(300)


def test_legacy_cycles_imported_once(tmp_path, telemetry, clock):
    legacy = tmp_path / "legacy_cycles.json"
    legacy.write_text(json.dumps({
        "2026-03-01": 2,
        "2026-03-02": 1,
        "2026-03-03": -4,
        "garbage": 3,
    }), encoding="utf-8")
    records = MemoryRecordStore([DailyRecord(date=date(2026, 3, 2), cycles=5)])
    state_store = MemoryStateStore()
    engine = CycleEngine(telemetry, records, state_store, clock=clock, legacy_cycles_path=legacy)

    engine.tick()

    assert records.get(date(2026, 3, 1)).cycles == 2
    assert records.get(date(2026, 3, 2)).cycles == 5
    assert records.get(date(2026, 3, 3)) is None
    assert engine.state.legacy_migration_done is True

    records.delete_all()
    restarted = CycleEngine(telemetry, records, state_store, clock=clock, legacy_cycles_path=legacy)
    restarted.tick()
    assert records.get(date(2026, 3, 1)) is None


def test_missing_or_malformed_legacy_file_disables_migration(tmp_path, engine, telemetry, records, clock):
    engine.tick()
    assert engine.state.legacy_migration_done is True

    broken = tmp_path / "legacy_cycles.json"
    broken.write_text("[1, 2", encoding="utf-8")
    other = CycleEngine(telemetry, records, MemoryStateStore(), clock=clock, legacy_cycles_path=broken)
    snapshot = other.tick()

    assert other.state.legacy_migration_done is True
    assert snapshot.persistence_errors == []


def test_increment_today_cycle(engine, records, state_store, today):
    engine.tick()

    assert engine.increment_today_cycle() == 1
    assert records.get(today).cycles == 1
    assert engine.tick().cycles_today == 1
    assert state_store.load().baseline_count == 499


def test_backup_through_engine(tmp_path, engine, records, today):
    engine.tick()
    records.put(DailyRecord(date=date(2026, 3, 1), cycles=4))

    daily_path, breakdown_path = engine.export_backup(tmp_path)
    records.delete_all()
    result = engine.restore_backup([daily_path, breakdown_path])

    assert result.inserted_daily == 2
    assert [r.date for r in engine.history()] == [date(2026, 3, 1), today]


def test_official_health_is_fetched_in_background(telemetry, records, clock):
    telemetry.official = 92
    refresher = HealthRefresher(telemetry.official_health_percent)
    engine = CycleEngine(telemetry, records, MemoryStateStore(), clock=clock,
                         health_refresher=refresher)

    first = engine.tick()
    refresher.join(timeout=5)
    clock.advance(seconds=5)
    second = engine.tick()
    clock.advance(seconds=5)
    engine.tick()
    refresher.join(timeout=5)

    assert first.official_health_percent is None
    assert second.official_health_percent == 92
    assert "Battery Health: Normal | 92%" in second.lines
    assert telemetry.official_calls == 1
