from dataclasses import replace
from datetime import date

import pytest

from cycle_tracker.database import PersistenceError, RecordStore
from cycle_tracker.models import CycleBreakdown, DailyRecord


@pytest.fixture
def store(tmp_path):
    return RecordStore(str(tmp_path / "history" / "cycle_history.db"))


def test_put_and_get_round_trip(store):
    record = DailyRecord(
        date=date(2026, 3, 10),
        cycles=2,
        raw_cycles=1.5,
        total_mah_used=7500.0,
        time_on_battery=3600.0,
        time_plugged_in=60.0,
        breakdowns=(CycleBreakdown(index=1, mah_used=5000.0, is_partial=True, completion_percent=100.0),),
    )

    store.put(record)

    assert store.get(date(2026, 3, 10)) == record
    assert store.get(date(2026, 3, 11)) is None


def test_put_updates_totals_and_appends_breakdowns(store):
    day = date(2026, 3, 10)
    first = DailyRecord(date=day, cycles=1).with_breakdown(1000.0, False, 20.0)
    store.put(first)

    second = first.with_breakdown(500.0, True, 10.0)
    store.put(replace(second, cycles=2))

    stored = store.get(day)
    assert stored.cycles == 2
    assert [b.index for b in stored.breakdowns] == [1, 2]


def test_all_records_sorted_by_day(store):
    for day in (date(2026, 3, 12), date(2026, 3, 10), date(2026, 3, 11)):
        store.put(DailyRecord(date=day))

    assert [r.date for r in store.all_records()] == [
        date(2026, 3, 10), date(2026, 3, 11), date(2026, 3, 12)
    ]


def test_replace_all_and_delete_all_cascade(store):
    store.put(DailyRecord(date=date(2026, 1, 1)).with_breakdown(100.0, False, 2.0))

    stored = store.replace_all([DailyRecord(date=date(2026, 2, 1), cycles=3)])

    assert stored == 1
    assert [r.date for r in store.all_records()] == [date(2026, 2, 1)]

    assert store.delete_all() == 1
    assert store.all_records() == []
    assert store.get_daily_frame().empty


def test_daily_frame_counts_breakdowns(store):
    day = date(2026, 3, 10)
    store.put(DailyRecord(date=day, cycles=1, total_mah_used=900.0)
              .with_breakdown(400.0, False, 8.0)
              .with_breakdown(500.0, False, 10.0))

    df = store.get_daily_frame()

    assert list(df["breakdown_count"]) == [2]
    assert df["date"].iloc[0].date() == day
    assert df["total_mah_used"].iloc[0] == pytest.approx(900.0)


def test_location_is_database_path(store, tmp_path):
    assert store.location == (tmp_path / "history" / "cycle_history.db").resolve()
    assert store.location.exists()


def test_unreadable_store_raises_persistence_error(tmp_path):
    folder = tmp_path / "not_a_db"
    folder.mkdir()

    with pytest.raises(PersistenceError):
        RecordStore(str(folder))


def test_put_many_writes_every_day(store):
    store.put(DailyRecord(date=date(2026, 3, 9), cycles=1))

    store.put_many([
        DailyRecord(date=date(2026, 3, 9), cycles=1).with_breakdown(1000.0, True, 20.0),
        DailyRecord(date=date(2026, 3, 10)).with_breakdown(200.0, True, 4.0),
    ])

    assert store.get(date(2026, 3, 9)).cycles == 1
    assert len(store.get(date(2026, 3, 9)).breakdowns) == 1
    assert store.get(date(2026, 3, 10)).breakdowns[0].mah_used == 200.0
