from datetime import date

import pytest

from cycle_tracker.database import MemoryRecordStore
from cycle_tracker.history import HistoryAnalyzer
from cycle_tracker.models import DailyRecord
from cycle_tracker.plotter import CyclePlotter


@pytest.fixture
def store():
    return MemoryRecordStore([
        DailyRecord(date=date(2026, 3, 8), cycles=1, raw_cycles=1.2, total_mah_used=6000.0,
                    time_on_battery=3600.0, time_plugged_in=100.0),
        DailyRecord(date=date(2026, 3, 9), cycles=3, raw_cycles=2.9, total_mah_used=14500.0,
                    time_on_battery=7200.0),
        DailyRecord(date=date(2026, 3, 10), cycles=0, raw_cycles=0.1, total_mah_used=500.0)
        .with_breakdown(500.0, True, 10.0),
    ])


def test_summary_totals(store):
    summary = HistoryAnalyzer(store).summary()

    assert summary["days"] == 3
    assert summary["first_day"] == date(2026, 3, 8)
    assert summary["last_day"] == date(2026, 3, 10)
    assert summary["total_cycles"] == 4
    assert summary["total_raw_cycles"] == pytest.approx(4.2)
    assert summary["total_total_mah_used"] == pytest.approx(21000.0)
    assert summary["total_time_on_battery"] == pytest.approx(10800.0)
    assert summary["total_time_plugged_in"] == pytest.approx(100.0)
    assert summary["busiest_day"] == date(2026, 3, 9)
    assert summary["busiest_day_cycles"] == 3


def test_summary_of_recent_days(store):
    summary = HistoryAnalyzer(store).summary(days=2)

    assert summary["days"] == 2
    assert summary["total_cycles"] == 3
    assert summary["average_cycles_per_day"] == pytest.approx(1.5)


def test_summary_of_empty_store():
    summary = HistoryAnalyzer(MemoryRecordStore()).summary()

    assert summary["days"] == 0
    assert summary["total_cycles"] == 0.0
    assert summary["busiest_day"] is None


def test_day_detail(store):
    analyzer = HistoryAnalyzer(store)

    detail = analyzer.day_detail(date(2026, 3, 10))

    assert detail["breakdowns"] == [
        {"index": 1, "mah_used": 500.0, "is_partial": True, "completion_percent": 10.0}
    ]
    assert detail["time_on_battery"] == "0h 00m 00s"
    assert analyzer.day_detail(date(2020, 1, 1)) is None


def test_plot_export(tmp_path, store):
    plotter = CyclePlotter(store)

    path = plotter.export_png(plotter.generate_figure(days=7), str(tmp_path / "cycles.png"))

    assert (tmp_path / "cycles.png").stat().st_size > 0
    assert path == str(tmp_path / "cycles.png")


def test_plot_without_data(tmp_path):
    plotter = CyclePlotter(MemoryRecordStore())

    plotter.export_png(plotter.generate_figure(), str(tmp_path / "empty.png"))

    assert (tmp_path / "empty.png").exists()
