"""
History summaries for Cycle Tracker.

Aggregates the per-day records into totals and per-day detail for the
history window and the status command.
"""

import logging
from typing import Dict, List, Optional

import pandas as pd

from cycle_tracker.formatting import format_clock_duration
from cycle_tracker.models import DailyRecord

SUMMED_COLUMNS = ["cycles", "raw_cycles", "total_mah_used", "time_on_battery", "time_plugged_in"]


class HistoryAnalyzer:
    """Builds summaries of the daily record history."""

    def __init__(self, store):
        """
        Initialize history analyzer.

        Args:
            store: Record store providing get_daily_frame() and get()
        """
        self.store = store
        self.logger = logging.getLogger("CycleTracker.History")

    def daily_frame(self, days: Optional[int] = None) -> pd.DataFrame:
        """
        Get daily totals, optionally limited to the most recent days.

        Args:
            days: Number of most recent recorded days to keep

        Returns:
            DataFrame sorted oldest first
        """
        df = self.store.get_daily_frame()
        if days is not None and days > 0:
            df = df.tail(days).reset_index(drop=True)
        return df

    def summary(self, days: Optional[int] = None) -> Dict:
        """
        Summarize totals across days.

        Args:
            days: Number of most recent recorded days to include (all if None)

        Returns:
            Dictionary with day count, totals, averages and the busiest day
        """
        df = self.daily_frame(days)
        return summarize_frame(df)

    def day_detail(self, day) -> Optional[Dict]:
        """
        Get one day's totals and its cycle breakdowns.

        Args:
            day: datetime.date to look up

        Returns:
            Dictionary of values, or None if no record exists
        """
        record = self.store.get(day)
        if record is None:
            return None
        return record_detail(record)


def summarize_frame(df: pd.DataFrame) -> Dict:
    """Totals and averages for a daily frame (empty frame gives zeros)."""
    if df.empty:
        return {
            "days": 0,
            "first_day": None,
            "last_day": None,
            **{f"total_{column}": 0.0 for column in SUMMED_COLUMNS},
            "average_cycles_per_day": 0.0,
            "busiest_day": None,
            "busiest_day_cycles": 0,
        }

    totals = df[SUMMED_COLUMNS].sum()
    busiest = df.loc[df["cycles"].idxmax()]

    return {
        "days": int(len(df)),
        "first_day": df["date"].min().date(),
        "last_day": df["date"].max().date(),
        **{f"total_{column}": float(totals[column]) for column in SUMMED_COLUMNS},
        "average_cycles_per_day": float(df["cycles"].mean()),
        "busiest_day": busiest["date"].date(),
        "busiest_day_cycles": int(busiest["cycles"]),
    }


def record_detail(record: DailyRecord) -> Dict:
    breakdowns: List[Dict] = [
        {
            "index": b.index,
            "mah_used": b.mah_used,
            "is_partial": b.is_partial,
            "completion_percent": b.completion_percent,
        }
        for b in record.breakdowns
    ]
    return {
        "date": record.date,
        "cycles": record.cycles,
        "raw_cycles": record.raw_cycles,
        "total_mah_used": record.total_mah_used,
        "time_on_battery": format_clock_duration(record.time_on_battery),
        "time_plugged_in": format_clock_duration(record.time_plugged_in),
        "breakdowns": breakdowns,
    }
