"""
Daily record storage for Cycle Tracker using SQLite.

Handles all database operations including:
- Creating and managing the SQLite database
- Fetching and upserting one DailyRecord per calendar day
- Replacing the whole table in one transaction (backup restore)
- Loading the history into pandas for summaries and plots
"""

import logging
import sqlite3
import threading
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from cycle_tracker.models import CycleBreakdown, DailyRecord


class PersistenceError(Exception):
    """Raised when the record store cannot be read or written."""


class RecordStore:
    """Thread-safe SQLite store of daily records and their cycle breakdowns."""

    def __init__(self, db_path: str = "data/cycle_history.db"):
        """
        Initialize the database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.lock = threading.Lock()
        self.logger = logging.getLogger("CycleTracker.Database")

        # Ensure data directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Initialize database schema
        self._init_db()

    @property
    def location(self) -> Optional[Path]:
        """On-disk location of the store, for export and display."""
        return self.db_path.resolve()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self):
        """Create database tables if they don't exist."""
        with self.lock:
            try:
                conn = self._connect()
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS daily_cycles (
                        day TEXT PRIMARY KEY,
                        cycles INTEGER NOT NULL DEFAULT 0,
                        raw_cycles REAL NOT NULL DEFAULT 0,
                        total_mah_used REAL NOT NULL DEFAULT 0,
                        time_on_battery REAL NOT NULL DEFAULT 0,
                        time_plugged_in REAL NOT NULL DEFAULT 0
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS cycle_breakdowns (
                        day TEXT NOT NULL REFERENCES daily_cycles(day) ON DELETE CASCADE,
                        idx INTEGER NOT NULL,
                        mah_used REAL NOT NULL,
                        is_partial INTEGER NOT NULL,
                        completion_percent REAL NOT NULL,
                        PRIMARY KEY (day, idx)
                    )
                """)

                conn.commit()
                conn.close()

            except sqlite3.Error as e:
                raise PersistenceError(f"Could not initialize {self.db_path}: {e}") from e

    def get(self, day: date) -> Optional[DailyRecord]:
        """
        Fetch the record for a calendar day.

        Args:
            day: Calendar day

        Returns:
            DailyRecord, or None if the day has no record yet
        """
        with self.lock:
            try:
                conn = self._connect()
                try:
                    return self._fetch(conn, day.isoformat())
                finally:
                    conn.close()

            except sqlite3.Error as e:
                raise PersistenceError(f"Error fetching record for {day}: {e}") from e

    def put(self, record: DailyRecord):
        """
        Insert or replace the record for its day, breakdowns included.

        Args:
            record: DailyRecord to store
        """
        with self.lock:
            try:
                conn = self._connect()
                try:
                    with conn:
                        self._write(conn, record)
                finally:
                    conn.close()

            except sqlite3.Error as e:
                raise PersistenceError(f"Error storing record for {record.date}: {e}") from e

    def put_many(self, records: Iterable[DailyRecord]):
        """
        Store several records in one transaction.

        Either every record is written or none is.

        Args:
            records: Records to store, at most one per day
        """
        records = list(records)
        with self.lock:
            try:
                conn = self._connect()
                try:
                    with conn:
                        for record in records:
                            self._write(conn, record)
                finally:
                    conn.close()

            except sqlite3.Error as e:
                days = ", ".join(str(record.date) for record in records)
                raise PersistenceError(f"Error storing records for {days}: {e}") from e

    def all_records(self) -> List[DailyRecord]:
        """
        Get every record, oldest day first.

        Returns:
            List of DailyRecord
        """
        with self.lock:
            try:
                conn = self._connect()
                try:
                    days = [row[0] for row in conn.execute(
                        "SELECT day FROM daily_cycles ORDER BY day ASC"
                    )]
                    return [self._fetch(conn, day) for day in days]
                finally:
                    conn.close()

            except sqlite3.Error as e:
                raise PersistenceError(f"Error listing records: {e}") from e

    def delete_all(self) -> int:
        """
        Delete every record and its breakdowns.

        Returns:
            Number of daily records deleted
        """
        with self.lock:
            try:
                conn = self._connect()
                try:
                    with conn:
                        cursor = conn.execute("DELETE FROM daily_cycles")
                        deleted = cursor.rowcount
                finally:
                    conn.close()

                self.logger.info(f"Deleted {deleted} daily records")
                return deleted

            except sqlite3.Error as e:
                raise PersistenceError(f"Error deleting records: {e}") from e

    def replace_all(self, records: Iterable[DailyRecord]) -> int:
        """
        Replace the whole table with records in a single transaction.

        Either every record is stored or the previous contents are kept.

        Args:
            records: Records to store

        Returns:
            Number of records stored
        """
        records = list(records)
        with self.lock:
            try:
                conn = self._connect()
                try:
                    with conn:
                        conn.execute("DELETE FROM daily_cycles")
                        for record in records:
                            self._write(conn, record)
                finally:
                    conn.close()

                self.logger.info(f"Replaced store contents with {len(records)} daily records")
                return len(records)

            except sqlite3.Error as e:
                raise PersistenceError(f"Error replacing records: {e}") from e

    def get_daily_frame(self) -> pd.DataFrame:
        """
        Get the daily totals as a DataFrame, oldest day first.

        Returns:
            pandas DataFrame with one row per day and a datetime 'date' column
        """
        with self.lock:
            try:
                conn = self._connect()
                try:
                    df = pd.read_sql_query(
                        """
                        SELECT d.day AS date, d.cycles, d.raw_cycles, d.total_mah_used,
                               d.time_on_battery, d.time_plugged_in,
                               COUNT(b.idx) AS breakdown_count
                        FROM daily_cycles d
                        LEFT JOIN cycle_breakdowns b ON b.day = d.day
                        GROUP BY d.day
                        ORDER BY d.day ASC
                        """,
                        conn,
                    )
                finally:
                    conn.close()

                df["date"] = pd.to_datetime(df["date"])
                return df

            except sqlite3.Error as e:
                raise PersistenceError(f"Error querying daily totals: {e}") from e

    def _fetch(self, conn: sqlite3.Connection, day: str) -> Optional[DailyRecord]:
        row = conn.execute(
            """
            SELECT day, cycles, raw_cycles, total_mah_used, time_on_battery, time_plugged_in
            FROM daily_cycles WHERE day = ?
            """,
            (day,),
        ).fetchone()

        if row is None:
            return None

        breakdowns = tuple(
            CycleBreakdown(
                index=idx,
                mah_used=mah_used,
                is_partial=bool(is_partial),
                completion_percent=completion,
            )
            for idx, mah_used, is_partial, completion in conn.execute(
                """
                SELECT idx, mah_used, is_partial, completion_percent
                FROM cycle_breakdowns WHERE day = ? ORDER BY idx ASC
                """,
                (day,),
            )
        )

        return DailyRecord(
            date=date.fromisoformat(row[0]),
            cycles=row[1],
            raw_cycles=row[2],
            total_mah_used=row[3],
            time_on_battery=row[4],
            time_plugged_in=row[5],
            breakdowns=breakdowns,
        )

    def _write(self, conn: sqlite3.Connection, record: DailyRecord):
        day = record.date.isoformat()
        conn.execute(
            """
            INSERT INTO daily_cycles (
                day, cycles, raw_cycles, total_mah_used, time_on_battery, time_plugged_in
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(day) DO UPDATE SET
                cycles = excluded.cycles,
                raw_cycles = excluded.raw_cycles,
                total_mah_used = excluded.total_mah_used,
                time_on_battery = excluded.time_on_battery,
                time_plugged_in = excluded.time_plugged_in
            """,
            (
                day,
                record.cycles,
                record.raw_cycles,
                record.total_mah_used,
                record.time_on_battery,
                record.time_plugged_in,
            ),
        )
        # Breakdowns are append-only, so existing (day, idx) rows are left untouched
        conn.executemany(
            """
            INSERT OR IGNORE INTO cycle_breakdowns (
                day, idx, mah_used, is_partial, completion_percent
            ) VALUES (?, ?, ?, ?, ?)
            """,
            [
                (day, b.index, b.mah_used, 1 if b.is_partial else 0, b.completion_percent)
                for b in record.breakdowns
            ],
        )

    def close(self):
        """Close database connections (cleanup method)."""
        # SQLite connections are opened/closed per operation
        # This method exists for API consistency
        pass


class MemoryRecordStore:
    """Dictionary-backed record store with the same interface as RecordStore."""

    def __init__(self, records: Optional[Iterable[DailyRecord]] = None):
        self.records: Dict[date, DailyRecord] = {}
        for record in records or ():
            self.records[record.date] = record

    @property
    def location(self) -> Optional[Path]:
        return None

    def get(self, day: date) -> Optional[DailyRecord]:
        return self.records.get(day)

    def put(self, record: DailyRecord):
        self.records[record.date] = record

    def put_many(self, records: Iterable[DailyRecord]):
        for record in list(records):
            self.records[record.date] = record

    def all_records(self) -> List[DailyRecord]:
        return [self.records[day] for day in sorted(self.records)]

    def delete_all(self) -> int:
        deleted = len(self.records)
        self.records.clear()
        return deleted

    def replace_all(self, records: Iterable[DailyRecord]) -> int:
        self.records = {record.date: record for record in records}
        return len(self.records)

    def get_daily_frame(self) -> pd.DataFrame:
        rows = [
            {
                "date": pd.Timestamp(r.date),
                "cycles": r.cycles,
                "raw_cycles": r.raw_cycles,
                "total_mah_used": r.total_mah_used,
                "time_on_battery": r.time_on_battery,
                "time_plugged_in": r.time_plugged_in,
                "breakdown_count": len(r.breakdowns),
            }
            for r in self.all_records()
        ]
        return pd.DataFrame(rows, columns=[
            "date", "cycles", "raw_cycles", "total_mah_used",
            "time_on_battery", "time_plugged_in", "breakdown_count",
        ])

    def close(self):
        pass
