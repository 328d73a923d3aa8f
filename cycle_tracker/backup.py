"""
CSV backup and restore of daily records.

Exports the record store as two foreign-key-linked tables (ZDAILYCYCLE.csv
and ZCYCLEBREAKDOWN.csv) and rebuilds the store from them. Restore is a full
replacement: both tables are validated and staged in memory, then committed in
one transaction.
"""

import csv
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from cycle_tracker.clock import Clock
from cycle_tracker.models import DailyRecord

logger = logging.getLogger("CycleTracker.Backup")

# Dates are stored as seconds since this reference instant
REFERENCE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

DAILY_FILE_NAME = "ZDAILYCYCLE.csv"
BREAKDOWN_FILE_NAME = "ZCYCLEBREAKDOWN.csv"

DAILY_COLUMNS = [
    "Z_PK", "Z_ENT", "Z_OPT", "ZCYCLES", "ZDATE",
    "ZRAWCYCLES", "ZTIMEONBATTERY", "ZTIMEPLUGGEDIN", "ZTOTALMAHUSED",
]
BREAKDOWN_COLUMNS = [
    "Z_PK", "Z_ENT", "Z_OPT", "ZINDEX", "ZISPARTIAL",
    "Z2CYCLEBREAKDOWNS", "ZCOMPLETIONPERCENT", "ZMAHUSED", "ZID",
]

DAILY_REQUIRED = ["Z_PK", "ZDATE"]
BREAKDOWN_REQUIRED = ["ZMAHUSED", "ZCOMPLETIONPERCENT"]

# Column names the daily-record foreign key has been exported under
BREAKDOWN_KEY_CANDIDATES = [
    "Z2CYCLEBREAKDOWNS",
    "ZDAILYCYCLE",
    "Z1DAILYCYCLE",
    "ZDAILYCYCLEID",
    "ZDAILYCYCLES",
    "Z2DAILYCYCLES",
]

DAILY_ENTITY = "2"
BREAKDOWN_ENTITY = "16002"


class BackupFormatError(Exception):
    """Raised when backup files are empty, missing, or lack required columns."""

    EMPTY_FILE = "EMPTY_FILE"
    MISSING_DAILY_TABLE = "MISSING_DAILY_TABLE"
    MISSING_COLUMNS = "MISSING_COLUMNS"
    UNREADABLE_FILE = "UNREADABLE_FILE"

    def __init__(
        self,
        kind: str,
        file_name: Optional[str] = None,
        columns: Sequence[str] = (),
        reason: Optional[str] = None,
    ):
        self.kind = kind
        self.file_name = file_name
        self.columns = list(columns)

        if kind == self.EMPTY_FILE:
            message = f"CSV file is empty: {file_name}." if file_name else "CSV file is empty."
        elif kind == self.MISSING_DAILY_TABLE:
            message = f"Missing {DAILY_FILE_NAME} in the selected files."
        elif kind == self.UNREADABLE_FILE:
            message = f"Could not read {file_name} as UTF-8 CSV: {reason}."
        else:
            message = f"Missing columns in {file_name}: {', '.join(self.columns)}."
        super().__init__(message)


@dataclass(frozen=True)
class ImportResult:
    """Row counts reported by a restore."""

    inserted_daily: int
    inserted_breakdown: int
    skipped_daily: int
    skipped_breakdown: int

    def summary(self) -> str:
        return (
            f"Restored {self.inserted_daily} daily rows and {self.inserted_breakdown} breakdown rows.\n"
            f"Skipped {self.skipped_daily} daily rows and {self.skipped_breakdown} breakdown rows."
        )


@dataclass(frozen=True)
class _BreakdownRow:
    index: Optional[int]
    is_partial: bool
    completion_percent: float
    mah_used: float


def export_backup(records: Iterable[DailyRecord], directory, clock: Clock) -> Tuple[Path, Path]:
    """
    Write all records to ZDAILYCYCLE.csv and ZCYCLEBREAKDOWN.csv.

    Args:
        records: Daily records to export
        directory: Target directory (created if missing)
        clock: Clock whose time zone defines the start of each day

    Returns:
        Paths of the daily and breakdown files
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    ordered = sorted(records, key=lambda r: r.date)
    daily_rows = []
    breakdown_rows = []

    for pk, record in enumerate(ordered, start=1):
        seconds = (clock.start_of_day(record.date) - REFERENCE_EPOCH).total_seconds()
        daily_rows.append([
            str(pk),
            DAILY_ENTITY,
            "1",
            str(record.cycles),
            f"{seconds:.0f}",
            f"{record.raw_cycles:.12f}",
            f"{record.time_on_battery:.6f}",
            f"{record.time_plugged_in:.6f}",
            f"{record.total_mah_used:.6f}",
        ])

        for breakdown in sorted(record.breakdowns, key=lambda b: b.index):
            breakdown_rows.append([
                str(len(breakdown_rows) + 1),
                BREAKDOWN_ENTITY,
                "1",
                str(breakdown.index),
                "1" if breakdown.is_partial else "0",
                str(pk),
                f"{breakdown.completion_percent:.6f}",
                f"{breakdown.mah_used:.6f}",
                "",
            ])

    daily_path = directory / DAILY_FILE_NAME
    breakdown_path = directory / BREAKDOWN_FILE_NAME
    pd.DataFrame(daily_rows, columns=DAILY_COLUMNS).to_csv(
        daily_path, index=False, encoding="utf-8", lineterminator="\n"
    )
    pd.DataFrame(breakdown_rows, columns=BREAKDOWN_COLUMNS).to_csv(
        breakdown_path, index=False, encoding="utf-8", lineterminator="\n"
    )

    logger.info(
        f"Exported {len(daily_rows)} daily rows and {len(breakdown_rows)} "
        f"breakdown rows to {directory}"
    )
    return daily_path, breakdown_path


def restore_backup(paths: Iterable, store, clock: Clock) -> ImportResult:
    """
    Replace the store's contents with the records in a backup.

    Files are recognised by name (case-insensitive substring), not by order.
    Nothing is written unless both tables pass validation.

    Args:
        paths: Selected CSV files
        store: Record store to replace
        clock: Clock whose time zone defines the start of each day

    Returns:
        ImportResult with inserted and skipped counts per table

    Raises:
        BackupFormatError: Empty or undecodable file, no daily table, or missing
            required columns
    """
    daily_path = None
    breakdown_path = None
    for path in map(Path, paths):
        name = path.name.lower()
        if "zdailycycle" in name:
            daily_path = path
        elif "zcyclebreakdown" in name:
            breakdown_path = path

    if daily_path is None:
        raise BackupFormatError(BackupFormatError.MISSING_DAILY_TABLE)

    daily_df, daily_bad = _read_table(daily_path)
    _ensure_columns(daily_df, DAILY_REQUIRED, DAILY_FILE_NAME)

    breakdown_df = None
    breakdown_bad = 0
    if breakdown_path is not None:
        breakdown_df, breakdown_bad = _read_table(breakdown_path)
        _ensure_columns(breakdown_df, BREAKDOWN_REQUIRED, BREAKDOWN_FILE_NAME)

    records_by_day: Dict = {}
    day_by_pk: Dict[int, object] = {}
    skipped_daily = daily_bad

    for row in daily_df.to_dict("records"):
        pk = _int_value(row, "Z_PK")
        date_value = _float_value(row, "ZDATE")
        if pk is None or date_value is None or pk in day_by_pk:
            skipped_daily += 1
            continue

        try:
            instant = REFERENCE_EPOCH + timedelta(seconds=date_value)
            day = clock.day_of(instant.timestamp())
        except (OverflowError, ValueError, OSError):
            skipped_daily += 1
            continue

        if day in records_by_day:
            # Same calendar day exported twice; keep the first row, link breakdowns to it
            day_by_pk[pk] = day
            skipped_daily += 1
            continue

        records_by_day[day] = DailyRecord(
            date=day,
            cycles=max(0, _int_value(row, "ZCYCLES") or 0),
            raw_cycles=max(0.0, _float_value(row, "ZRAWCYCLES") or 0.0),
            total_mah_used=max(0.0, _float_value(row, "ZTOTALMAHUSED") or 0.0),
            time_on_battery=max(0.0, _float_value(row, "ZTIMEONBATTERY") or 0.0),
            time_plugged_in=max(0.0, _float_value(row, "ZTIMEPLUGGEDIN") or 0.0),
        )
        day_by_pk[pk] = day

    inserted_breakdown = 0
    skipped_breakdown = 0
    if breakdown_df is not None:
        key_column = breakdown_key_column(breakdown_df.columns)
        if key_column is None:
            logger.warning(
                f"{BREAKDOWN_FILE_NAME} has no daily-record key column; "
                "breakdowns will be redistributed by cycle count"
            )

        unlinked: List[_BreakdownRow] = []
        for row in breakdown_df.to_dict("records"):
            percent = _float_value(row, "ZCOMPLETIONPERCENT") or 0.0
            parsed = _BreakdownRow(
                index=_int_value(row, "ZINDEX"),
                is_partial=(_int_value(row, "ZISPARTIAL") or 0) != 0,
                completion_percent=min(100.0, max(0.0, percent)),
                mah_used=max(0.0, _float_value(row, "ZMAHUSED") or 0.0),
            )

            key = _int_value(row, key_column) if key_column else None
            day = day_by_pk.get(key) if key is not None else None
            if day is None:
                unlinked.append(parsed)
                continue

            records_by_day[day] = _attach(records_by_day[day], parsed)
            inserted_breakdown += 1

        if unlinked:
            ordered = [records_by_day[day] for day in sorted(records_by_day)]
            ordered, assigned = allocate_unlinked(unlinked, ordered)
            records_by_day = {record.date: record for record in ordered}
            inserted_breakdown += assigned
            logger.info(f"Redistributed {assigned} of {len(unlinked)} unlinked breakdown rows")

        skipped_breakdown = max(0, len(breakdown_df) + breakdown_bad - inserted_breakdown)

    store.replace_all(records_by_day[day] for day in sorted(records_by_day))

    result = ImportResult(
        inserted_daily=len(records_by_day),
        inserted_breakdown=inserted_breakdown,
        skipped_daily=skipped_daily,
        skipped_breakdown=skipped_breakdown,
    )
    logger.info(result.summary().replace("\n", " "))
    return result


def allocate_unlinked(
    rows: Sequence[_BreakdownRow], records: Sequence[DailyRecord]
) -> Tuple[List[DailyRecord], int]:
    """
    Attach breakdown rows that lost their daily-record key.

    If any record has a positive cycle count, each record (in date order) takes
    one row per cycle. Otherwise rows are split evenly in date order, with the
    remainder going to the earliest records. Whatever is left over goes to the
    latest record.

    Args:
        rows: Unlinked breakdown rows, in file order
        records: Records sorted by date

    Returns:
        Updated records (same order) and the number of rows assigned
    """
    records = list(records)
    if not rows or not records:
        return records, 0

    total_cycles = sum(max(0, r.cycles) for r in records)
    if total_cycles > 0:
        targets = [max(0, r.cycles) for r in records]
    else:
        per_day, remainder = divmod(len(rows), len(records))
        targets = [per_day + (1 if i < remainder else 0) for i in range(len(records))]

    cursor = 0
    for position, target in enumerate(targets):
        for _ in range(target):
            if cursor >= len(rows):
                break
            records[position] = _attach(records[position], rows[cursor])
            cursor += 1

    while cursor < len(rows):
        records[-1] = _attach(records[-1], rows[cursor])
        cursor += 1

    return records, cursor


def breakdown_key_column(columns: Iterable[str]) -> Optional[str]:
    """Return the first recognised daily-record foreign key column, if any."""
    present = set(columns)
    for candidate in BREAKDOWN_KEY_CANDIDATES:
        if candidate in present:
            return candidate
    return None


def _attach(record: DailyRecord, row: _BreakdownRow) -> DailyRecord:
    return record.with_breakdown(
        mah_used=row.mah_used,
        is_partial=row.is_partial,
        completion_percent=row.completion_percent,
        index=row.index,
    )


def _read_table(path: Path) -> Tuple[pd.DataFrame, int]:
    """
    Read a CSV table as strings.

    Fields are split on commas only; quote characters are kept as data.

    Returns:
        DataFrame with stripped column names, and the number of malformed
        lines (more fields than the header) that were dropped
    """
    bad_lines = []

    def _skip(line):
        bad_lines.append(line)
        return None

    try:
        df = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            index_col=False,
            encoding="utf-8-sig",
            engine="python",
            quoting=csv.QUOTE_NONE,
            on_bad_lines=_skip,
        )
    except pd.errors.EmptyDataError as e:
        raise BackupFormatError(BackupFormatError.EMPTY_FILE, path.name) from e
    except (UnicodeDecodeError, pd.errors.ParserError) as e:
        raise BackupFormatError(BackupFormatError.UNREADABLE_FILE, path.name, reason=str(e)) from e

    df.columns = [str(column).strip() for column in df.columns]
    df = df.fillna("")
    if bad_lines:
        logger.warning(f"Dropped {len(bad_lines)} malformed lines from {path.name}")
    return df, len(bad_lines)


def _ensure_columns(df: pd.DataFrame, required: Sequence[str], file_name: str):
    missing = [column for column in required if column not in df.columns]
    if missing:
        raise BackupFormatError(BackupFormatError.MISSING_COLUMNS, file_name, missing)


def _string_value(row: Dict, key: str) -> Optional[str]:
    value = str(row.get(key, "")).strip()
    return value or None


def _int_value(row: Dict, key: str) -> Optional[int]:
    value = _string_value(row, key)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _float_value(row: Dict, key: str) -> Optional[float]:
    value = _string_value(row, key)
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None
