"""
Accounting engine for Cycle Tracker.

One call to CycleEngine.tick() reads a telemetry sample, runs the cycle
baseline tracker, discharge estimator, projection calculator and daily usage
accumulator against the record and state stores, and returns a StatusSnapshot
for display. All calls must come from a single thread.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional

from cycle_tracker.backup import ImportResult, export_backup, restore_backup
from cycle_tracker.baseline import CycleBaselineTracker
from cycle_tracker.clock import Clock
from cycle_tracker.database import PersistenceError
from cycle_tracker.discharge import DischargeEstimator
from cycle_tracker.formatting import status_lines
from cycle_tracker.models import (
    UNAVAILABLE,
    DailyRecord,
    PowerMode,
    reading,
    value_or,
)
from cycle_tracker.projection import Projection, ProjectionCalculator
from cycle_tracker.state import ScalarState
from cycle_tracker.telemetry import HealthRefresher, TelemetrySource
from cycle_tracker.usage import DailyUsageAccumulator


@dataclass
class StatusSnapshot:
    """Derived display values published after each tick."""

    timestamp: datetime
    power_mode: PowerMode = PowerMode.UNKNOWN
    cycle_count: Optional[int] = None
    health_text: Optional[str] = None
    official_health_percent: Optional[int] = None
    current_capacity: Optional[int] = None
    max_capacity: Optional[int] = None
    design_capacity: Optional[int] = None
    cycles_today: Optional[int] = None
    cycles_per_day_needed: Optional[float] = None
    mah_to_next_cycle: Optional[int] = None
    total_mah_used_today: Optional[float] = None
    time_remaining: Projection = field(default_factory=lambda: Projection("Time to Full/Empty"))
    time_to_threshold: Projection = field(default_factory=lambda: Projection("Time to Threshold"))
    time_to_next_cycle: Projection = field(
        default_factory=lambda: Projection(ProjectionCalculator.NEXT_CYCLE_LABEL)
    )
    target_total_cycles: int = 1000
    persistence_errors: List[str] = field(default_factory=list)

    @property
    def lines(self) -> List[str]:
        return status_lines(self)


class CycleEngine:
    """
    Stateful accounting engine.

    Owns one ScalarState, loaded from the state store at construction and
    saved after every tick. Each component runs against a working copy of the
    state that is only committed when its store writes succeed, so a failed
    write is retried on the next tick.
    """

    def __init__(
        self,
        telemetry: TelemetrySource,
        record_store,
        state_store,
        clock: Optional[Clock] = None,
        projections: Optional[ProjectionCalculator] = None,
        health_refresher: Optional[HealthRefresher] = None,
        legacy_cycles_path: Optional[Path] = None,
    ):
        """
        Initialize the engine.

        Args:
            telemetry: Telemetry source
            record_store: Daily record store (RecordStore or MemoryRecordStore)
            state_store: Scalar state store (StateStore or MemoryStateStore)
            clock: Clock for day boundaries (system local time by default)
            projections: Projection calculator (defaults built from clock)
            health_refresher: Background official health lookup, optional
            legacy_cycles_path: JSON day->cycles mapping to import once, optional
        """
        self.telemetry = telemetry
        self.records = record_store
        self.state_store = state_store
        self.clock = clock or Clock()
        self.projections = projections or ProjectionCalculator(self.clock)
        self.health_refresher = health_refresher
        self.legacy_cycles_path = Path(legacy_cycles_path) if legacy_cycles_path else None
        self.logger = logging.getLogger("CycleTracker.Engine")

        self.baseline = CycleBaselineTracker()
        self.discharge = DischargeEstimator()
        self.usage = DailyUsageAccumulator()

        self.state: ScalarState = state_store.load()
        self.last_snapshot: Optional[StatusSnapshot] = None

    def tick(self) -> StatusSnapshot:
        """
        Run one accounting pass.

        Returns:
            StatusSnapshot with the derived values for this tick
        """
        now = self.clock.now()
        today = now.date()
        sample = self.telemetry.sample()
        errors: List[str] = []
        previous = self.last_snapshot or StatusSnapshot(timestamp=now)

        if not self.state.legacy_migration_done:
            self._guarded("legacy migration", errors, None, self._migrate_legacy)

        official = UNAVAILABLE
        if self.health_refresher is not None:
            official = self.health_refresher.poll(self.state, now.timestamp())

        cycles_today = self._guarded(
            "cycle baseline", errors, previous.cycles_today,
            lambda state: value_or(self.baseline.update(state, self.records, today, sample.cycle_count)),
        )

        cycles_per_day = value_or(self.projections.cycles_per_day_needed(sample.cycle_count, now))

        mah_to_next_cycle = self._guarded(
            "discharge estimator", errors, previous.mah_to_next_cycle,
            lambda state: value_or(self.discharge.update(state, self.records, today, sample)),
        )

        time_remaining = self.projections.time_remaining(sample.time_remaining)
        capacity = value_or(sample.capacity)
        time_to_threshold = self.projections.time_to_threshold(
            sample.current_capacity,
            UNAVAILABLE if capacity is None else reading(capacity.maximum),
            sample.time_remaining,
        )

        today_record = self._guarded(
            "record fetch", errors, None, lambda state: self.records.get(today)
        )
        time_to_next_cycle = self.projections.time_to_next_cycle(
            sample.power_mode,
            reading(mah_to_next_cycle),
            today_record,
            sample.current_capacity,
            sample.time_remaining,
        )

        self._guarded(
            "daily usage", errors, None,
            lambda state: self.usage.update(state, self.records, today, now, sample),
        )

        try:
            self.state_store.save(self.state)
        except PersistenceError as e:
            self.logger.error(f"Failed to save scalar state: {e}", exc_info=True)
            errors.append(str(e))

        snapshot = StatusSnapshot(
            timestamp=now,
            power_mode=sample.power_mode,
            cycle_count=value_or(sample.cycle_count),
            health_text=value_or(sample.health_text),
            official_health_percent=value_or(official),
            current_capacity=None if capacity is None else capacity.current,
            max_capacity=None if capacity is None else capacity.maximum,
            design_capacity=value_or(sample.design_capacity),
            cycles_today=cycles_today,
            cycles_per_day_needed=cycles_per_day,
            mah_to_next_cycle=mah_to_next_cycle,
            total_mah_used_today=self.state.today_mah_used,
            time_remaining=time_remaining,
            time_to_threshold=time_to_threshold,
            time_to_next_cycle=time_to_next_cycle,
            target_total_cycles=self.projections.target_total_cycles,
            persistence_errors=errors,
        )
        self.last_snapshot = snapshot

        self.logger.debug(
            f"Tick: cycles={snapshot.cycle_count}, today={snapshot.cycles_today}, "
            f"to_next={snapshot.mah_to_next_cycle} mAh, mode={snapshot.power_mode.value}"
        )
        return snapshot

    def increment_today_cycle(self) -> int:
        """
        Add one cycle to today's record by hand.

        Returns:
            New cycles-today value
        """
        working = replace(self.state)
        cycles = self.baseline.increment_today(
            working, self.records, self.clock.today(), self.telemetry.cycle_count()
        )
        self.state = working
        self.state_store.save(self.state)
        return cycles

    def export_backup(self, directory):
        """Write ZDAILYCYCLE.csv and ZCYCLEBREAKDOWN.csv into directory."""
        return export_backup(self.records.all_records(), directory, self.clock)

    def restore_backup(self, paths: Iterable) -> ImportResult:
        """Replace all records with the contents of a backup."""
        return restore_backup(paths, self.records, self.clock)

    def history(self) -> List[DailyRecord]:
        return self.records.all_records()

    def _guarded(self, name: str, errors: List[str], fallback: Any, step: Callable[[ScalarState], Any]) -> Any:
        """
        Run one component against a working copy of the state.

        The copy replaces the engine state only if the step finishes; on a
        store failure the previous state is kept and fallback is returned.
        """
        working = replace(self.state)
        try:
            result = step(working)
        except PersistenceError as e:
            self.logger.error(f"Store failure in {name}: {e}", exc_info=True)
            errors.append(f"{name}: {e}")
            return fallback

        self.state = working
        return result

    def _migrate_legacy(self, state: ScalarState):
        """Import a flat day->cycles JSON mapping once, then disable the migration."""
        path = self.legacy_cycles_path
        if path is None or not path.exists():
            state.legacy_migration_done = True
            return

        try:
            with open(path, "r", encoding="utf-8") as f:
                mapping = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.error(f"Could not read legacy cycles from {path}: {e}")
            state.legacy_migration_done = True
            return

        imported = 0
        for key, cycles in (mapping.items() if isinstance(mapping, dict) else []):
            try:
                day = date.fromisoformat(str(key))
            except ValueError:
                self.logger.warning(f"Skipping legacy entry with bad date: {key!r}")
                continue
            if not isinstance(cycles, int) or isinstance(cycles, bool) or cycles < 0:
                self.logger.warning(f"Skipping legacy entry for {day}: {cycles!r}")
                continue
            if self.records.get(day) is not None:
                continue
            self.records.put(DailyRecord(date=day, cycles=cycles))
            imported += 1

        state.legacy_migration_done = True
        self.logger.info(f"Imported {imported} legacy daily cycle entries from {path}")
