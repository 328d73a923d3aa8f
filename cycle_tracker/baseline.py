"""
Cycle baseline tracker.

Derives "cycles gained today" from the battery's lifetime cycle counter by
subtracting a baseline that is re-anchored at each day boundary.
"""

import logging
from dataclasses import replace
from datetime import date

from cycle_tracker.models import UNAVAILABLE, Available, DailyRecord, Reading
from cycle_tracker.state import ScalarState


class CycleBaselineTracker:
    """Keeps cycles-today stable within a day and resets it cleanly at midnight."""

    def __init__(self):
        self.logger = logging.getLogger("CycleTracker.Baseline")

    def update(
        self, state: ScalarState, store, today: date, cycle_count: "Reading[int]"
    ) -> "Reading[int]":
        """
        Compute cycles gained today and write them to today's record.

        Args:
            state: Engine scalar state (mutated)
            store: Record store
            today: Current local calendar day
            cycle_count: Lifetime cycle count reading

        Returns:
            Cycles gained today, or UNAVAILABLE without a cycle count
        """
        if not isinstance(cycle_count, Available):
            return UNAVAILABLE

        count = cycle_count.value
        existing = store.get(today) or DailyRecord(date=today)
        recorded_today = existing.cycles

        if state.baseline_date != today:
            state.baseline_count = max(0, count - recorded_today)
            state.baseline_date = today
            self.logger.info(
                f"New cycle baseline for {today}: {state.baseline_count} "
                f"(lifetime={count}, already recorded={recorded_today})"
            )
            cycles_today = recorded_today
        else:
            if state.baseline_count is None:
                state.baseline_count = count

            if state.baseline_count == 0 and 0 < recorded_today < count:
                state.baseline_count = max(0, count - recorded_today)
                self.logger.warning(
                    f"Corrected zero cycle baseline to {state.baseline_count}"
                )

            cycles_today = max(0, count - state.baseline_count)

        store.put(replace(existing, cycles=cycles_today))
        return Available(cycles_today)

    def increment_today(
        self, state: ScalarState, store, today: date, cycle_count: "Reading[int]"
    ) -> int:
        """
        Add one cycle to today's record by hand.

        The baseline is re-anchored so the next tick keeps the new value.

        Args:
            state: Engine scalar state (mutated)
            store: Record store
            today: Current local calendar day
            cycle_count: Lifetime cycle count reading

        Returns:
            New cycles-today value
        """
        existing = store.get(today) or DailyRecord(date=today)
        new_cycles = existing.cycles + 1
        store.put(replace(existing, cycles=new_cycles))

        if isinstance(cycle_count, Available):
            state.baseline_count = max(0, cycle_count.value - new_cycles)
            state.baseline_date = today

        self.logger.info(f"Manually incremented cycles for {today} to {new_cycles}")
        return new_cycles
