"""
Discharge-to-next-cycle estimator.

Accumulates the charge moved since the lifetime cycle counter last
incremented, reports how much is left before the next increment, and
attributes the discharged charge to dated cycle breakdowns. Charge is split at
day boundaries as well as cycle boundaries so each day's statistics reflect
the charge actually used that day.
"""

import logging
import math
from datetime import date
from typing import Dict

from cycle_tracker.models import (
    UNAVAILABLE,
    Available,
    DailyRecord,
    Reading,
    TelemetrySample,
    completion_percent,
    value_or,
)
from cycle_tracker.state import ScalarState


class DischargeEstimator:
    """Tracks discharged charge between lifetime cycle counter increments."""

    def __init__(self):
        self.logger = logging.getLogger("CycleTracker.Discharge")

    def update(
        self, state: ScalarState, store, today: date, sample: TelemetrySample
    ) -> "Reading[int]":
        """
        Fold one capacity sample into the discharge accounting.

        Args:
            state: Engine scalar state (mutated)
            store: Record store, receives new breakdowns
            today: Current local calendar day
            sample: Telemetry sample for this tick

        Returns:
            mAh still needed before the next cycle, or UNAVAILABLE when the
            current or design capacity is unknown
        """
        current = value_or(sample.current_capacity)
        design = sample.usable_design_capacity
        if current is None or design is None:
            return UNAVAILABLE

        cycle_count = value_or(sample.cycle_count)
        # Breakdowns for this tick, written in one transaction
        pending: Dict[date, DailyRecord] = {}

        # Day boundary: close out the previous day's share of the cycle
        if state.cycle_day != today:
            previous_day = state.cycle_day
            if previous_day is not None and state.cycle_day_mah > 0:
                self._add_breakdown(
                    pending, store, previous_day, state.cycle_day_mah, True, design
                )
                state.cycle_started_previous_day = True
            state.cycle_day = today
            state.cycle_day_mah = 0.0

        did_increment = (
            cycle_count is not None
            and state.last_cycle_count is not None
            and cycle_count > state.last_cycle_count
        )

        if did_increment:
            if state.cycle_day_mah > 0:
                self._add_breakdown(
                    pending,
                    store,
                    today,
                    state.cycle_day_mah,
                    state.cycle_started_previous_day,
                    design,
                )
            self.logger.info(
                f"Cycle count advanced {state.last_cycle_count} -> {cycle_count} "
                f"after {state.discharged_since_last_cycle:.0f} mAh discharged"
            )
            state.discharged_since_last_cycle = 0.0
            state.cycle_day_mah = 0.0
            state.cycle_started_previous_day = False
        elif state.last_capacity_for_cycle is not None and current < state.last_capacity_for_cycle:
            delta = state.last_capacity_for_cycle - current
            state.discharged_since_last_cycle += delta
            state.cycle_day_mah += delta

        if pending:
            store.put_many(pending.values())
            for record in pending.values():
                self._log_breakdown(record)

        state.last_capacity_for_cycle = current
        if cycle_count is not None:
            state.last_cycle_count = cycle_count

        remaining = max(0.0, design - state.discharged_since_last_cycle)
        return Available(int(math.ceil(remaining)))

    def _add_breakdown(
        self, pending: Dict[date, DailyRecord], store, day: date,
        mah_used: float, is_partial: bool, design: int,
    ):
        record = pending.get(day) or store.get(day) or DailyRecord(date=day)
        percent = completion_percent(mah_used, design)
        pending[day] = record.with_breakdown(mah_used, is_partial, percent)

    def _log_breakdown(self, record: DailyRecord):
        breakdown = record.breakdowns[-1]
        self.logger.info(
            f"Recorded {'partial ' if breakdown.is_partial else ''}cycle breakdown "
            f"#{breakdown.index} for {record.date}: {breakdown.mah_used:.0f} mAh "
            f"({breakdown.completion_percent:.1f}%)"
        )
