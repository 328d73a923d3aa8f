"""
Daily usage accumulator.

Integrates elapsed wall-clock time against the sampled power source and
capacity drops against the day's charge total, writing the results into the
current day's record.
"""

import logging
from dataclasses import replace
from datetime import date, datetime

from cycle_tracker.models import DailyRecord, PowerMode, TelemetrySample, value_or
from cycle_tracker.state import ScalarState


def raw_cycles(total_mah_used: float, design_capacity) -> float:
    """Fractional cycles: charge moved divided by design capacity (0 if unknown)."""
    if not design_capacity or design_capacity <= 0:
        return 0.0
    return total_mah_used / design_capacity


class DailyUsageAccumulator:
    """
    Accumulates time on battery, time plugged in and charge used per day.

    Tolerates irregular polling intervals: each tick attributes the time since
    the previous sample to the power mode seen at that previous sample.
    """

    def __init__(self):
        self.logger = logging.getLogger("CycleTracker.Usage")

    def update(
        self,
        state: ScalarState,
        store,
        today: date,
        now: datetime,
        sample: TelemetrySample,
    ) -> DailyRecord:
        """
        Integrate one sample into today's record.

        Args:
            state: Engine scalar state (mutated)
            store: Record store
            today: Current local calendar day
            now: Current time (aware)
            sample: Telemetry sample for this tick

        Returns:
            Today's record after the update (not stored if nothing was integrated)
        """
        timestamp = now.timestamp()
        current_mode = sample.power_mode
        current = value_or(sample.current_capacity)

        if state.last_sample_timestamp <= 0 or state.last_sample_day != today:
            # First sample of the day: no elapsed interval is attributable
            if current is not None:
                state.last_capacity_for_usage = current
            state.today_mah_used = 0.0
            self._advance(state, today, timestamp, current_mode)
            self.logger.debug(f"Started usage sampling for {today}")
            return store.get(today) or DailyRecord(date=today)

        elapsed = max(0.0, timestamp - state.last_sample_timestamp)
        if state.last_power_mode is PowerMode.UNKNOWN:
            effective_mode = current_mode
        else:
            effective_mode = state.last_power_mode

        if effective_mode is PowerMode.UNKNOWN:
            self._advance(state, today, timestamp, current_mode)
            return store.get(today) or DailyRecord(date=today)

        existing = store.get(today) or DailyRecord(date=today)
        if state.today_mah_used == 0 and existing.total_mah_used > 0:
            # Restarted or restored mid-day: continue from the stored total
            state.today_mah_used = existing.total_mah_used

        total_mah_used = self._integrate_charge(state, current)
        updated = replace(
            existing,
            total_mah_used=total_mah_used,
            time_on_battery=existing.time_on_battery
            + (elapsed if effective_mode is PowerMode.BATTERY else 0.0),
            time_plugged_in=existing.time_plugged_in
            + (elapsed if effective_mode is PowerMode.EXTERNAL else 0.0),
            raw_cycles=raw_cycles(total_mah_used, sample.usable_design_capacity),
        )
        store.put(updated)

        self._advance(state, today, timestamp, current_mode)
        return updated

    def _integrate_charge(self, state: ScalarState, current) -> float:
        if current is None:
            return state.today_mah_used

        last = state.last_capacity_for_usage
        state.last_capacity_for_usage = current
        if last is not None and current < last:
            state.today_mah_used += max(0, last - current)
        return state.today_mah_used

    @staticmethod
    def _advance(state: ScalarState, today: date, timestamp: float, mode: PowerMode):
        state.last_sample_day = today
        state.last_sample_timestamp = timestamp
        state.last_power_mode = mode
