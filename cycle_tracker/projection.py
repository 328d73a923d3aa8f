"""
Projection calculator for human-facing forward estimates.

Turns telemetry and the day's accumulated usage into time-to-full/empty,
time-to-low-charge, time-until-next-cycle and cycles-per-day estimates.
Missing inputs never produce invented numbers: the result is either
unavailable or the last good value, annotated.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from cycle_tracker.clock import Clock
from cycle_tracker.formatting import PLACEHOLDER, format_duration
from cycle_tracker.models import (
    UNAVAILABLE,
    Available,
    DailyRecord,
    PowerMode,
    Reading,
    TimeRemaining,
    value_or,
)


@dataclass(frozen=True)
class Projection:
    """A projected duration with its display state."""

    # Status constants
    LIVE = "LIVE"
    PAUSED = "PAUSED"
    CALCULATING = "CALCULATING"
    UNAVAILABLE = "UNAVAILABLE"

    label: str
    seconds: Optional[float] = None
    status: str = "UNAVAILABLE"
    source: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.status != self.UNAVAILABLE

    @property
    def text(self) -> str:
        if not self.is_available:
            return f"{self.label}: {PLACEHOLDER}"

        value = format_duration(self.seconds)
        if self.status == self.PAUSED:
            return f"{self.label}: {value} (Paused)"
        if self.status == self.CALCULATING:
            return f"{self.label}: {value} (Calculating)"
        return f"{self.label}: {value}"


class ProjectionCalculator:
    """
    Computes forward estimates from the latest sample and today's record.

    The next-cycle estimate tries two throughput estimators in order:
    historical (today's charge used over today's time on battery), then
    instantaneous (current charge over the reported time to empty). The last
    usable result is cached in memory and shown while paused or calculating.
    """

    # Estimator names
    HISTORICAL = "HISTORICAL"
    INSTANTANEOUS = "INSTANTANEOUS"

    NEXT_CYCLE_LABEL = "Time Until Next Cycle"

    def __init__(
        self,
        clock: Clock,
        threshold_percent: float = 10.0,
        target_total_cycles: int = 1000,
        deadline: date = date(2026, 6, 1),
    ):
        """
        Initialize projection calculator.

        Args:
            clock: Clock used for the deadline countdown
            threshold_percent: Low-charge threshold, percent of maximum capacity
            target_total_cycles: Lifetime cycle count to reach by the deadline
            deadline: Day by which the target should be reached
        """
        self.clock = clock
        self.threshold_percent = threshold_percent
        self.target_total_cycles = target_total_cycles
        self.deadline = deadline
        self.logger = logging.getLogger("CycleTracker.Projection")

        self.last_next_cycle: Optional[Projection] = None

    def time_remaining(self, remaining: "Reading[TimeRemaining]") -> Projection:
        """
        Time to full (charging) or to empty (discharging) as reported by the source.

        Args:
            remaining: Time remaining reading

        Returns:
            Projection; unavailable if absent or non-positive
        """
        if not isinstance(remaining, Available) or remaining.value.minutes <= 0:
            return Projection(label="Time to Full/Empty")

        label = "Time to Full" if remaining.value.is_charging else "Time to Empty"
        return Projection(
            label=label,
            seconds=remaining.value.minutes * 60.0,
            status=Projection.LIVE,
        )

    def time_to_threshold(
        self,
        current_capacity: "Reading[int]",
        max_capacity: "Reading[int]",
        remaining: "Reading[TimeRemaining]",
    ) -> Projection:
        """
        Time until charge falls to the low-charge threshold.

        Scales the reported time to empty by the share of the current charge
        that sits above the threshold.

        Args:
            current_capacity: Current charge reading (mAh)
            max_capacity: Maximum capacity reading (mAh)
            remaining: Time remaining reading

        Returns:
            Projection; unavailable unless discharging above the threshold
        """
        label = f"Time to {self.threshold_percent:g}% Charge"
        current = value_or(current_capacity)
        maximum = value_or(max_capacity)
        time_left = value_or(remaining)

        if current is None or maximum is None or time_left is None:
            return Projection(label=label)
        if time_left.is_charging or time_left.minutes <= 0 or current <= 0:
            return Projection(label=label)

        threshold = maximum * self.threshold_percent / 100.0
        if current <= threshold:
            return Projection(label=label)

        minutes = (current - threshold) / current * time_left.minutes
        return Projection(label=label, seconds=minutes * 60.0, status=Projection.LIVE)

    def time_to_next_cycle(
        self,
        power_mode: PowerMode,
        mah_to_next_cycle: "Reading[int]",
        today_record: Optional[DailyRecord],
        current_capacity: "Reading[int]",
        remaining: "Reading[TimeRemaining]",
    ) -> Projection:
        """
        Estimate seconds until the lifetime cycle counter next increments.

        Args:
            power_mode: Current power source
            mah_to_next_cycle: Charge still needed for the next cycle
            today_record: Today's record before this tick's usage update
            current_capacity: Current charge reading (mAh)
            remaining: Time remaining reading

        Returns:
            Projection with status LIVE, PAUSED, CALCULATING or UNAVAILABLE
        """
        if power_mode is PowerMode.EXTERNAL:
            return self._from_cache(Projection.PAUSED)

        needed = value_or(mah_to_next_cycle)
        if needed is None or needed <= 0:
            return self._from_cache(Projection.CALCULATING)

        for source, throughput in (
            (self.HISTORICAL, self._historical_throughput(today_record)),
            (self.INSTANTANEOUS, self._instantaneous_throughput(current_capacity, remaining)),
        ):
            if throughput is not None and throughput > 0:
                projection = Projection(
                    label=self.NEXT_CYCLE_LABEL,
                    seconds=needed / throughput,
                    status=Projection.LIVE,
                    source=source,
                )
                self.last_next_cycle = projection
                self.logger.debug(
                    f"Next cycle in {projection.seconds:.0f}s "
                    f"({source.lower()} throughput {throughput:.4f} mAh/s)"
                )
                return projection

        return self._from_cache(Projection.CALCULATING)

    def cycles_per_day_needed(
        self, cycle_count: "Reading[int]", now: Optional[datetime] = None
    ) -> "Reading[float]":
        """
        Cycles per day needed to reach the target count by the deadline.

        Args:
            cycle_count: Lifetime cycle count reading
            now: Reference time, defaults to the clock's current time

        Returns:
            Cycles per day, or UNAVAILABLE once the deadline is today or past
        """
        if not isinstance(cycle_count, Available):
            return UNAVAILABLE

        days_remaining = self.clock.whole_days_until(self.deadline, now)
        if days_remaining <= 0:
            return UNAVAILABLE

        remaining_cycles = max(0, self.target_total_cycles - cycle_count.value)
        return Available(remaining_cycles / days_remaining)

    def _historical_throughput(self, today_record: Optional[DailyRecord]) -> Optional[float]:
        if today_record is None:
            return None
        if today_record.total_mah_used <= 0 or today_record.time_on_battery <= 0:
            return None
        return today_record.total_mah_used / today_record.time_on_battery

    def _instantaneous_throughput(
        self, current_capacity: "Reading[int]", remaining: "Reading[TimeRemaining]"
    ) -> Optional[float]:
        current = value_or(current_capacity)
        time_left = value_or(remaining)
        if current is None or time_left is None or time_left.is_charging:
            return None
        if current <= 0 or time_left.minutes <= 0:
            return None
        return current / (time_left.minutes * 60.0)

    def _from_cache(self, status: str) -> Projection:
        if self.last_next_cycle is None:
            return Projection(label=self.NEXT_CYCLE_LABEL)
        return Projection(
            label=self.NEXT_CYCLE_LABEL,
            seconds=self.last_next_cycle.seconds,
            status=status,
            source=self.last_next_cycle.source,
        )
