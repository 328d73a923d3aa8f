"""
Data model for Cycle Tracker.

Daily accounting rows, their cycle breakdowns, and the telemetry value types
shared by the engine components.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Generic, Optional, Tuple, TypeVar, Union

T = TypeVar("T")


class PowerMode(Enum):
    """Power source the machine is currently running from."""

    EXTERNAL = "ac"
    BATTERY = "battery"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "PowerMode":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Available(Generic[T]):
    """A telemetry value that was read successfully."""

    value: T


class _Unavailable:
    """A telemetry value that could not be read."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNAVAILABLE"


UNAVAILABLE = _Unavailable()

Reading = Union[Available[T], _Unavailable]


def reading(value: Optional[T]) -> "Reading[T]":
    """Wrap an optional probe result, treating None as unavailable."""
    return UNAVAILABLE if value is None else Available(value)


def value_or(item: "Reading[T]", default: Any = None) -> Any:
    """Return the value of an available reading, or default."""
    return item.value if isinstance(item, Available) else default


@dataclass(frozen=True)
class Capacity:
    """Current and maximum charge, in mAh."""

    current: int
    maximum: int


@dataclass(frozen=True)
class TimeRemaining:
    """Minutes until full (while charging) or until empty (while discharging)."""

    minutes: int
    is_charging: bool


@dataclass(frozen=True)
class TelemetrySample:
    """One poll of the telemetry source."""

    cycle_count: "Reading[int]" = UNAVAILABLE
    capacity: "Reading[Capacity]" = UNAVAILABLE
    design_capacity: "Reading[int]" = UNAVAILABLE
    health_text: "Reading[str]" = UNAVAILABLE
    power_mode: PowerMode = PowerMode.UNKNOWN
    time_remaining: "Reading[TimeRemaining]" = UNAVAILABLE

    @property
    def current_capacity(self) -> "Reading[int]":
        if isinstance(self.capacity, Available):
            return Available(self.capacity.value.current)
        return UNAVAILABLE

    @property
    def usable_design_capacity(self) -> Optional[int]:
        """Design capacity when it is known and positive."""
        design = value_or(self.design_capacity)
        return design if design is not None and design > 0 else None


@dataclass(frozen=True)
class CycleBreakdown:
    """A dated segment of discharged charge attributed to a (possibly partial) cycle."""

    index: int
    mah_used: float
    is_partial: bool = False
    completion_percent: float = 0.0


@dataclass(frozen=True)
class DailyRecord:
    """Accounting totals for one local calendar day."""

    date: date
    cycles: int = 0
    raw_cycles: float = 0.0
    total_mah_used: float = 0.0
    time_on_battery: float = 0.0
    time_plugged_in: float = 0.0
    breakdowns: Tuple[CycleBreakdown, ...] = field(default_factory=tuple)

    @property
    def next_breakdown_index(self) -> int:
        return max((b.index for b in self.breakdowns), default=0) + 1

    def with_breakdown(
        self,
        mah_used: float,
        is_partial: bool,
        completion_percent: float,
        index: Optional[int] = None,
    ) -> "DailyRecord":
        """
        Return a copy with one more breakdown appended.

        Args:
            mah_used: Charge attributed to the segment
            is_partial: True if the segment was split across a day boundary
            completion_percent: Share of design capacity, in [0, 100]
            index: Explicit index; ignored if missing or already taken

        Returns:
            New DailyRecord
        """
        taken = {b.index for b in self.breakdowns}
        if index is None or index in taken:
            index = self.next_breakdown_index
        breakdown = CycleBreakdown(
            index=index,
            mah_used=mah_used,
            is_partial=is_partial,
            completion_percent=completion_percent,
        )
        return replace(self, breakdowns=self.breakdowns + (breakdown,))


def completion_percent(mah_used: float, design_capacity: Optional[int]) -> float:
    """Share of design capacity represented by mah_used, clamped to [0, 100]."""
    if not design_capacity or design_capacity <= 0:
        return 0.0
    return max(0.0, min(100.0, mah_used / design_capacity * 100.0))
