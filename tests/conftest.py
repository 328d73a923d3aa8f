from datetime import datetime, timedelta, timezone

import pytest

from cycle_tracker.clock import Clock
from cycle_tracker.database import MemoryRecordStore
from cycle_tracker.engine import CycleEngine
from cycle_tracker.models import Capacity, PowerMode, TimeRemaining, reading
from cycle_tracker.projection import ProjectionCalculator
from cycle_tracker.state import MemoryStateStore, ScalarState
from cycle_tracker.telemetry import TelemetrySource

# Fixed offset zone so day boundaries do not depend on the machine running the tests
LOCAL = timezone(timedelta(hours=-5))


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, current: datetime):
        super().__init__(current.tzinfo)
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


class FakeTelemetry(TelemetrySource):
    """Scripted telemetry; any attribute left as None reads as unavailable."""

    def __init__(self, cycles=None, current=None, maximum=None, design=None,
                 mode=PowerMode.BATTERY, minutes=None, charging=False, health=None,
                 official=None):
        self.cycles = cycles
        self.current = current
        self.maximum = maximum
        self.design = design
        self.mode = mode
        self.minutes = minutes
        self.charging = charging
        self.health = health
        self.official = official
        self.official_calls = 0

    def cycle_count(self):
        return reading(self.cycles)

    def capacity(self):
        if self.current is None or self.maximum is None:
            return reading(None)
        return reading(Capacity(current=self.current, maximum=self.maximum))

    def design_capacity(self):
        return reading(self.design)

    def health_text(self):
        return reading(self.health)

    def official_health_percent(self):
        self.official_calls += 1
        return reading(self.official)

    def power_mode(self):
        return self.mode

    def time_remaining(self):
        if self.minutes is None:
            return reading(None)
        return reading(TimeRemaining(minutes=self.minutes, is_charging=self.charging))


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 9, 0, 0, tzinfo=LOCAL))


@pytest.fixture
def today(clock):
    return clock.today()


@pytest.fixture
def telemetry():
    return FakeTelemetry(cycles=500, current=4000, maximum=5000, design=5000,
                         mode=PowerMode.BATTERY, minutes=240, health="Normal")


@pytest.fixture
def records():
    return MemoryRecordStore()


@pytest.fixture
def state():
    return ScalarState()


@pytest.fixture
def state_store():
    return MemoryStateStore()


@pytest.fixture
def engine(telemetry, records, state_store, clock):
    return CycleEngine(
        telemetry,
        records,
        state_store,
        clock=clock,
        projections=ProjectionCalculator(clock),
    )
