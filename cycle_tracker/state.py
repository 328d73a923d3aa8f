"""
Scalar bookkeeping state for the accounting engine.

Baselines, last-seen samples and timestamps live in one ScalarState object per
engine instance. A StateStore loads it once and saves it after every tick.
"""

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, fields
from datetime import date
from pathlib import Path
from typing import Dict, Optional

from cycle_tracker.database import PersistenceError
from cycle_tracker.models import PowerMode


class StateError(PersistenceError):
    """Raised when scalar state cannot be written."""


@dataclass
class ScalarState:
    """Persisted bookkeeping values; every field has a lazy default."""

    # Cycle baseline tracker
    baseline_date: Optional[date] = None
    baseline_count: Optional[int] = None

    # Discharge-to-next-cycle estimator
    last_capacity_for_cycle: Optional[int] = None
    last_cycle_count: Optional[int] = None
    discharged_since_last_cycle: float = 0.0
    cycle_day: Optional[date] = None
    cycle_day_mah: float = 0.0
    cycle_started_previous_day: bool = False

    # Daily usage accumulator
    last_capacity_for_usage: Optional[int] = None
    last_sample_day: Optional[date] = None
    last_sample_timestamp: float = 0.0
    last_power_mode: PowerMode = PowerMode.UNKNOWN
    today_mah_used: float = 0.0

    # Official health lookup
    official_health_percent: Optional[int] = None
    official_health_fetched_at: Optional[float] = None

    legacy_migration_done: bool = False

    _DATE_FIELDS = ("baseline_date", "cycle_day", "last_sample_day")

    def to_dict(self) -> Dict:
        data = asdict(self)
        for key in self._DATE_FIELDS:
            if data[key] is not None:
                data[key] = data[key].isoformat()
        data["last_power_mode"] = self.last_power_mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "ScalarState":
        """
        Build state from a stored dictionary, ignoring unknown keys.

        Args:
            data: Dictionary produced by to_dict()

        Returns:
            ScalarState
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for key in cls._DATE_FIELDS:
            raw = values.get(key)
            values[key] = date.fromisoformat(raw) if raw else None
        values["last_power_mode"] = PowerMode.parse(values.get("last_power_mode"))
        return cls(**values)


class StateStore:
    """Thread-safe JSON file holding one ScalarState."""

    def __init__(self, state_path: str = "data/state.json"):
        """
        Initialize the state store.

        Args:
            state_path: Path to the JSON state file
        """
        self.state_path = Path(state_path)
        self.lock = threading.Lock()
        self.logger = logging.getLogger("CycleTracker.State")

    def load(self) -> ScalarState:
        """
        Load state from disk, starting fresh if missing or unreadable.

        Returns:
            ScalarState
        """
        with self.lock:
            if not self.state_path.exists():
                self.logger.info(f"No state file at {self.state_path}, starting fresh")
                return ScalarState()

            try:
                with open(self.state_path, "r", encoding="utf-8") as f:
                    return ScalarState.from_dict(json.load(f))

            except (OSError, ValueError, TypeError) as e:
                self.logger.error(f"Error loading state from {self.state_path}: {e}")
                return ScalarState()

    def save(self, state: ScalarState):
        """
        Write state to disk atomically.

        Args:
            state: State to persist

        Raises:
            StateError: If the file cannot be written
        """
        with self.lock:
            try:
                self.state_path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.state_path.with_suffix(".tmp")
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(state.to_dict(), f, indent=2)
                os.replace(tmp_path, self.state_path)

            except OSError as e:
                raise StateError(f"Error saving state to {self.state_path}: {e}") from e


class MemoryStateStore:
    """In-memory state store; keeps a serialized copy like the file store does."""

    def __init__(self, state: Optional[ScalarState] = None):
        self.saved: Optional[Dict] = state.to_dict() if state else None
        self.save_count = 0

    def load(self) -> ScalarState:
        if self.saved is None:
            return ScalarState()
        return ScalarState.from_dict(self.saved)

    def save(self, state: ScalarState):
        self.saved = state.to_dict()
        self.save_count += 1
