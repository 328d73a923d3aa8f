"""
Battery telemetry sources.

Reads the lifetime cycle count, capacities, time remaining and power source
from the operating system. psutil supplies the power source and time to empty;
the battery registry (macOS ioreg, Linux sysfs) supplies capacities in mAh and
the cycle counter.
"""

import logging
import platform
import plistlib
import re
import subprocess
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import psutil

from cycle_tracker.models import (
    UNAVAILABLE,
    Available,
    Capacity,
    PowerMode,
    Reading,
    TelemetrySample,
    TimeRemaining,
    reading,
    value_or,
)
from cycle_tracker.state import ScalarState

# Registry reports 65535 when a time estimate is not available
REGISTRY_TIME_UNKNOWN = 65535

# Current/max capacity values at or below this are percentages, not mAh
MIN_MAH_VALUE = 200


class TelemetrySource:
    """
    Interface the engine consumes. Every accessor returns a Reading, except
    power_mode() which always returns a PowerMode.
    """

    def cycle_count(self) -> "Reading[int]":
        return UNAVAILABLE

    def capacity(self) -> "Reading[Capacity]":
        return UNAVAILABLE

    def design_capacity(self) -> "Reading[int]":
        return UNAVAILABLE

    def health_text(self) -> "Reading[str]":
        return UNAVAILABLE

    def official_health_percent(self) -> "Reading[int]":
        """Slow lookup; only called from HealthRefresher, never from a tick."""
        return UNAVAILABLE

    def power_mode(self) -> PowerMode:
        return PowerMode.UNKNOWN

    def time_remaining(self) -> "Reading[TimeRemaining]":
        return UNAVAILABLE

    def sample(self) -> TelemetrySample:
        """Read every fast field once."""
        return TelemetrySample(
            cycle_count=self.cycle_count(),
            capacity=self.capacity(),
            design_capacity=self.design_capacity(),
            health_text=self.health_text(),
            power_mode=self.power_mode(),
            time_remaining=self.time_remaining(),
        )


class SystemTelemetry(TelemetrySource):
    """
    Telemetry from the running machine.

    The battery registry is read once per sample() and shared by the
    accessors for that tick.
    """

    def __init__(self, sysfs_root: str = "/sys/class/power_supply", system: Optional[str] = None):
        """
        Initialize system telemetry.

        Args:
            sysfs_root: Linux power supply class directory
            system: Platform name override (defaults to platform.system())
        """
        self.sysfs_root = Path(sysfs_root)
        self.system = system or platform.system()
        self.logger = logging.getLogger("CycleTracker.Telemetry")
        self._registry: Optional[Dict[str, Any]] = None

    def sample(self) -> TelemetrySample:
        self._registry = self._read_registry()
        return super().sample()

    def _registry_values(self) -> Dict[str, Any]:
        if self._registry is None:
            self._registry = self._read_registry()
        return self._registry

    def _read_registry(self) -> Dict[str, Any]:
        try:
            if self.system == "Darwin":
                return read_ioreg_battery()
            if self.system == "Linux":
                return read_sysfs_battery(self.sysfs_root)
        except Exception as e:
            self.logger.warning(f"Error reading battery registry: {e}")
        return {}

    def _registry_int(self, key: str) -> Optional[int]:
        value = self._registry_values().get(key)
        if isinstance(value, bool) or value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def cycle_count(self) -> "Reading[int]":
        return reading(self._registry_int("CycleCount"))

    def capacity(self) -> "Reading[Capacity]":
        raw_current = self._registry_int("AppleRawCurrentCapacity")
        raw_max = self._registry_int("AppleRawMaxCapacity")
        if raw_current is not None and raw_max is not None:
            return Available(Capacity(current=raw_current, maximum=raw_max))

        current = self._registry_int("CurrentCapacity")
        maximum = self._registry_int("MaxCapacity")
        if current is not None and maximum is not None:
            if current > MIN_MAH_VALUE and maximum > MIN_MAH_VALUE:
                return Available(Capacity(current=current, maximum=maximum))

        return UNAVAILABLE

    def design_capacity(self) -> "Reading[int]":
        return reading(self._registry_int("DesignCapacity"))

    def health_text(self) -> "Reading[str]":
        registry = self._registry_values()
        for key in ("BatteryHealth", "BatteryHealthCondition"):
            text = str(registry.get(key) or "").strip()
            if text:
                return Available(text)

        maximum = self._registry_int("AppleRawMaxCapacity") or self._registry_int("MaxCapacity")
        design = self._registry_int("DesignCapacity")
        if maximum and design and maximum > 0 and design > 0:
            return Available(f"{round(maximum / design * 100)}%")
        return UNAVAILABLE

    def official_health_percent(self) -> "Reading[int]":
        if self.system == "Darwin":
            try:
                result = subprocess.run(
                    ["/usr/sbin/system_profiler", "-detailLevel", "mini", "SPPowerDataType"],
                    capture_output=True,
                    text=True,
                    timeout=30,
                )
                if result.returncode == 0:
                    percent = parse_profiler_health(result.stdout)
                    if percent is not None:
                        return Available(percent)
            except (OSError, subprocess.SubprocessError) as e:
                self.logger.warning(f"system_profiler lookup failed: {e}")

        registry = self._read_registry()
        design = registry.get("DesignCapacity")
        maximum = (
            registry.get("NominalChargeCapacity")
            or registry.get("AppleRawMaxCapacity")
            or registry.get("MaxCapacity")
        )
        if design and maximum and design > 0 and maximum > 0:
            return Available(round(maximum / design * 100))
        return UNAVAILABLE

    def power_mode(self) -> PowerMode:
        battery = self._sensors_battery()
        if battery is None or battery.power_plugged is None:
            return PowerMode.UNKNOWN
        return PowerMode.EXTERNAL if battery.power_plugged else PowerMode.BATTERY

    def time_remaining(self) -> "Reading[TimeRemaining]":
        registry = self._registry_values()
        if registry.get("IsCharging"):
            minutes = self._registry_int("AvgTimeToFull")
            if minutes is not None and 0 <= minutes < REGISTRY_TIME_UNKNOWN:
                return Available(TimeRemaining(minutes=minutes, is_charging=True))

        battery = self._sensors_battery()
        if battery is None or battery.power_plugged:
            return UNAVAILABLE

        if battery.secsleft in (psutil.POWER_TIME_UNKNOWN, psutil.POWER_TIME_UNLIMITED):
            return UNAVAILABLE
        if battery.secsleft < 0:
            return UNAVAILABLE
        return Available(TimeRemaining(minutes=int(battery.secsleft // 60), is_charging=False))

    def _sensors_battery(self):
        try:
            if not hasattr(psutil, "sensors_battery"):
                return None
            return psutil.sensors_battery()
        except Exception as e:
            self.logger.warning(f"Error getting battery info: {e}")
            return None


def read_ioreg_battery() -> Dict[str, Any]:
    """
    Read the AppleSmartBattery registry entry on macOS.

    Returns:
        Registry properties, or an empty dict if unavailable
    """
    result = subprocess.run(
        ["ioreg", "-r", "-n", "AppleSmartBattery", "-a"],
        capture_output=True,
        timeout=10,
    )
    if result.returncode != 0 or not result.stdout.strip():
        return {}

    entries = plistlib.loads(result.stdout)
    if isinstance(entries, list) and entries:
        return dict(entries[0])
    return {}


def read_sysfs_battery(root: Path) -> Dict[str, Any]:
    """
    Read the first battery under a Linux power_supply directory.

    Values are translated into the registry key names used on macOS, with
    charge in mAh. Energy-only batteries (µWh) are converted using the design
    minimum voltage.

    Args:
        root: Power supply class directory, e.g. /sys/class/power_supply

    Returns:
        Registry-style properties, or an empty dict if no battery is present
    """
    root = Path(root)
    if not root.exists():
        return {}

    for supply in sorted(root.iterdir()):
        if _read_text(supply / "type") != "Battery":
            continue

        values: Dict[str, Any] = {}
        cycle_count = _read_number(supply / "cycle_count")
        if cycle_count is not None:
            values["CycleCount"] = int(cycle_count)

        voltage = _read_number(supply / "voltage_min_design")
        for key, name in (
            ("AppleRawCurrentCapacity", "now"),
            ("AppleRawMaxCapacity", "full"),
            ("DesignCapacity", "full_design"),
        ):
            charge = _read_number(supply / f"charge_{name}")
            if charge is None:
                energy = _read_number(supply / f"energy_{name}")
                if energy is not None and voltage:
                    charge = energy / voltage * 1_000_000
            if charge is not None:
                values[key] = int(round(charge / 1000))

        status = _read_text(supply / "status")
        values["IsCharging"] = status == "Charging"
        time_to_full = _read_number(supply / "time_to_full_now")
        if time_to_full is not None:
            values["AvgTimeToFull"] = int(time_to_full // 60)

        health = _read_text(supply / "health")
        if health:
            values["BatteryHealth"] = health
        return values

    return {}


def parse_profiler_health(output: str) -> Optional[int]:
    """Extract the "Maximum Capacity: NN%" value from system_profiler output."""
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped.startswith("Maximum Capacity:"):
            continue
        digits = re.sub(r"\D", "", stripped)
        if digits:
            return int(digits)
    return None


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return None


def _read_number(path: Path) -> Optional[float]:
    text = _read_text(path)
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class HealthRefresher:
    """
    Runs the slow official health lookup off the polling thread.

    A lookup starts at most once per interval; ticks only collect a finished
    result and never wait for one.
    """

    def __init__(self, fetch: Callable[[], "Reading[int]"], min_interval_seconds: float = 600):
        """
        Initialize the refresher.

        Args:
            fetch: Blocking lookup, usually TelemetrySource.official_health_percent
            min_interval_seconds: Minimum time between lookups
        """
        self.fetch = fetch
        self.min_interval_seconds = max(600, min_interval_seconds)
        self.logger = logging.getLogger("CycleTracker.Health")
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._result = None

    def poll(self, state: ScalarState, now_timestamp: float) -> "Reading[int]":
        """
        Fold any finished lookup into state and start a new one if due.

        Args:
            state: Engine scalar state (mutated)
            now_timestamp: Current POSIX time of the tick

        Returns:
            Cached official health percent
        """
        with self._lock:
            result, self._result = self._result, None
            running = self._thread is not None and self._thread.is_alive()

        if result is not None:
            percent, fetched_at = result
            state.official_health_percent = percent
            state.official_health_fetched_at = fetched_at

        last = state.official_health_fetched_at
        if not running and (last is None or now_timestamp - last >= self.min_interval_seconds):
            self._start(now_timestamp)

        return reading(state.official_health_percent)

    def join(self, timeout: Optional[float] = None):
        """Wait for an in-flight lookup (used at shutdown and in tests)."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _start(self, started_at: float):
        self._thread = threading.Thread(
            target=self._run, args=(started_at,), daemon=True, name="HealthLookup"
        )
        self._thread.start()

    def _run(self, started_at: float):
        percent = None
        try:
            percent = value_or(self.fetch())
            self.logger.debug(f"Official health lookup returned {percent}")
        except Exception as e:
            self.logger.warning(f"Official health lookup failed: {e}", exc_info=True)

        with self._lock:
            self._result = (percent, started_at)
