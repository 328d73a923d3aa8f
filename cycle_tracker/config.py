"""
Configuration management for Cycle Tracker.

Settings live in a flat JSON object. Unknown or out-of-range values fall back
to the defaults below rather than stopping the tracker.
"""

import json
import threading
from datetime import date
from pathlib import Path
from typing import Any, Dict


class ConfigManager:
    """Thread-safe configuration manager."""

    DEFAULT_CONFIG = {
        "monitoring_interval_seconds": 5,
        "detail_interval_seconds": 1,
        "target_total_cycles": 1000,
        "target_deadline": "2026-06-01",
        "low_charge_threshold_percent": 10,
        "official_health_refresh_minutes": 10,
        "log_level": "INFO",
        "log_retention_days": 30,
        "data_dir": "data",
        "legacy_cycles_file": "legacy_cycles.json",
        "auto_start_monitoring": True
    }

    # key -> (minimum, maximum); None means unbounded
    NUMERIC_RANGES = {
        "monitoring_interval_seconds": (1, 300),
        "detail_interval_seconds": (1, 60),
        "target_total_cycles": (1, None),
        "low_charge_threshold_percent": (1, 50),
        # The system_profiler lookup is slow; never more than once per 10 minutes
        "official_health_refresh_minutes": (10, 1440),
        "log_retention_days": (1, 365),
    }
    INTEGER_KEYS = {"target_total_cycles"}

    VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    def __init__(self, config_path: str = "config.json"):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = Path(config_path)
        self.lock = threading.Lock()
        self.config = self._load_config()

    def _load_config(self) -> Dict:
        config = self.DEFAULT_CONFIG.copy()

        if not self.config_path.exists():
            print(f"Config file not found at {self.config_path}, using defaults")
            return self._validate_config(config)

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                user_config = json.load(f)
        except json.JSONDecodeError as e:
            print(f"Error parsing config file: {e}")
            print("Using default configuration")
            return self._validate_config(config)
        except OSError as e:
            print(f"Error loading config: {e}")
            print("Using default configuration")
            return self._validate_config(config)

        if isinstance(user_config, dict):
            config.update(user_config)
            print(f"Configuration loaded from {self.config_path}")
        else:
            print(f"Ignoring {self.config_path}: expected a JSON object")

        return self._validate_config(config)

    def _validate_config(self, config: Dict) -> Dict:
        """
        Replace invalid values with defaults and clamp numeric ranges.

        Args:
            config: Configuration dictionary to validate

        Returns:
            Validated configuration dictionary
        """
        for key, (low, high) in self.NUMERIC_RANGES.items():
            value = config.get(key)
            valid_type = int if key in self.INTEGER_KEYS else (int, float)
            if not isinstance(value, valid_type) or isinstance(value, bool):
                config[key] = self.DEFAULT_CONFIG[key]
                continue
            value = max(low, value)
            config[key] = value if high is None else min(high, value)

        # Opening the history window must never slow polling down
        config["detail_interval_seconds"] = min(
            config["detail_interval_seconds"], config["monitoring_interval_seconds"]
        )

        try:
            date.fromisoformat(str(config.get("target_deadline")))
        except ValueError:
            config["target_deadline"] = self.DEFAULT_CONFIG["target_deadline"]

        if config.get("log_level") not in self.VALID_LOG_LEVELS:
            config["log_level"] = "INFO"

        if not isinstance(config.get("data_dir"), str) or not config["data_dir"].strip():
            config["data_dir"] = self.DEFAULT_CONFIG["data_dir"]

        # Empty string disables the legacy import
        if not isinstance(config.get("legacy_cycles_file"), str):
            config["legacy_cycles_file"] = self.DEFAULT_CONFIG["legacy_cycles_file"]

        if not isinstance(config.get("auto_start_monitoring"), bool):
            config["auto_start_monitoring"] = True

        return config

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock:
            return self.config.get(key, default)

    def get_all(self) -> Dict:
        with self.lock:
            return self.config.copy()

    @property
    def data_dir(self) -> Path:
        """Directory holding the history database, state file and logs."""
        return Path(self.get("data_dir", "data"))

    @property
    def target_deadline(self) -> date:
        return date.fromisoformat(self.get("target_deadline"))

    def update(self, updates: Dict) -> bool:
        """
        Update multiple configuration values (in memory only; call save()).

        Args:
            updates: Dictionary of key-value pairs to update

        Returns:
            True once the merged configuration has been validated
        """
        with self.lock:
            self.config = self._validate_config({**self.config, **updates})
            print(f"Configuration updated: {list(updates.keys())}")
            return True

    def set(self, key: str, value: Any) -> bool:
        return self.update({key: value})

    def save(self) -> bool:
        """
        Write the configuration to disk.

        Returns:
            True if successful, False otherwise
        """
        with self.lock:
            try:
                self.config_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.config_path, 'w', encoding='utf-8') as f:
                    json.dump(self.config, f, indent=2)
            except OSError as e:
                print(f"Error saving configuration: {e}")
                return False

            print(f"Configuration saved to {self.config_path}")
            return True

    def reset_to_defaults(self) -> bool:
        with self.lock:
            self.config = self.DEFAULT_CONFIG.copy()
            print("Configuration reset to defaults")
            return True

    def reload(self) -> bool:
        """Re-read the configuration file, discarding unsaved changes."""
        with self.lock:
            self.config = self._load_config()
            print("Configuration reloaded")
            return True
