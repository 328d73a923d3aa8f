"""
Logging setup for Cycle Tracker.

All components log under the "CycleTracker" logger. Each calendar day gets its
own rotating file in <data_dir>/logs, and days past the retention window are
removed at startup.
"""

import logging
import time
from datetime import date, datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "CycleTracker"
LOG_PREFIX = "cycle_tracker_"
MAX_LOG_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5


def log_dir_for(config) -> Path:
    """Directory holding the log files for a configuration."""
    return config.data_dir / "logs"


def log_file_for(log_dir: Path, day: date) -> Path:
    return log_dir / f"{LOG_PREFIX}{day.isoformat()}.log"


def setup_logging(config, log_dir: Optional[str] = None, console_level: int = logging.WARNING) -> logging.Logger:
    """
    Attach a daily rotating file handler and a console handler.

    Calling it again replaces the handlers, so the CLI and the tray app can
    both set up logging in one process.

    Args:
        config: ConfigManager instance
        log_dir: Directory for log files (defaults to <data_dir>/logs)
        console_level: Minimum level echoed to stderr

    Returns:
        The "CycleTracker" logger
    """
    log_path = Path(log_dir) if log_dir else log_dir_for(config)
    log_path.mkdir(parents=True, exist_ok=True)

    level_name = str(config.get("log_level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file = log_file_for(log_path, datetime.now().date())
    file_handler = RotatingFileHandler(
        log_file, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    logger.info(
        f"Logging to {log_file} at {level_name} "
        f"(data dir {config.data_dir}, target {config.get('target_total_cycles')} cycles "
        f"by {config.get('target_deadline')})"
    )
    return logger


def _log_day(path: Path) -> Optional[date]:
    # cycle_tracker_2026-03-10.log or a rotated cycle_tracker_2026-03-10.log.1
    stem = path.name[len(LOG_PREFIX):].split(".", 1)[0]
    try:
        return date.fromisoformat(stem)
    except ValueError:
        return None


def cleanup_old_logs(log_dir: str, retention_days: int = 30, today: Optional[date] = None) -> int:
    """
    Delete log files for days older than the retention window.

    Files are dated by the day in their name; anything else falls back to
    its modification time.

    Args:
        log_dir: Directory containing log files
        retention_days: Number of days to keep
        today: Reference day, defaults to the local date

    Returns:
        Number of files deleted
    """
    log_path = Path(log_dir)
    logger = logging.getLogger(f"{ROOT_LOGGER}.Logs")
    if not log_path.exists():
        return 0

    today = today or datetime.now().date()
    cutoff_day = today - timedelta(days=retention_days)
    cutoff_time = time.time() - retention_days * 86400

    deleted = 0
    for log_file in log_path.glob("*.log*"):
        day = _log_day(log_file) if log_file.name.startswith(LOG_PREFIX) else None
        try:
            expired = day < cutoff_day if day else log_file.stat().st_mtime < cutoff_time
            if expired:
                log_file.unlink()
                deleted += 1
                logger.info(f"Deleted old log file: {log_file.name}")
        except OSError as e:
            logger.warning(f"Error deleting log file {log_file}: {e}")

    return deleted
