"""
Polling loop for Cycle Tracker.

Runs CycleEngine.tick() on a background thread, every 5 seconds normally and
every second while the history window is open, and publishes each
StatusSnapshot to registered listeners.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

from cycle_tracker.engine import CycleEngine, StatusSnapshot


class CycleMonitor:
    """
    Drives the accounting engine from a background thread.

    All engine access goes through this object so the engine only ever runs
    one operation at a time.
    """

    def __init__(self, config, engine: CycleEngine):
        """
        Initialize cycle monitor.

        Args:
            config: ConfigManager instance
            engine: CycleEngine instance
        """
        self.config = config
        self.engine = engine
        self.logger = logging.getLogger("CycleTracker.Monitor")

        # Threading control
        self.stop_event = threading.Event()  # Set when stopping to wake thread immediately
        self.wake_event = threading.Event()  # Set to run the next tick early
        self.monitor_thread = None
        self.engine_lock = threading.Lock()

        # Latest snapshot cache
        self._latest: Optional[StatusSnapshot] = None
        self._latest_timestamp = None
        self._cache_lock = threading.Lock()

        self.detail_visible = False
        self.listeners: List[Callable[[StatusSnapshot], None]] = []

    @property
    def interval(self) -> float:
        """Seconds between ticks for the current view."""
        if self.detail_visible:
            return self.config.get("detail_interval_seconds", 1)
        return self.config.get("monitoring_interval_seconds", 5)

    def set_detail_visible(self, visible: bool):
        """Switch to the fast interval while a detail view is open."""
        if visible == self.detail_visible:
            return
        self.detail_visible = visible
        self.logger.info(f"Polling every {self.interval}s")
        self.wake_event.set()

    def add_listener(self, listener: Callable[[StatusSnapshot], None]):
        self.listeners.append(listener)

    def start(self):
        """Start monitoring in background thread."""
        if self.monitor_thread and self.monitor_thread.is_alive():
            self.logger.warning("Monitor already running")
            return

        self.logger.info("Starting cycle monitor...")
        self.stop_event.clear()
        self.monitor_thread = threading.Thread(target=self._monitor_loop, daemon=True)
        self.monitor_thread.start()

    def stop(self):
        """Stop monitoring gracefully."""
        if self.stop_event.is_set():
            self.logger.warning("Monitor not running")
            return

        self.logger.info("Stopping cycle monitor...")
        self.stop_event.set()
        self.wake_event.set()

        if self.monitor_thread:
            self.monitor_thread.join(timeout=2.0)

        self.logger.info("Cycle monitor stopped")

    def _monitor_loop(self):
        """Main monitoring loop."""
        self.logger.info("Monitor loop started")

        while not self.stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                self.logger.error(f"Error in monitor loop: {e}", exc_info=True)

            # Wait for next interval (wakes immediately on stop or view change)
            self.wake_event.wait(timeout=self.interval)
            self.wake_event.clear()

        self.logger.info("Monitor loop exited")

    def tick(self) -> StatusSnapshot:
        """
        Run one engine tick and notify listeners.

        Returns:
            The new snapshot
        """
        with self.engine_lock:
            snapshot = self.engine.tick()

        with self._cache_lock:
            self._latest = snapshot
            self._latest_timestamp = time.time()

        for error in snapshot.persistence_errors:
            self.logger.warning(f"Tick completed with store error: {error}")

        for listener in list(self.listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self.logger.error(f"Error in snapshot listener: {e}", exc_info=True)

        return snapshot

    def latest_snapshot(self, max_age_seconds: Optional[float] = None) -> Optional[StatusSnapshot]:
        """
        Get the most recent snapshot.

        Args:
            max_age_seconds: Run a fresh tick if the cached one is older than this

        Returns:
            Snapshot, or None if no tick has run
        """
        with self._cache_lock:
            snapshot = self._latest
            timestamp = self._latest_timestamp

        if max_age_seconds is not None and (
            snapshot is None or time.time() - timestamp > max_age_seconds
        ):
            return self.tick()
        return snapshot

    def run_exclusive(self, action: Callable[[CycleEngine], object]):
        """
        Run an action against the engine between ticks.

        Args:
            action: Callable receiving the engine

        Returns:
            Whatever action returns
        """
        with self.engine_lock:
            return action(self.engine)
