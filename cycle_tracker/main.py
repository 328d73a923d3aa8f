"""
Entry point for Cycle Tracker with system tray icon and command line tools.

Orchestrates all components and provides a system tray interface showing
lifetime cycle progress, today's cycles and forward projections, plus CSV
backup export and restore.
"""

import argparse
import os
import platform
import signal
import subprocess
import sys
import threading
import tkinter as tk
from pathlib import Path
from tkinter import filedialog, messagebox
from typing import List, Optional

import pystray

from cycle_tracker import __version__
from cycle_tracker.backup import BackupFormatError
from cycle_tracker.clock import Clock
from cycle_tracker.config import ConfigManager
from cycle_tracker.database import PersistenceError, RecordStore
from cycle_tracker.engine import CycleEngine, StatusSnapshot
from cycle_tracker.history import HistoryAnalyzer
from cycle_tracker.icons import create_cycle_icon
from cycle_tracker.logger import cleanup_old_logs, log_dir_for, setup_logging
from cycle_tracker.models import PowerMode
from cycle_tracker.monitor import CycleMonitor
from cycle_tracker.plotter import CyclePlotter
from cycle_tracker.projection import ProjectionCalculator
from cycle_tracker.state import StateStore
from cycle_tracker.telemetry import HealthRefresher, SystemTelemetry

# Number of status rows reserved at the top of the tray menu
STATUS_SLOTS = 12


def build_engine(config: ConfigManager, clock: Optional[Clock] = None) -> CycleEngine:
    """
    Wire the engine to the on-disk stores and system telemetry.

    Args:
        config: ConfigManager instance
        clock: Clock override (system local time by default)

    Returns:
        CycleEngine instance
    """
    data_dir = config.data_dir
    clock = clock or Clock()
    telemetry = SystemTelemetry()

    projections = ProjectionCalculator(
        clock,
        threshold_percent=config.get("low_charge_threshold_percent", 10),
        target_total_cycles=config.get("target_total_cycles", 1000),
        deadline=config.target_deadline,
    )
    refresher = HealthRefresher(
        telemetry.official_health_percent,
        min_interval_seconds=config.get("official_health_refresh_minutes", 10) * 60,
    )

    legacy_file = config.get("legacy_cycles_file")
    return CycleEngine(
        telemetry,
        RecordStore(str(data_dir / "cycle_history.db")),
        StateStore(str(data_dir / "state.json")),
        clock=clock,
        projections=projections,
        health_refresher=refresher,
        legacy_cycles_path=data_dir / legacy_file if legacy_file else None,
    )


def open_folder(path: Path):
    """Open a folder in the platform file browser."""
    system = platform.system().lower()
    if system == "windows":
        os.startfile(path)
    elif system == "darwin":
        subprocess.Popen(["open", str(path)])
    else:
        subprocess.Popen(["xdg-open", str(path)])


class CycleTrackerApp:
    """Main application class with system tray icon."""

    def __init__(self, config: ConfigManager):
        """
        Initialize the Cycle Tracker application.

        Args:
            config: ConfigManager instance
        """
        self.config = config
        self.log_dir = log_dir_for(config)
        self.logger = setup_logging(self.config, str(self.log_dir))
        cleanup_old_logs(str(self.log_dir), self.config.get("log_retention_days", 30))

        self.engine = build_engine(self.config)
        self.monitor = CycleMonitor(self.config, self.engine)
        self.analyzer = HistoryAnalyzer(self.engine.records)
        self.plotter = CyclePlotter(self.engine.records)
        self.monitor.add_listener(self._on_snapshot)

        # Threading control
        self.shutdown_event = threading.Event()
        self.shutdown_initiated = False

        # Hidden Tkinter root window (required for dialogs)
        self.root = tk.Tk()
        self.root.withdraw()

        self.icon = None
        self.history_window = None
        self.status_lines: List[str] = ["Cycles: Loading..."]

        self.logger.info("=" * 60)
        self.logger.info("Cycle Tracker Application Initialized")
        self.logger.info(f"Data directory: {self.config.data_dir.resolve()}")
        self.logger.info(f"Platform: {platform.system()}")
        self.logger.info("=" * 60)

        # Setup signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        self.logger.info(f"Received signal {signum}, shutting down...")
        self.shutdown_event.set()
        try:
            self.root.after_idle(self.shutdown)
        except Exception:
            self.shutdown()

    def _check_shutdown_periodic(self):
        """Periodically check if shutdown was requested (makes Ctrl+C responsive)."""
        if self.shutdown_event.is_set():
            self.shutdown()
        else:
            self.root.after(100, self._check_shutdown_periodic)

    def _on_snapshot(self, snapshot: StatusSnapshot):
        """Refresh menu text and icon after each tick (monitor thread)."""
        self.status_lines = snapshot.lines
        if self.icon is None:
            return

        completion = None
        if snapshot.mah_to_next_cycle is not None and snapshot.max_capacity:
            completion = 1.0 - snapshot.mah_to_next_cycle / snapshot.max_capacity

        try:
            self.icon.icon = create_cycle_icon(
                completion, on_external_power=snapshot.power_mode is PowerMode.EXTERNAL
            )
            self.icon.title = self.status_lines[0]
            self.icon.update_menu()
        except Exception as e:
            self.logger.error(f"Error updating tray icon: {e}", exc_info=True)

    def _status_item(self, slot: int) -> pystray.MenuItem:
        return pystray.MenuItem(
            lambda item: self.status_lines[slot] if slot < len(self.status_lines) else "",
            None,
            enabled=False,
            visible=lambda item: slot < len(self.status_lines),
        )

    def start_monitoring(self):
        """Start the monitoring thread if not already running."""
        self.logger.info("Starting monitoring...")
        self.monitor.start()

    def _on_history(self, icon, item):
        """Handle 'History' menu click."""
        self.logger.debug("Opening History window")
        self.root.after(0, self._open_history)

    def _open_history(self):
        if self.history_window is not None and self.history_window.winfo_exists():
            self.history_window.lift()
            return

        from cycle_tracker.ui.history_window import HistoryWindow

        try:
            self.history_window = HistoryWindow(self.root, self.monitor, self.analyzer, self.plotter)
        except Exception as e:
            self.logger.error(f"Error opening history window: {e}", exc_info=True)
            messagebox.showerror("Error", f"Failed to open history window:\n{str(e)}")

    def _on_export(self, icon, item):
        """Handle 'Export Backup' menu click."""
        self.root.after(0, self._export_backup)

    def _export_backup(self):
        directory = filedialog.askdirectory(title="Choose a folder for the backup")
        if not directory:
            self.logger.debug("Export cancelled by user")
            return

        try:
            daily_path, breakdown_path = self.monitor.run_exclusive(
                lambda engine: engine.export_backup(directory)
            )
            messagebox.showinfo(
                "Export Successful",
                f"Backup written to:\n{daily_path}\n{breakdown_path}",
            )
        except (PersistenceError, OSError) as e:
            self.logger.error(f"Error exporting backup: {e}", exc_info=True)
            messagebox.showerror("Export Error", f"Failed to export backup:\n{str(e)}")

    def _on_restore(self, icon, item):
        """Handle 'Restore From Backup' menu click."""
        self.root.after(0, self._restore_backup)

    def _restore_backup(self):
        paths = filedialog.askopenfilenames(
            title="Select ZDAILYCYCLE.csv and ZCYCLEBREAKDOWN.csv",
            filetypes=[("CSV files", "*.csv"), ("All files", "*.*")],
        )
        if not paths:
            self.logger.debug("Restore cancelled by user")
            return

        if not messagebox.askyesno(
            "Restore From Backup",
            "All recorded history will be replaced by the backup.\nContinue?",
        ):
            return

        try:
            result = self.monitor.run_exclusive(lambda engine: engine.restore_backup(paths))
            messagebox.showinfo("Restore Complete", result.summary())
        except BackupFormatError as e:
            self.logger.warning(f"Backup rejected: {e}")
            messagebox.showerror("Restore Error", str(e))
        except (PersistenceError, OSError) as e:
            self.logger.error(f"Error restoring backup: {e}", exc_info=True)
            messagebox.showerror("Restore Error", f"Failed to restore backup:\n{str(e)}")

    def _on_copy_location(self, icon, item):
        """Handle 'Copy Store Location' menu click."""
        self.root.after(0, self._copy_location)

    def _copy_location(self):
        location = self.engine.records.location
        if location is None:
            messagebox.showwarning("Store Location", "No on-disk store is in use.")
            return

        self.root.clipboard_clear()
        self.root.clipboard_append(str(location.resolve()))
        self.root.update()
        self.logger.info(f"Copied store location: {location}")

    def _on_open_logs_folder(self, icon, item):
        """Handle 'Open Logs Folder' menu click."""
        try:
            logs_path = self.log_dir.resolve()
            logs_path.mkdir(parents=True, exist_ok=True)
            open_folder(logs_path)
            self.logger.info(f"Opened logs folder: {logs_path}")
        except Exception as e:
            self.logger.error(f"Error opening logs folder: {e}", exc_info=True)
            error_msg = str(e)
            self.root.after(
                0, lambda: messagebox.showerror("Error", f"Failed to open logs folder:\n{error_msg}")
            )

    def _on_quit(self, icon, item):
        """Handle 'Quit' menu click."""
        self.logger.info("Quit requested from tray menu")
        self.shutdown()

    def shutdown(self):
        """Perform graceful shutdown of the application."""
        if self.shutdown_initiated:
            return

        self.shutdown_initiated = True
        self.logger.info("Initiating shutdown...")
        self.shutdown_event.set()

        if not self.monitor.stop_event.is_set():
            self.monitor.stop()

        self.engine.records.close()

        if self.icon:
            self.icon.stop()

        try:
            if threading.current_thread() is threading.main_thread():
                self.root.quit()
            else:
                self.root.after(0, self.root.quit)
        except Exception as e:
            self.logger.error(f"Error quitting Tkinter: {e}")

        self.logger.info("Shutdown complete")

    def _create_tray_menu(self):
        """
        Create system tray menu.

        Returns:
            pystray.Menu object
        """
        menu_items = [self._status_item(slot) for slot in range(STATUS_SLOTS)]
        menu_items.extend(
            [
                pystray.Menu.SEPARATOR,
                pystray.MenuItem("History", self._on_history),
                pystray.Menu.SEPARATOR,
                pystray.MenuItem("Export Backup", self._on_export),
                pystray.MenuItem("Restore From Backup", self._on_restore),
                pystray.MenuItem("Copy Store Location", self._on_copy_location),
                pystray.MenuItem("Open Logs Folder", self._on_open_logs_folder),
                pystray.Menu.SEPARATOR,
                pystray.MenuItem("Quit", self._on_quit),
            ]
        )
        return pystray.Menu(*menu_items)

    def run(self):
        """Run the application with system tray icon."""
        try:
            self.icon = pystray.Icon(
                "Cycle Tracker", create_cycle_icon(None), "Cycle Tracker",
                menu=self._create_tray_menu(),
            )

            if self.config.get("auto_start_monitoring", True):
                self.logger.info("Auto-starting monitoring")
                self.start_monitoring()

            system = platform.system()
            if system in ["Windows", "Linux"]:
                # pystray in background thread, Tkinter on main thread
                icon_thread = threading.Thread(
                    target=self.icon.run, daemon=True, name="PystrayThread"
                )
                icon_thread.start()

                self.root.after(100, self._check_shutdown_periodic)
                self.root.mainloop()
            else:
                # macOS: pystray must own the main thread
                self.icon.run()

        except Exception as e:
            self.logger.error(f"Error running application: {e}", exc_info=True)
            raise

        finally:
            if not self.shutdown_event.is_set():
                self.shutdown()


def _command_status(config, args) -> int:
    engine = build_engine(config)
    snapshot = engine.tick()
    for line in snapshot.lines:
        print(line)
    for error in snapshot.persistence_errors:
        print(f"Store error: {error}", file=sys.stderr)
    return 1 if snapshot.persistence_errors else 0


def _command_export(config, args) -> int:
    engine = build_engine(config)
    daily_path, breakdown_path = engine.export_backup(args.directory)
    print(f"Wrote {daily_path}")
    print(f"Wrote {breakdown_path}")
    return 0


def _command_restore(config, args) -> int:
    engine = build_engine(config)
    try:
        result = engine.restore_backup(args.files)
    except BackupFormatError as e:
        print(f"Restore failed: {e}", file=sys.stderr)
        return 2
    print(result.summary())
    return 0


def _command_where(config, args) -> int:
    location = RecordStore(str(config.data_dir / "cycle_history.db")).location
    print(location.resolve())
    return 0


def _command_plot(config, args) -> int:
    store = RecordStore(str(config.data_dir / "cycle_history.db"))
    plotter = CyclePlotter(store)
    print(plotter.export_png(plotter.generate_figure(args.days), args.output))
    return 0


def _command_increment(config, args) -> int:
    engine = build_engine(config)
    print(f"Cycles today: {engine.increment_today_cycle()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cycle-tracker",
        description="Track battery charge cycles per day.",
    )
    parser.add_argument("--config", default="config.json", help="Path to configuration file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("tray", help="Run the system tray app (default)")
    subparsers.add_parser("status", help="Take one reading and print the status lines")

    export_parser = subparsers.add_parser("export", help="Write a CSV backup into a folder")
    export_parser.add_argument("directory")

    restore_parser = subparsers.add_parser("restore", help="Replace history from CSV backup files")
    restore_parser.add_argument("files", nargs="+")

    subparsers.add_parser("where", help="Print the history store location")

    plot_parser = subparsers.add_parser("plot", help="Save a chart of daily cycles as PNG")
    plot_parser.add_argument("output")
    plot_parser.add_argument("--days", type=int, default=30)

    subparsers.add_parser("increment", help="Add one cycle to today's record")
    return parser


COMMANDS = {
    "status": _command_status,
    "export": _command_export,
    "restore": _command_restore,
    "where": _command_where,
    "plot": _command_plot,
    "increment": _command_increment,
}


def main(argv=None):
    """Entry point for the application."""
    args = build_parser().parse_args(argv)
    config = ConfigManager(args.config)

    command = COMMANDS.get(args.command)
    if command is not None:
        setup_logging(config)
        try:
            sys.exit(command(config, args))
        except PersistenceError as e:
            print(f"Store error: {e}", file=sys.stderr)
            sys.exit(1)

    try:
        app = CycleTrackerApp(config)
        app.run()

    except KeyboardInterrupt:
        print("\nShutdown requested by user")

    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
