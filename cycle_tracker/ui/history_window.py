"""
History window for browsing daily cycle records.

Shows live status lines, summary totals across days, a per-day list with
breakdown detail and an embedded matplotlib chart. While open, the monitor
polls at the fast detail interval.
"""

import logging
import tkinter as tk
from datetime import date
from tkinter import messagebox, ttk

import matplotlib.pyplot as plt
from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg

from cycle_tracker.formatting import PLACEHOLDER, format_clock_duration, format_decimal


class HistoryWindow(tk.Toplevel):
    """
    Toplevel window for daily cycle history.

    Status lines refresh every second; the day list and chart refresh on
    demand.
    """

    # Map range strings to number of days
    RANGE_MAP = {
        "7 days": 7,
        "30 days": 30,
        "90 days": 90,
        "All": None,
    }

    DAY_COLUMNS = ("date", "cycles", "raw_cycles", "mah", "on_battery", "plugged_in")

    def __init__(self, parent, monitor, analyzer, plotter):
        """
        Initialize the history window.

        Args:
            parent: Parent tkinter window
            monitor: CycleMonitor instance
            analyzer: HistoryAnalyzer instance
            plotter: CyclePlotter instance
        """
        super().__init__(parent)

        self.monitor = monitor
        self.analyzer = analyzer
        self.plotter = plotter
        self.logger = logging.getLogger("CycleTracker.HistoryWindow")
        self.refresh_job = None
        self.current_figure = None
        self.canvas = None

        self.title("Cycle History")
        self.geometry("900x800")
        self.protocol("WM_DELETE_WINDOW", self._on_close)

        self._setup_ui()

        self.monitor.set_detail_visible(True)
        self._refresh_history()
        self._refresh_status()

    def _setup_ui(self):
        """Setup the user interface."""
        control_frame = ttk.Frame(self, padding="5")
        control_frame.pack(side=tk.TOP, fill=tk.X)

        ttk.Label(control_frame, text="Range:").pack(side=tk.LEFT, padx=(0, 5))
        self.range_var = tk.StringVar(value="30 days")
        self.range_combo = ttk.Combobox(
            control_frame,
            textvariable=self.range_var,
            values=list(self.RANGE_MAP.keys()),
            state="readonly",
            width=10,
        )
        self.range_combo.pack(side=tk.LEFT, padx=5)
        self.range_combo.bind("<<ComboboxSelected>>", lambda _event: self._refresh_history())

        ttk.Button(control_frame, text="Refresh", command=self._refresh_history).pack(
            side=tk.LEFT, padx=5
        )
        ttk.Button(control_frame, text="Close", command=self._on_close).pack(side=tk.RIGHT, padx=5)

        # Live status
        status_frame = ttk.LabelFrame(self, text="Now", padding="5")
        status_frame.pack(side=tk.TOP, fill=tk.X, padx=5)
        self.status_label = ttk.Label(status_frame, text="Waiting for first reading...",
                                      font=("Arial", 10), justify=tk.LEFT)
        self.status_label.pack(side=tk.LEFT, anchor=tk.W)

        # Summary totals
        summary_frame = ttk.LabelFrame(self, text="Summary", padding="5")
        summary_frame.pack(side=tk.TOP, fill=tk.X, padx=5, pady=(5, 0))
        self.summary_label = ttk.Label(summary_frame, text=PLACEHOLDER, font=("Arial", 10),
                                       justify=tk.LEFT)
        self.summary_label.pack(side=tk.LEFT, anchor=tk.W)

        # Day list and detail
        paned = ttk.PanedWindow(self, orient=tk.HORIZONTAL)
        paned.pack(side=tk.TOP, fill=tk.BOTH, expand=True, padx=5, pady=5)

        self.day_tree = ttk.Treeview(paned, columns=self.DAY_COLUMNS, show="headings", height=8)
        for column, heading, width in (
            ("date", "Date", 90),
            ("cycles", "Cycles", 60),
            ("raw_cycles", "Raw", 60),
            ("mah", "mAh Used", 80),
            ("on_battery", "On Battery", 100),
            ("plugged_in", "Plugged In", 100),
        ):
            self.day_tree.heading(column, text=heading)
            self.day_tree.column(column, width=width, anchor=tk.E if column != "date" else tk.W)
        self.day_tree.bind("<<TreeviewSelect>>", self._on_day_selected)
        paned.add(self.day_tree, weight=3)

        self.detail_text = tk.Text(paned, width=36, height=8, font=("Courier", 9), state=tk.DISABLED)
        paned.add(self.detail_text, weight=2)

        # Chart
        self.canvas_frame = ttk.Frame(self)
        self.canvas_frame.pack(side=tk.TOP, fill=tk.BOTH, expand=True)

    def _refresh_status(self):
        """Refresh live status lines from the latest snapshot."""
        try:
            snapshot = self.monitor.latest_snapshot()
            if snapshot is not None:
                self.status_label.config(text="\n".join(snapshot.lines))
        except Exception as e:
            self.logger.error(f"Error refreshing status: {e}", exc_info=True)
        finally:
            self.refresh_job = self.after(1000, self._refresh_status)

    def _refresh_history(self):
        """Reload summary, day list and chart."""
        days = self.RANGE_MAP.get(self.range_var.get(), 30)
        try:
            summary = self.analyzer.summary(days)
            self.summary_label.config(text=self._summary_text(summary))

            self.day_tree.delete(*self.day_tree.get_children())
            frame = self.analyzer.daily_frame(days)
            for row in frame.iloc[::-1].itertuples(index=False):
                self.day_tree.insert(
                    "",
                    tk.END,
                    iid=row.date.date().isoformat(),
                    values=(
                        row.date.date().isoformat(),
                        int(row.cycles),
                        format_decimal(row.raw_cycles),
                        f"{row.total_mah_used:.0f}",
                        format_clock_duration(row.time_on_battery),
                        format_clock_duration(row.time_plugged_in),
                    ),
                )

            self._refresh_plot(days or len(frame))

        except Exception as e:
            self.logger.error(f"Error refreshing history: {e}", exc_info=True)
            messagebox.showerror("Error", f"Failed to load history:\n{str(e)}", parent=self)

    @staticmethod
    def _summary_text(summary) -> str:
        if not summary["days"]:
            return "No recorded days yet"
        return (
            f"{summary['days']} days ({summary['first_day']} to {summary['last_day']})\n"
            f"Cycles: {summary['total_cycles']:.0f}  |  "
            f"Raw cycles: {format_decimal(summary['total_raw_cycles'])}  |  "
            f"Average: {format_decimal(summary['average_cycles_per_day'])}/day\n"
            f"Charge used: {summary['total_total_mah_used']:.0f} mAh  |  "
            f"On battery: {format_clock_duration(summary['total_time_on_battery'])}  |  "
            f"Plugged in: {format_clock_duration(summary['total_time_plugged_in'])}\n"
            f"Busiest day: {summary['busiest_day']} ({summary['busiest_day_cycles']} cycles)"
        )

    def _on_day_selected(self, _event=None):
        selection = self.day_tree.selection()
        if not selection:
            return

        detail = self.analyzer.day_detail(date.fromisoformat(selection[0]))
        lines = []
        if detail is None:
            lines.append("No record")
        else:
            lines.append(f"{detail['date']}")
            lines.append(f"Cycles: {detail['cycles']}")
            lines.append(f"Raw cycles: {format_decimal(detail['raw_cycles'])}")
            lines.append(f"mAh used: {detail['total_mah_used']:.0f}")
            lines.append(f"On battery: {detail['time_on_battery']}")
            lines.append(f"Plugged in: {detail['time_plugged_in']}")
            lines.append("")
            lines.append("Breakdowns:")
            if not detail["breakdowns"]:
                lines.append(f"  {PLACEHOLDER}")
            for b in detail["breakdowns"]:
                partial = " (partial)" if b["is_partial"] else ""
                lines.append(
                    f"  #{b['index']}: {b['mah_used']:.0f} mAh, "
                    f"{b['completion_percent']:.1f}%{partial}"
                )

        self.detail_text.config(state=tk.NORMAL)
        self.detail_text.delete("1.0", tk.END)
        self.detail_text.insert(tk.END, "\n".join(lines))
        self.detail_text.config(state=tk.DISABLED)

    def _refresh_plot(self, days):
        new_figure = self.plotter.generate_figure(days)

        if self.current_figure is not None:
            plt.close(self.current_figure)
        if self.canvas is not None:
            self.canvas.get_tk_widget().destroy()
            self.canvas = None

        self.current_figure = new_figure
        self.canvas = FigureCanvasTkAgg(self.current_figure, master=self.canvas_frame)
        self.canvas.draw_idle()
        self.canvas.get_tk_widget().pack(side=tk.BOTTOM, fill=tk.BOTH, expand=True)

    def _on_close(self):
        """Handle window close event."""
        if self.refresh_job:
            self.after_cancel(self.refresh_job)
            self.refresh_job = None

        self.monitor.set_detail_visible(False)

        if self.canvas is not None:
            self.canvas.get_tk_widget().destroy()
            self.canvas = None
        if self.current_figure is not None:
            plt.close(self.current_figure)
            self.current_figure = None

        self.destroy()
