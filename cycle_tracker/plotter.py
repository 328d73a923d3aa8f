"""
CyclePlotter - Generate matplotlib figures of daily cycle history
"""
import logging
import matplotlib
matplotlib.use('Agg')  # Non-GUI backend
import matplotlib.pyplot as plt
import matplotlib.dates as mdates
from datetime import datetime
import numpy as np

logger = logging.getLogger("CycleTracker.Plotter")


class CyclePlotter:
    """Generate visualization figures for daily cycle records"""

    def __init__(self, store):
        """
        Initialize the CyclePlotter

        Args:
            store: Record store providing get_daily_frame()
        """
        self.store = store

    def generate_figure(self, days=30):
        """
        Generate a figure with 2 subplots: cycles per day and charge used per day

        Args:
            days: Number of most recent recorded days to plot (default: 30)

        Returns:
            matplotlib.figure.Figure: The generated figure object
        """
        logger.info(f"Generating figure for {days} days of history")

        df = self.store.get_daily_frame()
        if days:
            df = df.tail(days)

        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(10, 7), dpi=100, sharex=True)
        fig.suptitle(f'Battery Cycles - Last {days} Days', fontsize=16, fontweight='bold')

        if df.empty:
            logger.warning("No data available for plotting")
            for ax in [ax1, ax2]:
                ax.text(0.5, 0.5, 'No data available',
                        horizontalalignment='center',
                        verticalalignment='center',
                        transform=ax.transAxes,
                        fontsize=14, color='gray')
                ax.set_xticks([])
                ax.set_yticks([])

            ax1.set_title('Cycles Per Day')
            ax2.set_title('Charge Used Per Day')
            fig.tight_layout()
            return fig

        dates = [ts.to_pydatetime() for ts in df['date']]

        self._plot_cycles(ax1, dates, df)
        self._plot_charge(ax2, dates, df)

        for ax in [ax1, ax2]:
            ax.xaxis.set_major_formatter(mdates.DateFormatter('%m/%d'))
            ax.xaxis.set_major_locator(mdates.AutoDateLocator())
            plt.setp(ax.xaxis.get_majorticklabels(), rotation=45, ha='right')
            ax.grid(True, alpha=0.3, linestyle='--')

        fig.tight_layout()
        logger.info("Figure generation complete")
        return fig

    def _plot_cycles(self, ax, dates, df):
        """Plot counted cycles as bars with raw (fractional) cycles as a line"""
        ax.set_title('Cycles Per Day', fontweight='bold')
        ax.set_ylabel('Cycles')

        cycles = df['cycles'].to_numpy(dtype=float)
        raw = df['raw_cycles'].to_numpy(dtype=float)

        ax.bar(dates, cycles, width=0.8, color='steelblue', alpha=0.7, label='Cycles')
        ax.plot(dates, raw, color='black', linewidth=2, marker='o', markersize=3,
                label='Raw Cycles')

        if len(cycles) > 0:
            average = float(np.mean(cycles))
            ax.axhline(y=average, color='red', linestyle='--', linewidth=1, alpha=0.5,
                       label=f'Average ({average:.2f}/day)')

        ax.set_ylim(bottom=0)
        ax.legend(loc='best', fontsize=8)

        logger.debug(f"Cycles plot: {len(dates)} days")

    def _plot_charge(self, ax, dates, df):
        """Plot charge used per day with cumulative total on a second axis"""
        ax.set_title('Charge Used Per Day', fontweight='bold')
        ax.set_ylabel('mAh')
        ax.set_xlabel('Day')

        charge = df['total_mah_used'].to_numpy(dtype=float)
        ax.plot(dates, charge, color='purple', linewidth=2, label='Charge Used')
        ax.fill_between(dates, 0, charge, alpha=0.2, color='purple')
        ax.set_ylim(bottom=0)

        cumulative = ax.twinx()
        cumulative.plot(dates, np.cumsum(charge), color='gray', linestyle=':',
                        linewidth=1, label='Cumulative')
        cumulative.set_ylabel('Cumulative mAh')
        cumulative.set_ylim(bottom=0)

        lines, labels = ax.get_legend_handles_labels()
        lines2, labels2 = cumulative.get_legend_handles_labels()
        ax.legend(lines + lines2, labels + labels2, loc='best', fontsize=8)

        logger.debug(f"Charge plot: {len(dates)} days")

    def export_png(self, figure, filepath=None):
        """
        Export the figure to a PNG file

        Args:
            figure: matplotlib.figure.Figure object to export
            filepath: Path where the PNG should be saved (default: None)
                     If None, uses a default path with timestamp

        Returns:
            str: Path to the saved PNG file
        """
        if filepath is None:
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            filepath = f'cycle_history_{timestamp}.png'

        try:
            logger.info(f"Exporting figure to: {filepath}")
            figure.savefig(filepath, dpi=100, bbox_inches='tight')
            logger.info(f"Figure successfully exported to: {filepath}")
            return filepath
        except Exception as e:
            logger.error(f"Failed to export figure: {e}")
            raise
        finally:
            plt.close(figure)
