"""
schedule_plot.py
PURPOSE: Preview the setpoints that scheduled ramps will apply over the run
KEY CONCEPT: Render with a bare matplotlib Figure (no GUI backend) and save to file

Each ramped quantity gets its own stacked axis because units differ
(percent, milliseconds, degrees). Values are drawn as steps: a setpoint holds
until the next cycle fires.
"""

from matplotlib.figure import Figure
import matplotlib.dates as mdates


class SchedulePreviewPlot:
    # Color cycle for the ramped quantities
    COLORS = ['#1f77b4', '#d62728', '#2ca02c', '#ff7f0e',
              '#9467bd', '#8c564b', '#e377c2', '#17becf']

    def __init__(self, width=10, height_per_ramp=2.5, dpi=100):
        """
        Initialize the preview plot.

        Args:
            width: Figure width in inches
            height_per_ramp: Height of each quantity's axis in inches
            dpi: Resolution used when saving
        """
        self.width = width
        self.height_per_ramp = height_per_ramp
        self.dpi = dpi
        self.fig = None
        self.axes = []

    def update(self, scheduled_ramps):
        """
        Redraw the preview for a list of ScheduledRamp.

        The current value of each quantity is taken as the ramp start; the
        ramps themselves are not modified.

        Args:
            scheduled_ramps: ScheduledRamp objects to draw

        Returns:
            The matplotlib Figure
        """
        n = max(1, len(scheduled_ramps))
        self.fig = Figure(figsize=(self.width, self.height_per_ramp * n), dpi=self.dpi)
        self.axes = []

        if not scheduled_ramps:
            ax = self.fig.add_subplot(1, 1, 1)
            ax.text(0.5, 0.5, 'No ramped commands scheduled',
                    ha='center', va='center', transform=ax.transAxes)
            ax.set_axis_off()
            self.axes.append(ax)
            return self.fig

        for i, scheduled in enumerate(scheduled_ramps):
            ax = self.fig.add_subplot(n, 1, i + 1)
            ramp = scheduled.ramp
            start = ramp.start_value
            if start is None:
                start = ramp.quantity.read()
            values = ramp.planned_values(start)

            color = self.COLORS[i % len(self.COLORS)]
            ax.plot(scheduled.instants, values, drawstyle='steps-post',
                    marker='o', linewidth=2, color=color, label=scheduled.name)
            ax.set_ylabel(scheduled.name, fontsize=8)
            ax.grid(True, alpha=0.3)
            ax.xaxis.set_major_formatter(mdates.DateFormatter('%H:%M:%S'))
            self.axes.append(ax)

        self.axes[-1].set_xlabel('Time')
        self.fig.autofmt_xdate()
        self.fig.tight_layout()
        return self.fig

    def save(self, filepath):
        """
        Save the last drawn preview.

        Args:
            filepath: Output path; the format follows the extension (.png, .pdf, .svg)

        Returns:
            The path written
        """
        if self.fig is None:
            raise RuntimeError("Nothing to save: call update() first")
        self.fig.savefig(filepath, dpi=self.dpi)
        return filepath


def plot_ramp_preview(scheduled_ramps, filepath):
    """Draw scheduled ramps and save the preview to filepath."""
    plot = SchedulePreviewPlot()
    plot.update(scheduled_ramps)
    return plot.save(filepath)
