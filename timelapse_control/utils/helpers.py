"""
helpers.py
PURPOSE: Small conversion and formatting utilities shared across the package
"""

import math
from datetime import datetime

REPORT_TIMESTAMP_FORMAT = "%b %d, %Y, %H:%M:%S"

# Seconds per time unit, keyed by every spelling the commands accept
TIME_UNITS = {
    'second': 1, 'seconds': 1, 'second(s)': 1, 's': 1,
    'minute': 60, 'minutes': 60, 'minute(s)': 60, 'min': 60,
    'hour': 3600, 'hours': 3600, 'hour(s)': 3600, 'h': 3600,
}


def format_timestamp(dt=None, fmt=REPORT_TIMESTAMP_FORMAT):
    """Format a datetime (default: now) for reports."""
    if dt is None:
        dt = datetime.now()
    return dt.strftime(fmt)


def round_half_up(value):
    """Round to the nearest integer, halves upward (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def interval_to_seconds(n, unit):
    """
    Convert a time interval to whole seconds.

    Args:
        n: Number of units (may be fractional, e.g. 1.5 hours)
        unit: 'second(s)', 'minute(s)' or 'hour(s)'

    Returns:
        Interval in seconds, rounded to the nearest second

    Raises:
        ValueError: If the unit is unknown or n is negative
    """
    key = unit.strip().lower()
    if key not in TIME_UNITS:
        raise ValueError(f"Unknown time unit: '{unit}'")
    if n < 0:
        raise ValueError(f"Time interval cannot be negative: {n} {unit}")
    return round_half_up(n * TIME_UNITS[key])


def format_acquisition_report(microscope, position, channel, timestamp=None):
    """
    Describe one acquisition as a multi-line text block.

    Args:
        microscope: Microscope whose optics and incubation are reported
        position: Position being imaged
        channel: Channel being imaged
        timestamp: Time of acquisition (default: now)

    Returns:
        Report text ending with a blank line
    """
    lines = [
        format_timestamp(timestamp),
        "======================",
        f"Stage position: {position.name}",
        f"  - ({position.center[0]}, {position.center[1]}, {position.center[2]})",
        "",
        f"Channel settings: {channel.name}",
        f"  - Exposure time: {channel.exposure_time_ms}ms",
    ]
    # Report LEDs in wavelength order, not definition order
    for setting in sorted(channel.led_settings, key=lambda s: s.led.wavelength):
        lines.append(f"  - LED {setting.led.wavelength}: {setting.intensity}%")
    lines += [
        "",
        "Optics:",
        f"  - Lens: {microscope.lens}",
        f"  - Mag.Changer: {microscope.magnification_changer}",
        f"  - Binning: {microscope.binning}",
        "",
        "Incubation:",
        f"  - Temperature: {microscope.temperature}C",
        f"  - CO2 concentration: {microscope.co2_concentration}%",
        "",
        "Acquire stack",
        "",
    ]
    return "\n".join(lines) + "\n"
