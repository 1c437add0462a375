"""
Shared pytest configuration for Timelapse Control unit tests.

Forces matplotlib onto its non-interactive backend so the schedule preview
tests can run in any environment -- even without a display.

Usage:
    Simply run ``pytest`` from the project root.
"""

import matplotlib

matplotlib.use("Agg")
