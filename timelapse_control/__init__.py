"""
Timelapse Control System.

Schedules microscope acquisitions and gradual setting changes (LED power,
exposure time, incubation temperature and CO2) on a timeline and fires them
at their planned instants.

Subpackages are imported lazily to avoid pulling in matplotlib when only the
scheduler is needed -- for example, during unit testing.
"""

__version__ = "0.1.0"
