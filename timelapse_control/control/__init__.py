"""
Control module for the Timelapse Control System.

This module provides control logic for:
- Ramp: Move a quantity linearly to a target over a command's cycles
- Timeline: Hold scheduled actions and fire them in a background thread
- Schedule builder: Resolve start/repetition policies into timeline entries
- Experiment control: Command-level API used by the script interpreter
"""

from .ramp import Quantity, Ramp
from .timeline import ActionFailure, DispatchState, DispatchTimeoutError, Timeline
from .schedule_builder import (
    RepetitionPolicy, RunContext, ScheduleBuilder, ScheduledRamp, StartPolicy
)
from .experiment_control import ExperimentControl

__all__ = [
    'Quantity',
    'Ramp',
    'ActionFailure',
    'DispatchState',
    'DispatchTimeoutError',
    'Timeline',
    'RepetitionPolicy',
    'RunContext',
    'ScheduleBuilder',
    'ScheduledRamp',
    'StartPolicy',
    'ExperimentControl',
]
