"""
Schedule Builder for Experiment Commands.

Turns a command's start policy and repetition policy into concrete instants
and places the command's actions on the Timeline. Commands that adjust a
quantity over several cycles share one Ramp across their cycles.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from fractions import Fraction
from functools import partial
from typing import Any, Callable, List, Optional

from .ramp import Quantity, Ramp
from .timeline import Timeline


@dataclass(frozen=True)
class RunContext:
    """
    Per-run reference for resolving start policies.

    Attributes:
        global_start: Instant the experiment run was started
    """
    global_start: datetime

    @classmethod
    def starting_now(cls, clock: Callable[[], datetime] = datetime.now) -> 'RunContext':
        """Create a context anchored at the current instant."""
        return cls(global_start=clock())


@dataclass(frozen=True)
class StartPolicy:
    """
    When a command first fires.

    Either an absolute time of day, or a delay after the start of the run.

    Attributes:
        time_of_day: Absolute wall-clock time, or None for a relative start
        delay_sec: Delay after the run start (ignored if time_of_day is set)
    """
    time_of_day: Optional[time] = None
    delay_sec: float = 0.0

    def __post_init__(self):
        """Validate policy after initialization."""
        if self.delay_sec < 0:
            raise ValueError(f"Start delay cannot be negative: {self.delay_sec}")

    @classmethod
    def at_beginning(cls) -> 'StartPolicy':
        """Fire as soon as the run starts."""
        return cls()

    @classmethod
    def at(cls, time_of_day: time) -> 'StartPolicy':
        """Fire at a wall-clock time of day."""
        return cls(time_of_day=time_of_day)

    @classmethod
    def after(cls, delay_sec: float) -> 'StartPolicy':
        """Fire a number of seconds after the run starts."""
        return cls(delay_sec=delay_sec)

    def is_absolute(self) -> bool:
        return self.time_of_day is not None


@dataclass(frozen=True)
class RepetitionPolicy:
    """
    How often a command fires.

    Attributes:
        interval_sec: Time between cycles (periodic only)
        duration_sec: Total time span covered by the cycles (periodic only)
        periodic: False for a single firing
    """
    interval_sec: float = 0.0
    duration_sec: float = 0.0
    periodic: bool = False

    def __post_init__(self):
        """Validate policy after initialization."""
        if not self.periodic:
            return
        if self.interval_sec <= 0:
            raise ValueError(f"Repetition interval must be positive: {self.interval_sec}")
        if self.duration_sec < 0:
            raise ValueError(f"Repetition duration cannot be negative: {self.duration_sec}")

    @classmethod
    def once(cls) -> 'RepetitionPolicy':
        """Fire a single time."""
        return cls()

    @classmethod
    def every(cls, interval_sec: float, duration_sec: float) -> 'RepetitionPolicy':
        """Fire every interval_sec for duration_sec."""
        return cls(interval_sec=interval_sec, duration_sec=duration_sec, periodic=True)

    @property
    def n_cycles(self) -> int:
        """Number of times the command fires."""
        if not self.periodic or self.duration_sec < self.interval_sec:
            return 1
        # Decimal text of each float, so every(0.1, 0.3) counts 0.3 / 0.1 as exactly 3
        ratio = Fraction(str(self.duration_sec)) / Fraction(str(self.interval_sec))
        return int(ratio) + 1

    def offsets(self) -> List[timedelta]:
        """Offset of each cycle from the start instant."""
        return [timedelta(seconds=c * self.interval_sec) for c in range(self.n_cycles)]


@dataclass
class ScheduledRamp:
    """
    A ramped command placed on the timeline.

    Attributes:
        name: Name of the driven quantity
        instants: Instant of each cycle, ascending
        ramp: The Ramp shared by all cycles
    """
    name: str
    instants: List[datetime]
    ramp: Ramp


class ScheduleBuilder:
    """
    Places commands on a Timeline relative to a RunContext.

    Example:
        builder = ScheduleBuilder(timeline, RunContext.starting_now())
        builder.schedule_action(StartPolicy.after(60),
                                RepetitionPolicy.every(10, 25),
                                take_snapshot)
        # take_snapshot is due at +60s, +70s, +80s
    """

    def __init__(self, timeline: Timeline, context: RunContext):
        self.timeline = timeline
        self.context = context

    def resolve_start(self, start: StartPolicy) -> datetime:
        """
        Get the absolute instant of a command's first cycle.

        A time of day earlier than the run start's time of day refers to the
        following day, so runs can continue past midnight.

        Args:
            start: Start policy of the command

        Returns:
            Absolute start instant
        """
        global_start = self.context.global_start
        if not start.is_absolute():
            return global_start + timedelta(seconds=start.delay_sec)

        instant = datetime.combine(global_start.date(), start.time_of_day)
        if start.time_of_day < global_start.time():
            instant += timedelta(days=1)
        return instant

    def plan_instants(self, start: StartPolicy, repetition: RepetitionPolicy) -> List[datetime]:
        """
        Get the instant of every cycle of a command.

        Args:
            start: Start policy of the command
            repetition: Repetition policy of the command

        Returns:
            Instants in ascending order, one per cycle
        """
        first = self.resolve_start(start)
        return [first + offset for offset in repetition.offsets()]

    def schedule_action(self, start: StartPolicy, repetition: RepetitionPolicy,
                        action: Callable[[], Any]) -> List[datetime]:
        """
        Place the same action on the timeline at every cycle.

        Args:
            start: Start policy of the command
            repetition: Repetition policy of the command
            action: Zero-argument action, run once per cycle

        Returns:
            Instants the action was placed at
        """
        instants = self.plan_instants(start, repetition)
        for instant in instants:
            self.timeline.put(instant, action)
        return instants

    def schedule_ramp(self, start: StartPolicy, repetition: RepetitionPolicy,
                      quantity: Quantity, target: float) -> ScheduledRamp:
        """
        Ramp a quantity to a target value over the cycles of a command.

        Args:
            start: Start policy of the command
            repetition: Repetition policy of the command
            quantity: Quantity to drive
            target: Value applied on the last cycle

        Returns:
            ScheduledRamp describing what was placed on the timeline
        """
        instants = self.plan_instants(start, repetition)
        ramp = Ramp(quantity, target, len(instants))
        for cycle, instant in enumerate(instants):
            self.timeline.put(instant, partial(ramp.advance, cycle))
        return ScheduledRamp(name=quantity.name, instants=instants, ramp=ramp)
