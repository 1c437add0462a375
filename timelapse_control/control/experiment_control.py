"""
Experiment Control for Timelapse Microscopy.

Command-level entry points for a timelapse experiment. A command
interpreter calls one method per recognised sentence; definitions take
effect immediately, acquisitions and adjustments are placed on the
Timeline and fire when the experiment is run.
"""

from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from ..hardware.microscope import (
    LED, Binning, Channel, Lens, LEDSetting, MagnificationChanger, Microscope, Position
)
from ..utils.helpers import round_half_up
from .ramp import Quantity
from .schedule_builder import (
    RepetitionPolicy, RunContext, ScheduleBuilder, ScheduledRamp, StartPolicy
)
from .timeline import Timeline


class ExperimentControl:
    """
    Owns the microscope, the timeline and the per-run context.

    Typical run:
        control = ExperimentControl()
        control.reset()
        control.define_channel("DAPI", [LEDSetting(LED.LED_385, 30)], 50)
        control.define_position("Well1", (100, 100, 10), (500, 500, 20))
        control.acquire(StartPolicy.at_beginning(),
                        RepetitionPolicy.every(600, 3600),
                        [Microscope.ALL_POSITIONS], [Microscope.ALL_CHANNELS],
                        dz=2.0)
        control.adjust_temperature(StartPolicy.after(1800),
                                   RepetitionPolicy.once(), 37.0)
        control.run()
        control.wait()
    """

    def __init__(self, microscope: Optional[Microscope] = None,
                 timeline: Optional[Timeline] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize experiment control.

        Args:
            microscope: Microscope to drive (default: a fresh Microscope)
            timeline: Timeline to schedule on (default: a fresh Timeline)
            clock: Returns the current instant, used to anchor each run
        """
        self.microscope = microscope if microscope is not None else Microscope()
        self.timeline = timeline if timeline is not None else Timeline(clock=clock)
        self._clock = clock
        self._context = RunContext.starting_now(clock)
        self._builder = ScheduleBuilder(self.timeline, self._context)
        self._scheduled_ramps: List[ScheduledRamp] = []

    @property
    def context(self) -> RunContext:
        """Reference of the current run."""
        return self._context

    @property
    def builder(self) -> ScheduleBuilder:
        return self._builder

    @property
    def scheduled_ramps(self) -> List[ScheduledRamp]:
        """Ramped commands scheduled since the last reset."""
        return list(self._scheduled_ramps)

    def reset(self) -> bool:
        """
        Prepare for a new run: anchor the run start to now, clear the
        microscope and drop everything still pending on the timeline.

        Returns:
            True if reset, False if refused because the timeline is dispatching
        """
        if self.timeline.is_dispatching():
            print("Cannot reset experiment while it is running")
            return False

        self.timeline.reset()
        self.microscope.reset()
        self._context = RunContext.starting_now(self._clock)
        self._builder = ScheduleBuilder(self.timeline, self._context)
        self._scheduled_ramps.clear()
        return True

    # ──────────────────────────────────────────────────────────────────────────
    # Definitions (take effect immediately)
    # ──────────────────────────────────────────────────────────────────────────

    def define_channel(self, name: str, led_settings: Sequence[LEDSetting],
                       exposure_time_ms: int) -> Channel:
        channel = Channel(name=name, led_settings=list(led_settings),
                          exposure_time_ms=exposure_time_ms)
        self.microscope.add_channel(channel)
        return channel

    def define_position(self, name: str, extent: Tuple[float, float, float],
                        center: Tuple[float, float, float]) -> Position:
        position = Position(name=name, center=tuple(center), extent=tuple(extent))
        self.microscope.add_position(position)
        return position

    # ──────────────────────────────────────────────────────────────────────────
    # Scheduled commands
    # ──────────────────────────────────────────────────────────────────────────

    def acquire(self, start: StartPolicy, repetition: RepetitionPolicy,
                positions: Sequence[str], channels: Sequence[str], dz: float,
                lens: Lens = Lens.FIVE,
                magnification: MagnificationChanger = MagnificationChanger.ONE_ZERO,
                binning: Binning = Binning.ONE) -> List[datetime]:
        """
        Schedule z-stack acquisitions.

        The optics are applied and the stacks acquired at every cycle, using
        whatever channel and incubation settings are current at that moment.

        Args:
            start: Start policy
            repetition: Repetition policy
            positions: Position names, or [Microscope.ALL_POSITIONS]
            channels: Channel names, or [Microscope.ALL_CHANNELS]
            dz: Plane distance in microns
            lens: Objective lens
            magnification: Magnification changer setting
            binning: Camera binning

        Returns:
            Instants of the scheduled acquisitions
        """
        position_names = list(positions)
        channel_names = list(channels)
        microscope = self.microscope

        def acquire_stacks():
            microscope.lens = lens
            microscope.magnification_changer = magnification
            microscope.binning = binning
            microscope.acquire(position_names, channel_names, dz)

        return self._builder.schedule_action(start, repetition, acquire_stacks)

    def adjust_led_power(self, start: StartPolicy, repetition: RepetitionPolicy,
                         channel: str, led: LED, power: int) -> ScheduledRamp:
        """
        Ramp the power of one LED of a channel to `power` percent.

        Raises:
            ValueError: If the channel is not defined or does not use the LED
        """
        setting = self._require_channel(channel).get_led_setting(led)
        if setting is None:
            raise ValueError(f"Channel '{channel}' does not use the {led} LED")
        if power < 0 or power > 100:
            raise ValueError(f"LED power must be between 0 and 100%: {power}")

        quantity = Quantity(
            f"{channel} LED {led}",
            getter=lambda: setting.intensity,
            setter=lambda c, v: setting.set_intensity(round_half_up(v)))
        return self._schedule_ramp(start, repetition, quantity, power)

    def adjust_exposure_time(self, start: StartPolicy, repetition: RepetitionPolicy,
                             channel: str, exposure_time_ms: int) -> ScheduledRamp:
        """
        Ramp the exposure time of a channel to `exposure_time_ms`.

        Raises:
            ValueError: If the channel is not defined or the time is negative
        """
        target = self._require_channel(channel)
        if exposure_time_ms < 0:
            raise ValueError(f"Exposure time cannot be negative: {exposure_time_ms}")

        quantity = Quantity(
            f"{channel} exposure time",
            getter=lambda: target.exposure_time_ms,
            setter=lambda c, v: target.set_exposure_time(round_half_up(v)))
        return self._schedule_ramp(start, repetition, quantity, exposure_time_ms)

    def adjust_co2_concentration(self, start: StartPolicy, repetition: RepetitionPolicy,
                                 percent: float) -> ScheduledRamp:
        """Ramp the incubation CO2 concentration to `percent`."""
        if percent < 0 or percent > 100:
            raise ValueError(f"CO2 concentration must be between 0 and 100%: {percent}")
        microscope = self.microscope

        def set_co2(cycle, value):
            microscope.co2_concentration = value

        quantity = Quantity("CO2 concentration",
                            getter=lambda: microscope.co2_concentration,
                            setter=set_co2)
        return self._schedule_ramp(start, repetition, quantity, percent)

    def adjust_temperature(self, start: StartPolicy, repetition: RepetitionPolicy,
                           celsius: float) -> ScheduledRamp:
        """Ramp the incubation temperature to `celsius`."""
        microscope = self.microscope

        def set_temperature(cycle, value):
            microscope.temperature = value

        quantity = Quantity("Temperature",
                            getter=lambda: microscope.temperature,
                            setter=set_temperature)
        return self._schedule_ramp(start, repetition, quantity, celsius)

    def _require_channel(self, name: str) -> Channel:
        channel = self.microscope.get_channel(name)
        if channel is None:
            raise ValueError(f"Unknown channel: '{name}'")
        return channel

    def _schedule_ramp(self, start, repetition, quantity, target) -> ScheduledRamp:
        scheduled = self._builder.schedule_ramp(start, repetition, quantity, target)
        self._scheduled_ramps.append(scheduled)
        return scheduled

    # ──────────────────────────────────────────────────────────────────────────
    # Dispatch
    # ──────────────────────────────────────────────────────────────────────────

    def run(self) -> bool:
        """Start firing scheduled commands in the background."""
        return self.timeline.start_dispatch()

    def cancel(self, timeout_sec: float = 10.0) -> bool:
        """Stop firing scheduled commands; pending ones are kept."""
        return self.timeline.cancel(timeout_sec)

    def wait(self, timeout_sec: float = 3600.0) -> bool:
        """Block until every scheduled command has fired (or the run was cancelled)."""
        return self.timeline.await_completion(timeout_sec)

    def get_status(self) -> dict:
        """
        Get comprehensive status of the experiment.

        Returns:
            Dictionary with timeline status plus run information
        """
        status = self.timeline.get_status()
        status['global_start'] = self._context.global_start.isoformat(sep=' ')
        status['scheduled_ramps'] = len(self._scheduled_ramps)
        status['temperature'] = self.microscope.temperature
        status['co2_concentration'] = self.microscope.co2_concentration
        return status
