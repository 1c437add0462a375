"""
microscope.py
PURPOSE: In-memory model of the microscope that scheduled actions read and change
FLOW: Define channels and positions -> scheduled actions adjust LED power, exposure,
      optics and incubation -> acquire() notifies listeners once per position/channel
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple


class LED(Enum):
    """Excitation light sources, valued by wavelength in nm."""
    LED_385 = 385
    LED_470 = 470
    LED_567 = 567
    LED_625 = 625

    @property
    def wavelength(self) -> int:
        return self.value

    def __str__(self) -> str:
        return f"{self.value}nm"


class Lens(Enum):
    FIVE = (5.0, "5x")
    TWENTY = (20.0, "20x")

    def __init__(self, magnification, label):
        self.magnification = magnification
        self.label = label

    def __str__(self) -> str:
        return self.label


class MagnificationChanger(Enum):
    ZERO_FIVE = (0.5, "0.5x")
    ONE_ZERO = (1.0, "1.0x")
    TWO_ZERO = (2.0, "2.0x")

    def __init__(self, magnification, label):
        self.magnification = magnification
        self.label = label

    def __str__(self) -> str:
        return self.label


class Binning(Enum):
    ONE = (1, "1x1")
    TWO = (2, "2x2")
    THREE = (3, "3x3")
    FOUR = (4, "4x4")
    FIVE = (5, "5x5")

    def __init__(self, binning, label):
        self.binning = binning
        self.label = label

    def __str__(self) -> str:
        return self.label


@dataclass
class LEDSetting:
    """
    Power of one LED within a channel.

    Attributes:
        led: The light source
        intensity: Power in percent (0-100)
    """
    led: LED
    intensity: int

    def __post_init__(self):
        """Validate setting after initialization."""
        self._validate(self.intensity)

    @staticmethod
    def _validate(intensity):
        if intensity < 0 or intensity > 100:
            raise ValueError(f"LED intensity must be between 0 and 100%: {intensity}")

    def set_intensity(self, intensity: int) -> None:
        self._validate(intensity)
        self.intensity = intensity


@dataclass
class Channel:
    """
    Illumination and camera settings for imaging one fluorophore.

    Attributes:
        name: Channel name, unique per microscope
        led_settings: LEDs switched on for this channel
        exposure_time_ms: Camera exposure time in milliseconds
    """
    name: str
    led_settings: List[LEDSetting]
    exposure_time_ms: int

    def __post_init__(self):
        """Validate channel after initialization."""
        if not self.led_settings:
            raise ValueError(f"Channel '{self.name}' needs at least one LED setting")
        self._validate_exposure(self.exposure_time_ms)

    def _validate_exposure(self, exposure_time_ms):
        if exposure_time_ms < 0:
            raise ValueError(f"Exposure time cannot be negative: {exposure_time_ms}")

    def get_led_setting(self, led: LED) -> Optional[LEDSetting]:
        for setting in self.led_settings:
            if setting.led == led:
                return setting
        return None

    def set_exposure_time(self, exposure_time_ms: int) -> None:
        self._validate_exposure(exposure_time_ms)
        self.exposure_time_ms = exposure_time_ms


@dataclass
class Position:
    """
    A cuboid region of the sample to image.

    Attributes:
        name: Position name, unique per microscope
        center: Stage coordinates (x, y, z) in microns
        extent: Width, height and depth in microns
    """
    name: str
    center: Tuple[float, float, float]
    extent: Tuple[float, float, float]

    def __str__(self) -> str:
        x, y, z = self.center
        return f"{self.name} ({x}, {y}, {z})"


@dataclass
class Incubation:
    """Environment of the incubation chamber."""
    temperature: float = 20.0
    co2_concentration: float = 0.0

    def reset(self) -> None:
        self.temperature = 20.0
        self.co2_concentration = 0.0


class Microscope:
    """
    Simulated microscope holding the state a timelapse experiment changes.

    Acquisitions do not talk to hardware: each (position, channel) pair is
    reported to the registered acquisition listeners.
    """

    ALL_CHANNELS = "ALL_CHANNELS"
    ALL_POSITIONS = "ALL_POSITIONS"

    def __init__(self):
        self.channels: List[Channel] = []
        self.positions: List[Position] = []
        self.incubation = Incubation()
        self.lens = Lens.FIVE
        self.magnification_changer = MagnificationChanger.ONE_ZERO
        self.binning = Binning.ONE
        self._acquisition_listeners: List[Callable[[Position, Channel], None]] = []

    def reset(self) -> None:
        """Forget channels and positions and restore default optics and incubation."""
        self.channels.clear()
        self.positions.clear()
        self.incubation.reset()
        self.lens = Lens.FIVE
        self.magnification_changer = MagnificationChanger.ONE_ZERO
        self.binning = Binning.ONE

    # ──────────────────────────────────────────────────────────────────────────
    # Channels and positions
    # ──────────────────────────────────────────────────────────────────────────

    def add_channel(self, channel: Channel) -> None:
        if self.get_channel(channel.name) is not None:
            raise ValueError(f"Channel '{channel.name}' is already defined")
        self.channels.append(channel)

    def get_channel(self, name: str) -> Optional[Channel]:
        for channel in self.channels:
            if channel.name == name:
                return channel
        return None

    def add_position(self, position: Position) -> None:
        if self.get_position(position.name) is not None:
            raise ValueError(f"Position '{position.name}' is already defined")
        self.positions.append(position)

    def get_position(self, name: str) -> Optional[Position]:
        for position in self.positions:
            if position.name == name:
                return position
        return None

    # ──────────────────────────────────────────────────────────────────────────
    # Incubation
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def temperature(self) -> float:
        """Incubation temperature in degrees Celsius."""
        return self.incubation.temperature

    @temperature.setter
    def temperature(self, value: float) -> None:
        self.incubation.temperature = value

    @property
    def co2_concentration(self) -> float:
        """Incubation CO2 concentration in percent."""
        return self.incubation.co2_concentration

    @co2_concentration.setter
    def co2_concentration(self, value: float) -> None:
        self.incubation.co2_concentration = value

    # ──────────────────────────────────────────────────────────────────────────
    # Acquisition
    # ──────────────────────────────────────────────────────────────────────────

    def add_acquisition_listener(self, listener: Callable[[Position, Channel], None]) -> None:
        """
        Register a listener called once per acquired (position, channel) pair.

        Args:
            listener: Function called with (position, channel)
        """
        self._acquisition_listeners.append(listener)

    def remove_acquisition_listener(self, listener: Callable[[Position, Channel], None]) -> None:
        self._acquisition_listeners.remove(listener)

    def _resolve_channels(self, names: Sequence[str]) -> List[Channel]:
        if names and names[0] == self.ALL_CHANNELS:
            return list(self.channels)
        channels = []
        for name in names:
            channel = self.get_channel(name)
            if channel is None:
                raise ValueError(f"Unknown channel: '{name}'")
            channels.append(channel)
        return channels

    def _resolve_positions(self, names: Sequence[str]) -> List[Position]:
        if names and names[0] == self.ALL_POSITIONS:
            return list(self.positions)
        positions = []
        for name in names:
            position = self.get_position(name)
            if position is None:
                raise ValueError(f"Unknown position: '{name}'")
            positions.append(position)
        return positions

    def acquire(self, position_names: Sequence[str], channel_names: Sequence[str],
                dz: float) -> None:
        """
        Acquire z-stacks for every combination of positions and channels.

        Args:
            position_names: Position names, or [ALL_POSITIONS]
            channel_names: Channel names, or [ALL_CHANNELS]
            dz: Plane distance in microns

        Raises:
            ValueError: If a name does not refer to a defined channel or position
        """
        positions = self._resolve_positions(position_names)
        channels = self._resolve_channels(channel_names)
        self.acquire_positions_and_channels(positions, channels, dz)

    def acquire_positions_and_channels(self, positions: Sequence[Position],
                                       channels: Sequence[Channel], dz: float) -> None:
        for position in positions:
            for channel in channels:
                self.acquire_single(position, channel)

    def acquire_single(self, position: Position, channel: Channel) -> None:
        for listener in list(self._acquisition_listeners):
            listener(position, channel)

    def __repr__(self) -> str:
        return (f"Microscope(channels={len(self.channels)}, positions={len(self.positions)}, "
                f"lens={self.lens}, binning={self.binning})")
