"""
Ramp for Gradual Setpoint Changes.

Moves one scalar quantity (LED power, exposure time, temperature, CO2)
linearly from its current value to a target value over a fixed number of
cycles of a repeated command.
"""

from typing import Callable, List, Optional


class Quantity:
    """
    Read/write access to one scalar on the instrument.

    Attributes:
        name: Human-readable label, used in reports and plots
        getter: Returns the currently applied value
        setter: Applies a value; called with (cycle_index, value)
    """

    def __init__(self, name: str,
                 getter: Callable[[], float],
                 setter: Callable[[int, float], None]):
        self.name = name
        self._getter = getter
        self._setter = setter

    def read(self) -> float:
        """Get the currently applied value."""
        return self._getter()

    def write(self, cycle: int, value: float) -> None:
        """Apply a value for the given cycle."""
        self._setter(cycle, value)

    def __repr__(self) -> str:
        return f"Quantity(name='{self.name}')"


class Ramp:
    """
    Linear interpolator across the cycles of one scheduled command.

    The start value is read from the quantity when cycle 0 is processed and
    never again. The final cycle always applies exactly the target value.

    Example:
        ramp = Ramp(quantity, target=100.0, n_cycles=5)
        for c in range(5):
            ramp.advance(c)   # writes 0, 25, 50, 75, 100 if started at 0
    """

    def __init__(self, quantity: Quantity, target: float, n_cycles: int):
        """
        Initialize the ramp.

        Args:
            quantity: Quantity to drive
            target: Value reached on the final cycle
            n_cycles: Number of cycles (must be at least 1)

        Raises:
            ValueError: If n_cycles is less than 1
        """
        if n_cycles < 1:
            raise ValueError(f"Cycle count must be at least 1: {n_cycles}")
        self.quantity = quantity
        self.target = target
        self.n_cycles = n_cycles
        self._start: Optional[float] = None

    @property
    def start_value(self) -> Optional[float]:
        """Captured start value, or None before cycle 0 ran."""
        return self._start

    def value_at(self, cycle: int, start: float) -> float:
        """
        Calculate the setpoint for a cycle given a start value.

        Args:
            cycle: Cycle index (0-based)
            start: Value at cycle 0

        Returns:
            Interpolated setpoint
        """
        if cycle == self.n_cycles - 1:
            return self.target
        return start + cycle * (self.target - start) / (self.n_cycles - 1)

    def planned_values(self, start: float) -> List[float]:
        """
        Get the setpoints for all cycles without touching the quantity.

        Args:
            start: Assumed value at cycle 0

        Returns:
            List of n_cycles setpoints
        """
        return [self.value_at(c, start) for c in range(self.n_cycles)]

    def advance(self, cycle: int) -> None:
        """
        Apply the setpoint for one cycle.

        Must be called once per cycle, in increasing order starting at 0.

        Args:
            cycle: Cycle index (0-based)
        """
        if cycle == self.n_cycles - 1:
            self.quantity.write(cycle, self.target)
            return

        if cycle == 0:
            self._start = self.quantity.read()

        self.quantity.write(cycle, self.value_at(cycle, self._start))

    def __repr__(self) -> str:
        return (f"Ramp(quantity='{self.quantity.name}', target={self.target}, "
                f"cycles={self.n_cycles})")
