"""Simulated microscope state: channels, positions, optics and incubation."""
from .microscope import (
    LED, Binning, Channel, Incubation, Lens, LEDSetting, MagnificationChanger, Microscope, Position
)
