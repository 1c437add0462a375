"""
main.py
PURPOSE: Application entry point - load an experiment description and run it
"""

import copy
import json
import os
import sys
from datetime import time

from timelapse_control.control.experiment_control import ExperimentControl
from timelapse_control.control.schedule_builder import RepetitionPolicy, StartPolicy
from timelapse_control.control.timeline import DispatchTimeoutError, Timeline
from timelapse_control.hardware.microscope import (
    LED, Binning, Lens, LEDSetting, MagnificationChanger, Microscope
)
from timelapse_control.utils.helpers import format_acquisition_report, interval_to_seconds

DEFAULT_CONFIG = {
    "dispatch": {"poll_interval_ms": 200, "await_timeout_sec": 3600},
    "channels": [],
    "positions": [],
    "commands": [],
    "preview_plot": None,
}


def get_base_dir():
    """Get the base directory for the application (the project root)."""
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def load_config(config_path=None):
    """
    Load the experiment configuration, falling back to defaults.

    Args:
        config_path: Path to a JSON file; keys found there replace the defaults

    Returns:
        Configuration dict
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config.update(json.load(f))
        except Exception as e:
            print(f"Error loading config from {config_path}: {e}")
    elif config_path:
        print(f"Config file not found: {config_path}")
    return config


def _by_label(enum_cls, label):
    for member in enum_cls:
        if member.label == label:
            return member
    raise ValueError(f"Unknown {enum_cls.__name__} '{label}'")


def parse_start(entry):
    """
    Build a StartPolicy from its config form.

    "beginning", {"at": "HH:MM[:SS]"} or {"after": [n, unit]}
    """
    if entry in (None, "beginning"):
        return StartPolicy.at_beginning()
    if isinstance(entry, dict) and "at" in entry:
        return StartPolicy.at(time.fromisoformat(entry["at"]))
    if isinstance(entry, dict) and "after" in entry:
        return StartPolicy.after(interval_to_seconds(*entry["after"]))
    raise ValueError(f"Invalid start: {entry}")


def parse_repetition(entry):
    """
    Build a RepetitionPolicy from its config form.

    "once" or {"every": [n, unit], "for": [n, unit]}
    """
    if entry in (None, "once"):
        return RepetitionPolicy.once()
    if isinstance(entry, dict) and "every" in entry and "for" in entry:
        return RepetitionPolicy.every(interval_to_seconds(*entry["every"]),
                                      interval_to_seconds(*entry["for"]))
    raise ValueError(f"Invalid repetition: {entry}")


def _names(entry, wildcard):
    if entry == "all":
        return [wildcard]
    return list(entry)


def build_experiment(control, config):
    """
    Define channels and positions and schedule every command of a config.

    Args:
        control: ExperimentControl, already reset
        config: Configuration dict (see DEFAULT_CONFIG)

    Raises:
        ValueError: On the first invalid definition or command
    """
    for ch in config.get("channels", []):
        leds = [LEDSetting(LED(led["wavelength"]), led["power"]) for led in ch["leds"]]
        control.define_channel(ch["name"], leds, ch["exposure_time_ms"])

    for pos in config.get("positions", []):
        control.define_position(pos["name"], pos["extent"], pos["center"])

    for i, cmd in enumerate(config.get("commands", [])):
        start = parse_start(cmd.get("start"))
        repetition = parse_repetition(cmd.get("repeat"))
        kind = cmd.get("type")

        if kind == "acquire":
            control.acquire(
                start, repetition,
                _names(cmd.get("positions", "all"), Microscope.ALL_POSITIONS),
                _names(cmd.get("channels", "all"), Microscope.ALL_CHANNELS),
                dz=cmd.get("dz", 1.0),
                lens=_by_label(Lens, cmd.get("lens", "5x")),
                magnification=_by_label(MagnificationChanger, cmd.get("magnification", "1.0x")),
                binning=_by_label(Binning, cmd.get("binning", "1x1")))
        elif kind == "adjust_led_power":
            control.adjust_led_power(start, repetition, cmd["channel"],
                                     LED(cmd["led"]), cmd["target"])
        elif kind == "adjust_exposure_time":
            control.adjust_exposure_time(start, repetition, cmd["channel"], cmd["target"])
        elif kind == "adjust_co2":
            control.adjust_co2_concentration(start, repetition, cmd["target"])
        elif kind == "adjust_temperature":
            control.adjust_temperature(start, repetition, cmd["target"])
        else:
            raise ValueError(f"Command {i + 1}: unknown type '{kind}'")


def main(config_path=None):
    """
    Run the experiment described by the config file.

    Returns:
        0 when every action ran, 1 on an invalid description, failed actions or
        a broken dispatch loop, 2 when the run did not finish within
        await_timeout_sec
    """
    if config_path is None:
        config_path = os.path.join(get_base_dir(), "config", "experiment_config.json")
    config = load_config(config_path)

    timeline = Timeline(poll_interval_ms=config['dispatch']['poll_interval_ms'])
    control = ExperimentControl(timeline=timeline)
    control.reset()

    mic = control.microscope
    mic.add_acquisition_listener(
        lambda position, channel: print(format_acquisition_report(mic, position, channel)))

    try:
        build_experiment(control, config)
    except (KeyError, ValueError) as e:
        print(f"Invalid experiment description: {e}")
        return 1

    if config.get("preview_plot"):
        from timelapse_control.data.schedule_plot import plot_ramp_preview
        plot_ramp_preview(control.scheduled_ramps, config["preview_plot"])
        print(f"Schedule preview written to {config['preview_plot']}")

    print(f"Running {len(timeline)} scheduled actions, "
          f"last at {timeline.instants()[-1] if len(timeline) else 'n/a'}")
    control.run()
    timed_out = False
    try:
        control.wait(config['dispatch']['await_timeout_sec'])
    except KeyboardInterrupt:
        print("Cancelling experiment")
        control.cancel()
    except DispatchTimeoutError as e:
        timed_out = True
        print(f"Experiment timed out: {e}")
        control.cancel()
        print(f"{len(timeline)} scheduled actions were not run")

    for failure in timeline.failures:
        print(f"Failed: {failure}")
    if timed_out:
        return 2
    if timeline.error_message:
        return 1
    return 1 if timeline.failures else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else None))
