"""
Unit tests for ScheduleBuilder and the start/repetition policies.
"""

import unittest
from datetime import datetime, time, timedelta
from unittest.mock import MagicMock

from timelapse_control.control.ramp import Quantity
from timelapse_control.control.schedule_builder import (
    RepetitionPolicy, RunContext, ScheduleBuilder, StartPolicy
)
from timelapse_control.control.timeline import Timeline

RUN_START = datetime(2024, 3, 1, 22, 30, 0)


class TestRepetitionPolicy(unittest.TestCase):
    """Tests for cycle counting."""

    def test_once(self):
        policy = RepetitionPolicy.once()
        self.assertEqual(policy.n_cycles, 1)
        self.assertEqual(policy.offsets(), [timedelta(0)])

    def test_periodic_cycle_count(self):
        """Test every 10s for 25s gives cycles at 0, 10, 20."""
        policy = RepetitionPolicy.every(10, 25)
        self.assertEqual(policy.n_cycles, 3)
        self.assertEqual(policy.offsets(),
                         [timedelta(0), timedelta(seconds=10), timedelta(seconds=20)])

    def test_duration_multiple_of_interval_includes_end(self):
        self.assertEqual(RepetitionPolicy.every(10, 30).n_cycles, 4)

    def test_fractional_interval_counts_exactly(self):
        """Test every 0.1s for 0.3s gives four cycles, not three."""
        policy = RepetitionPolicy.every(0.1, 0.3)
        self.assertEqual(policy.n_cycles, 4)
        self.assertEqual(len(policy.offsets()), 4)
        self.assertEqual(RepetitionPolicy.every(0.25, 1.0).n_cycles, 5)

    def test_duration_shorter_than_interval(self):
        self.assertEqual(RepetitionPolicy.every(10, 5).n_cycles, 1)

    def test_zero_duration(self):
        self.assertEqual(RepetitionPolicy.every(10, 0).n_cycles, 1)

    def test_zero_interval_rejected(self):
        with self.assertRaises(ValueError):
            RepetitionPolicy.every(0, 60)

    def test_negative_interval_rejected(self):
        with self.assertRaises(ValueError):
            RepetitionPolicy.every(-5, 60)

    def test_negative_duration_rejected(self):
        with self.assertRaises(ValueError):
            RepetitionPolicy.every(10, -1)


class TestStartPolicy(unittest.TestCase):
    """Tests for start policy construction."""

    def test_negative_delay_rejected(self):
        with self.assertRaises(ValueError):
            StartPolicy.after(-1)

    def test_kinds(self):
        self.assertFalse(StartPolicy.at_beginning().is_absolute())
        self.assertFalse(StartPolicy.after(30).is_absolute())
        self.assertTrue(StartPolicy.at(time(8, 0)).is_absolute())


class TestResolveStart(unittest.TestCase):
    """Tests for turning start policies into instants."""

    def setUp(self):
        self.builder = ScheduleBuilder(Timeline(), RunContext(RUN_START))

    def test_at_beginning(self):
        self.assertEqual(self.builder.resolve_start(StartPolicy.at_beginning()), RUN_START)

    def test_after_delay(self):
        self.assertEqual(self.builder.resolve_start(StartPolicy.after(90)),
                         RUN_START + timedelta(seconds=90))

    def test_after_delay_past_midnight(self):
        self.assertEqual(self.builder.resolve_start(StartPolicy.after(7200)),
                         datetime(2024, 3, 2, 0, 30, 0))

    def test_later_time_of_day_is_today(self):
        self.assertEqual(self.builder.resolve_start(StartPolicy.at(time(23, 15))),
                         datetime(2024, 3, 1, 23, 15))

    def test_earlier_time_of_day_rolls_to_tomorrow(self):
        self.assertEqual(self.builder.resolve_start(StartPolicy.at(time(1, 0))),
                         datetime(2024, 3, 2, 1, 0))

    def test_same_time_of_day_is_today(self):
        self.assertEqual(self.builder.resolve_start(StartPolicy.at(time(22, 30))), RUN_START)

    def test_contexts_do_not_interfere(self):
        other = ScheduleBuilder(Timeline(), RunContext(datetime(2024, 3, 1, 0, 30)))
        self.assertEqual(other.resolve_start(StartPolicy.at(time(1, 0))),
                         datetime(2024, 3, 1, 1, 0))
        self.assertEqual(self.builder.resolve_start(StartPolicy.at(time(1, 0))),
                         datetime(2024, 3, 2, 1, 0))

    def test_run_context_starting_now(self):
        context = RunContext.starting_now(lambda: RUN_START)
        self.assertEqual(context.global_start, RUN_START)


class TestScheduleAction(unittest.TestCase):
    """Tests for scheduling plain actions."""

    def setUp(self):
        self.timeline = Timeline()
        self.builder = ScheduleBuilder(self.timeline, RunContext(RUN_START))

    def test_periodic_action_instants(self):
        action = MagicMock()
        instants = self.builder.schedule_action(
            StartPolicy.at_beginning(), RepetitionPolicy.every(10, 25), action)

        expected = [RUN_START + timedelta(seconds=s) for s in (0, 10, 20)]
        self.assertEqual(instants, expected)
        self.assertEqual(self.timeline.instants(), expected)
        for instant in expected:
            self.assertEqual(self.timeline.entries_at(instant), [action])

    def test_short_duration_collapses_to_single_cycle(self):
        instants = self.builder.schedule_action(
            StartPolicy.after(60), RepetitionPolicy.every(10, 5), MagicMock())
        self.assertEqual(instants, [RUN_START + timedelta(seconds=60)])

    def test_same_action_fires_every_cycle(self):
        action = MagicMock()
        self.builder.schedule_action(
            StartPolicy.at_beginning(), RepetitionPolicy.every(10, 20), action)
        self.timeline.fire_due_before(RUN_START + timedelta(hours=1))
        self.assertEqual(action.call_count, 3)


class TestScheduleRamp(unittest.TestCase):
    """Tests for scheduling ramped quantities."""

    def setUp(self):
        self.timeline = Timeline()
        self.builder = ScheduleBuilder(self.timeline, RunContext(RUN_START))
        self.value = 0.0
        self.writes = []

        def setter(cycle, value):
            self.writes.append((cycle, value))
            self.value = value

        self.getter = MagicMock(side_effect=lambda: self.value)
        self.quantity = Quantity("Temperature", self.getter, setter)

    def test_ramp_over_cycles(self):
        scheduled = self.builder.schedule_ramp(
            StartPolicy.at_beginning(), RepetitionPolicy.every(10, 40), self.quantity, 100.0)

        self.assertEqual(scheduled.name, "Temperature")
        self.assertEqual(scheduled.ramp.n_cycles, 5)
        self.assertEqual(len(scheduled.instants), 5)

        self.timeline.fire_due_before(RUN_START + timedelta(hours=1))
        self.assertEqual(self.writes,
                         [(0, 0.0), (1, 25.0), (2, 50.0), (3, 75.0), (4, 100.0)])
        self.getter.assert_called_once_with()

    def test_ramp_fires_one_cycle_per_instant(self):
        self.builder.schedule_ramp(
            StartPolicy.at_beginning(), RepetitionPolicy.every(10, 20), self.quantity, 10.0)

        self.timeline.fire_due_before(RUN_START + timedelta(seconds=5))
        self.assertEqual(self.writes, [(0, 0.0)])
        self.timeline.fire_due_before(RUN_START + timedelta(seconds=15))
        self.assertEqual(self.writes, [(0, 0.0), (1, 5.0)])

    def test_once_applies_target_without_reading(self):
        self.value = 20.0
        self.builder.schedule_ramp(
            StartPolicy.after(30), RepetitionPolicy.once(), self.quantity, 37.0)
        self.timeline.fire_due_before(RUN_START + timedelta(hours=1))
        self.assertEqual(self.writes, [(0, 37.0)])
        self.getter.assert_not_called()

    def test_short_periodic_applies_target_immediately(self):
        self.builder.schedule_ramp(
            StartPolicy.at_beginning(), RepetitionPolicy.every(60, 30), self.quantity, 5.0)
        self.assertEqual(self.timeline.instants(), [RUN_START])
        self.timeline.fire_due_before(RUN_START + timedelta(seconds=1))
        self.assertEqual(self.writes, [(0, 5.0)])
        self.getter.assert_not_called()


if __name__ == '__main__':
    unittest.main()
