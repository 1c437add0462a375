"""
Timeline of Scheduled Experiment Actions.

Holds pending actions keyed by the instant they are due and fires them in
time order from a background thread. Several actions may share an instant;
they fire in the order they were added.
"""

import threading
from bisect import bisect_left, insort
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class DispatchState(Enum):
    """States for the timeline dispatcher."""
    IDLE = "idle"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class DispatchTimeoutError(TimeoutError):
    """Raised when the dispatch thread does not stop within the allowed time."""


@dataclass
class ActionFailure:
    """
    An action that raised while being dispatched.

    Attributes:
        instant: Instant the action was scheduled for
        entry: The action itself
        error: Exception raised by the action
    """
    instant: datetime
    entry: Any
    error: Exception

    def __str__(self) -> str:
        return f"{self.instant.isoformat(sep=' ')}: {type(self.error).__name__}: {self.error}"


def run_entry(entry: Callable[[], Any]) -> None:
    """Default dispatch: call the entry with no arguments."""
    entry()


class Timeline:
    """
    Time-ordered collection of pending actions with a single-thread dispatcher.

    Populate the timeline with put(), then call start_dispatch(). The
    dispatcher fires every action whose instant has passed, waits until the
    next instant is due (bounded by the poll interval), and finishes when the
    timeline is empty or cancel() is called.

    An action that raises does not stop the others. Failures are collected in
    `failures` and passed to the on_error callback.
    """

    def __init__(self, poll_interval_ms: int = 200,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize an empty timeline.

        Args:
            poll_interval_ms: Longest time the dispatcher sleeps between
                              checks for due actions (default 200ms)
            clock: Returns the current instant (default datetime.now)
        """
        if poll_interval_ms <= 0:
            raise ValueError(f"Poll interval must be positive: {poll_interval_ms}")
        self.poll_interval_sec = poll_interval_ms / 1000.0
        self._clock = clock

        # Sorted distinct instants and the entries due at each one
        self._instants: List[datetime] = []
        self._entries: Dict[datetime, List[Any]] = {}
        self._failures: List[ActionFailure] = []

        # Thread management
        self._state = DispatchState.IDLE
        self._error_message: Optional[str] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.RLock()

        # Callbacks
        self._on_error: Optional[Callable[[ActionFailure], None]] = None
        self._on_complete: Optional[Callable[[], None]] = None
        self._on_state_change: Optional[Callable[[DispatchState], None]] = None

    @property
    def state(self) -> DispatchState:
        """Get current dispatch state."""
        with self._lock:
            return self._state

    @property
    def error_message(self) -> Optional[str]:
        """Why the dispatch loop stopped, when state is ERROR."""
        with self._lock:
            return self._error_message

    @property
    def failures(self) -> List[ActionFailure]:
        """Get the failures recorded since the last reset."""
        with self._lock:
            return list(self._failures)

    def _set_state(self, new_state: DispatchState) -> None:
        """Set state and trigger callback."""
        with self._lock:
            self._state = new_state
        self._notify_state_change(new_state)

    def _notify_state_change(self, new_state: DispatchState) -> None:
        if self._on_state_change:
            try:
                self._on_state_change(new_state)
            except Exception:
                pass

    def put(self, instant: datetime, entry: Any) -> None:
        """
        Add an entry due at the given instant.

        Args:
            instant: When the entry is due
            entry: The action to dispatch
        """
        with self._lock:
            entries = self._entries.get(instant)
            if entries is None:
                entries = []
                self._entries[instant] = entries
                insort(self._instants, instant)
            entries.append(entry)

    def is_empty(self) -> bool:
        """Check if no entries are pending."""
        with self._lock:
            return not self._instants

    def is_dispatching(self) -> bool:
        """Check if the dispatch thread is active."""
        return self.state == DispatchState.DISPATCHING

    def instants(self) -> List[datetime]:
        """Get the pending instants in ascending order."""
        with self._lock:
            return list(self._instants)

    def entries_at(self, instant: datetime) -> List[Any]:
        """Get the entries pending at an instant, in insertion order."""
        with self._lock:
            return list(self._entries.get(instant, []))

    def next_instant(self) -> Optional[datetime]:
        """Get the earliest pending instant, or None if empty."""
        with self._lock:
            return self._instants[0] if self._instants else None

    def fire_due_before(self, now: datetime,
                        dispatch: Callable[[Any], None] = run_entry) -> List[ActionFailure]:
        """
        Dispatch and remove every entry due strictly before `now`.

        Entries fire in ascending instant order, then in insertion order.

        Args:
            now: Cut-off instant; entries at or after it stay pending
            dispatch: Called once per due entry

        Returns:
            Failures raised by entries during this call
        """
        with self._lock:
            n_due = bisect_left(self._instants, now)
            due_instants = self._instants[:n_due]
            del self._instants[:n_due]
            batches = [(t, self._entries.pop(t)) for t in due_instants]

        failures = []
        for instant, entries in batches:
            for entry in entries:
                try:
                    dispatch(entry)
                except Exception as e:
                    failure = ActionFailure(instant=instant, entry=entry, error=e)
                    failures.append(failure)
                    self._report_failure(failure)
        return failures

    def _report_failure(self, failure: ActionFailure) -> None:
        """Record a failed action and notify the error callback."""
        with self._lock:
            self._failures.append(failure)
        print(f"Scheduled action failed at {failure}")
        if self._on_error:
            try:
                self._on_error(failure)
            except Exception:
                pass

    def _seconds_until_next(self) -> Optional[float]:
        """Seconds until the earliest pending instant, None if empty."""
        with self._lock:
            if not self._instants:
                return None
            return (self._instants[0] - self._clock()).total_seconds()

    def start_dispatch(self, dispatch: Callable[[Any], None] = run_entry) -> bool:
        """
        Start dispatching due entries in a background thread.

        Args:
            dispatch: Called once per due entry (default: call the entry)

        Returns:
            True if started, False if a dispatch is already running
        """
        # Check and claim DISPATCHING under one lock
        with self._lock:
            if self._state == DispatchState.DISPATCHING:
                print("Timeline is already dispatching")
                return False
            self._state = DispatchState.DISPATCHING
            self._error_message = None
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run_loop, args=(dispatch,),
                                            daemon=True)
            thread = self._thread

        self._notify_state_change(DispatchState.DISPATCHING)
        thread.start()
        return True

    def _run_loop(self, dispatch: Callable[[Any], None]) -> None:
        """Main dispatch loop running in background thread."""
        drained = False

        try:
            while not self._stop_event.is_set():
                self.fire_due_before(self._clock(), dispatch)

                wait_sec = self._seconds_until_next()
                if wait_sec is None:
                    drained = True
                    break

                # Sleep until the next instant is due, woken early by cancel()
                self._stop_event.wait(min(self.poll_interval_sec, max(wait_sec, 0.001)))
        except Exception as e:
            with self._lock:
                self._error_message = f"Dispatch loop stopped: {e}"
            print(self._error_message)
            self._set_state(DispatchState.ERROR)
            return

        if not drained:
            self._set_state(DispatchState.CANCELLED)
            return

        self._set_state(DispatchState.COMPLETED)
        if self._on_complete:
            try:
                self._on_complete()
            except Exception:
                pass

    def cancel(self, timeout_sec: float = 10.0) -> bool:
        """
        Stop the dispatch thread and wait for it to exit.

        An action that is already running is allowed to finish.

        Args:
            timeout_sec: How long to wait for the thread to stop

        Returns:
            True once the thread has stopped

        Raises:
            DispatchTimeoutError: If the thread is still running after timeout_sec
        """
        self._stop_event.set()
        self.await_completion(timeout_sec)
        return True

    def await_completion(self, timeout_sec: float = 3600.0) -> bool:
        """
        Block until the dispatch thread has finished.

        Args:
            timeout_sec: Upper bound on the wait (default one hour)

        Returns:
            True once the thread has finished (or none was started)

        Raises:
            DispatchTimeoutError: If the thread is still running after timeout_sec
        """
        thread = self._thread
        if thread is None:
            return True

        thread.join(timeout=timeout_sec)
        if thread.is_alive():
            raise DispatchTimeoutError(
                f"Dispatch did not finish within {timeout_sec} s "
                f"({len(self)} entries pending)")
        return True

    def reset(self) -> bool:
        """
        Discard all pending entries and recorded failures.

        Returns:
            True if cleared, False if refused because dispatch is running
        """
        if self.is_dispatching():
            print("Cannot reset timeline while dispatching")
            return False

        with self._lock:
            self._instants.clear()
            self._entries.clear()
            self._failures.clear()
            self._error_message = None

        self._set_state(DispatchState.IDLE)
        return True

    # Callback registration methods
    def on_error(self, callback: Callable[[ActionFailure], None]) -> None:
        """
        Register callback for failed actions.

        Args:
            callback: Function called with the ActionFailure
        """
        self._on_error = callback

    def on_complete(self, callback: Callable[[], None]) -> None:
        """
        Register callback for a drained timeline.

        Args:
            callback: Function called when every entry has been dispatched
        """
        self._on_complete = callback

    def on_state_change(self, callback: Callable[[DispatchState], None]) -> None:
        """
        Register callback for state changes.

        Args:
            callback: Function called with new state
        """
        self._on_state_change = callback

    def get_status(self) -> dict:
        """
        Get comprehensive status of the timeline.

        Returns:
            Dictionary with current status information
        """
        next_instant = self.next_instant()
        with self._lock:
            return {
                'state': self._state.value,
                'pending_instants': len(self._instants),
                'pending_entries': sum(len(e) for e in self._entries.values()),
                'next_instant': next_instant.isoformat(sep=' ') if next_instant else None,
                'failures': len(self._failures),
                'error': self._error_message,
            }

    def __len__(self) -> int:
        """Number of pending entries."""
        with self._lock:
            return sum(len(e) for e in self._entries.values())

    def __repr__(self) -> str:
        """String representation of the timeline."""
        return (f"Timeline(state={self.state.value}, "
                f"instants={len(self.instants())}, entries={len(self)})")
