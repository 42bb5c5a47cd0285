"""
Reconciliation scheduler.

Drives ReconciliationCycle on a background daemon thread: a cycle runs every
update_interval seconds, or sooner when request_run() is called (e.g. from a
SIGHUP handler). Repeated requests before the loop checks the trigger
coalesce into a single cycle. stop() ends the loop once the running phase
finishes: the cycle skips its remaining phases. A blocking authority command
already in flight is not interrupted.

Between cycles the loop drains engine events every poll_interval seconds.

When a state directory is configured, a summary of the last cycle is
persisted to reconciliation_state.json.
"""

import json
import os
import threading
import time
from dataclasses import dataclass, asdict
from typing import TYPE_CHECKING, Optional

from shared.log import create_logger

if TYPE_CHECKING:
    from reconciliation.cycle import CycleResult, ReconciliationCycle

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Scheduler")


@dataclass
class ReconciliationState:
    """Persisted summary of the most recent cycle."""
    last_run_time: float = 0.0          # time.time() of last run
    last_duration: float = 0.0          # seconds the last cycle took
    last_authority_ok: bool = False     # did the authority answer?
    last_discovered: int = 0            # descriptors on disk
    last_registered: int = 0            # records registered by the authority
    last_submitted: int = 0             # torrents submitted to the engine
    last_retired: int = 0               # records garbage collected
    last_anomalies: int = 0             # authority names missing on disk
    last_errors: int = 0                # phases that failed unexpectedly
    is_triggered_run: bool = False      # run-now trigger vs. timer
    run_count: int = 0                  # total runs


class ReconciliationScheduler:
    """Runs reconciliation cycles on a timer plus an explicit run-now trigger.

    Args:
        cycle: The cycle to run
        update_interval: Seconds between timer-driven cycles
        poll_interval: Seconds between engine event drains while idle
        state_dir: Optional directory for reconciliation_state.json
    """

    STATE_FILE = 'reconciliation_state.json'

    def __init__(
        self,
        cycle: "ReconciliationCycle",
        update_interval: float = 30.0,
        poll_interval: float = 1.0,
        state_dir: Optional[str] = None,
    ):
        self.cycle = cycle
        self.update_interval = update_interval
        self.poll_interval = poll_interval
        self.state_path = os.path.join(state_dir, self.STATE_FILE) if state_dir else None
        self._state = self.load_state()
        self._run_now = threading.Event()
        self._stop = threading.Event()
        self._last_run_at: Optional[float] = None
        self.thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    @property
    def state(self) -> ReconciliationState:
        return self._state

    def load_state(self) -> ReconciliationState:
        """Load reconciliation state from disk."""
        try:
            if self.state_path and os.path.exists(self.state_path):
                with open(self.state_path, 'r') as f:
                    data = json.load(f)
                return ReconciliationState(**data)
        except (json.JSONDecodeError, TypeError, KeyError, OSError) as e:
            log_debug(f"Failed to load reconciliation state, using defaults: {e}")
        return ReconciliationState()

    def save_state(self, state: ReconciliationState) -> None:
        """Save reconciliation state to disk atomically."""
        if self.state_path is None:
            return
        tmp_path = self.state_path + '.tmp'
        try:
            with open(tmp_path, 'w') as f:
                json.dump(asdict(state), f, indent=2)
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            log_debug(f"Failed to save reconciliation state: {e}")

    def record_run(self, result: "CycleResult", triggered: bool = False) -> None:
        """Record a completed cycle in the persisted state."""
        state = self._state
        state.last_run_time = time.time()
        state.last_duration = result.duration
        state.last_authority_ok = result.authority_ok
        state.last_discovered = result.discovered
        state.last_registered = result.registered
        state.last_submitted = result.submitted
        state.last_retired = result.retired
        state.last_anomalies = len(result.anomalies)
        state.last_errors = len(result.errors)
        state.is_triggered_run = triggered
        state.run_count += 1
        self.save_state(state)

    def request_run(self) -> None:
        """Ask for a cycle at the next scheduling check. Safe to call from signal handlers."""
        self._run_now.set()

    def request_stop(self) -> None:
        """Ask the loop to end after the current cycle. Safe to call from signal handlers."""
        self._stop.set()
        self._run_now.set()  # wake the loop

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the loop after the current cycle and wait for the thread to exit."""
        self.request_stop()
        if self.thread is not None and self.thread is not threading.current_thread():
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                log_warn("Scheduler thread did not stop in time, a cycle is still running")
                return
        log_trace("Scheduler stopped")

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def is_due(self, now: Optional[float] = None) -> bool:
        """Check if a timer-driven cycle is due.

        Args:
            now: Current time (default: time.monotonic()). For testing.
        """
        if self._last_run_at is None:
            return True
        if now is None:
            now = time.monotonic()
        return now - self._last_run_at >= self.update_interval

    def tick(self, now: Optional[float] = None) -> Optional["CycleResult"]:
        """One scheduling check: run a cycle if triggered or due, otherwise drain events.

        The run-now flag is consumed here, so any number of requests made
        since the previous tick produce one cycle.

        Returns:
            CycleResult if a cycle ran, else None
        """
        if now is None:
            now = time.monotonic()

        triggered = self._run_now.is_set()
        self._run_now.clear()
        if self._stop.is_set():
            return None

        if not triggered and not self.is_due(now):
            self.cycle.drain_events()
            return None

        if triggered:
            log_info("Update requested, running reconciliation now")
        self._last_run_at = now
        result = self.cycle.run(stop=self._stop)
        if result is not None:
            self.record_run(result, triggered=triggered)
        return result

    def start(self) -> None:
        """Start the background scheduler thread."""
        if self.running:
            log_trace("Already running")
            return
        self._stop.clear()
        self.thread = threading.Thread(target=self._loop, name="reconciliation", daemon=True)
        self.thread.start()
        log_info(f"Started, running every {self.update_interval:.0f}s")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scheduler has been stopped. Returns True if it was."""
        return self._stop.wait(timeout)

    def _seconds_until_due(self) -> float:
        if self._last_run_at is None:
            return 0.0
        remaining = self.update_interval - (time.monotonic() - self._last_run_at)
        return max(0.0, remaining)

    def _loop(self) -> None:
        """Main scheduler loop - runs in background thread."""
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as e:
                # Scheduler loop error: log and continue
                log_error(f"Scheduler loop error: {e}")

            wait_for = min(self.poll_interval, self._seconds_until_due())
            if wait_for > 0:
                self._run_now.wait(wait_for)


__all__ = ['ReconciliationScheduler', 'ReconciliationState']
