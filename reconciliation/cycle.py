"""
Reconciliation cycle orchestrator.

Runs the four phases in fixed order, each to completion before the next:

    (a) scan      - parse local descriptors, merge new identities into the registry
    (b) refresh   - ask the authority what should be seeded, reconcile is_registered
    (c) seed      - submit registered, not-yet-seeding torrents; drain engine events
    (d) collect   - retire torrents unregistered past the retention window

Each registry operation is atomic on its own, but a cycle as a whole is not,
so cycles must never overlap: run() takes a non-blocking in-flight guard and
returns None when another cycle holds it. A stop token passed to run() is
checked before every phase, so a stop request takes effect once the phase
in progress completes.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from authority.client import AuthorityUnavailable
from registry.models import EngineEvent
from shared.log import create_logger

if TYPE_CHECKING:
    from authority.client import InventoryAuthorityClient
    from registry.store import Registry
    from scanner.directory import DirectoryScanner
    from worker.collector import GarbageCollector
    from worker.seeder import SeedingCoordinator

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Cycle")


@dataclass
class CycleResult:
    """Result summary from one reconciliation cycle.

    Attributes:
        discovered: Descriptors parsed from disk
        inserted: New records added to the registry
        authority_ok: Whether the authority answered this cycle
        expected: Filenames the authority listed
        registered: Records registered after reconciliation
        anomalies: Authority filenames with no descriptor on disk
        candidates: Records eligible for seeding
        submitted: Torrents submitted to the engine
        parse_failures: Candidates whose descriptor failed to re-parse
        events: Engine events drained during the cycle
        retired: Records removed by garbage collection
        duration: Wall-clock seconds the cycle took
        errors: Non-fatal error messages from phases that failed unexpectedly
        stopped_before: Phase the cycle stopped before when a stop was requested, else None
    """
    discovered: int = 0
    inserted: int = 0
    authority_ok: bool = False
    expected: int = 0
    registered: int = 0
    anomalies: list[str] = field(default_factory=list)
    candidates: int = 0
    submitted: int = 0
    parse_failures: int = 0
    events: int = 0
    retired: int = 0
    duration: float = 0.0
    errors: list[str] = field(default_factory=list)
    stopped_before: Optional[str] = None


class ReconciliationCycle:
    """Composes scanner, authority, registry and workers into one ordered cycle.

    Args:
        registry: Shared registry
        scanner: Local descriptor scanner
        authority: Inventory authority client
        seeder: Seeding coordinator
        collector: Garbage collector
    """

    def __init__(
        self,
        registry: "Registry",
        scanner: "DirectoryScanner",
        authority: "InventoryAuthorityClient",
        seeder: "SeedingCoordinator",
        collector: "GarbageCollector",
    ):
        self.registry = registry
        self.scanner = scanner
        self.authority = authority
        self.seeder = seeder
        self.collector = collector
        self._in_flight = threading.Lock()

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def run(self, now: Optional[float] = None, stop: Optional[threading.Event] = None) -> Optional[CycleResult]:
        """Run one full cycle.

        Args:
            now: Timestamp used for last_seen updates (default: time.time()). For testing.
            stop: Stop token checked before each phase; once set, the remaining
                  phases are skipped and the partial result is returned

        Returns:
            CycleResult, or None if another cycle was already running
        """
        if not self._in_flight.acquire(blocking=False):
            log_warn("Reconciliation cycle already in progress, dropping trigger")
            return None
        try:
            return self._run_phases(now, stop)
        finally:
            self._in_flight.release()

    def drain_events(self) -> int:
        """Drain engine events between cycles.

        Skipped while a cycle runs; the cycle drains events itself.

        Returns:
            Number of events drained
        """
        if not self._in_flight.acquire(blocking=False):
            return 0
        try:
            events = self.seeder.drain_events()
            self.collector.acknowledge(events)
            return len(events)
        finally:
            self._in_flight.release()

    def _run_phases(self, now: Optional[float], stop: Optional[threading.Event]) -> CycleResult:
        result = CycleResult()
        started = time.perf_counter()
        if now is None:
            now = time.time()

        log_debug("Cycle started")

        # Phase (a): local discovery
        if self._stop_requested(stop, result, "scan"):
            return self._finish(result, started)
        try:
            self._scan(result, now)
        except Exception as e:
            result.errors.append(f"Scan failed: {e}")
            log_error(f"Scan failed: {e}")

        # Phase (b): authority refresh
        if self._stop_requested(stop, result, "authority refresh"):
            return self._finish(result, started)
        try:
            self._refresh(result, now)
        except Exception as e:
            result.errors.append(f"Authority refresh failed: {e}")
            log_error(f"Authority refresh failed: {e}")

        # Phase (c): seeding
        if self._stop_requested(stop, result, "seeding"):
            return self._finish(result, started)
        events: list[EngineEvent] = []
        try:
            self._seed(result)
        except Exception as e:
            result.errors.append(f"Seeding failed: {e}")
            log_error(f"Seeding failed: {e}")
        try:
            events = self.seeder.drain_events()
            result.events = len(events)
        except Exception as e:
            result.errors.append(f"Event drain failed: {e}")
            log_error(f"Event drain failed: {e}")

        # Phase (d): garbage collection
        if self._stop_requested(stop, result, "garbage collection"):
            return self._finish(result, started)
        try:
            collected = self.collector.collect(self.authority.last_contacted, events)
            result.retired = collected.removed
        except Exception as e:
            result.errors.append(f"Garbage collection failed: {e}")
            log_error(f"Garbage collection failed: {e}")

        return self._finish(result, started)

    @staticmethod
    def _stop_requested(stop: Optional[threading.Event], result: CycleResult, phase: str) -> bool:
        if stop is None or not stop.is_set():
            return False
        result.stopped_before = phase
        log_info(f"Stop requested, cycle cut short before {phase}")
        return True

    def _finish(self, result: CycleResult, started: float) -> CycleResult:
        result.duration = time.perf_counter() - started
        log_info(
            f"Cycle {'stopped' if result.stopped_before else 'complete'}: "
            f"{result.discovered} on disk ({result.inserted} new), "
            f"authority {'ok' if result.authority_ok else 'unavailable'} "
            f"({result.registered} registered), {result.submitted} submitted, "
            f"{result.retired} retired in {result.duration:.2f}s"
        )
        return result

    def _scan(self, result: CycleResult, now: float) -> None:
        descriptors = self.scanner.scan()
        result.discovered = len(descriptors)
        result.inserted = self.registry.merge_discovered(descriptors, now)

    def _refresh(self, result: CycleResult, now: float) -> None:
        try:
            expected = self.authority.fetch_expected_names()
        except AuthorityUnavailable as e:
            log_warn(f"Authority unavailable, keeping registration state from the previous cycle: {e}")
            return

        result.authority_ok = True
        result.expected = len(expected)
        anomalies = self.registry.reconcile_authority(expected, now)
        for anomaly in anomalies:
            log_error(str(anomaly))
        result.anomalies = [anomaly.filename for anomaly in anomalies]
        result.registered = self.registry.stats().registered

    def _seed(self, result: CycleResult) -> None:
        candidates = self.registry.select_seed_candidates()
        if not candidates:
            log_trace("Nothing new to seed")
            return
        seeded = self.seeder.seed(candidates)
        result.candidates = seeded.candidates
        result.submitted = seeded.submitted
        result.parse_failures = seeded.parse_failures


__all__ = ['ReconciliationCycle', 'CycleResult']
