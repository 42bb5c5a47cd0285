"""
Garbage collector for torrents the authority no longer wants.

A record is expired when it is unregistered and its last_seen lies more than
the retention window before the authority's last successful contact. Using
the contact time rather than the wall clock means an authority outage never
expires anything: the reference time simply stops advancing.

Expired torrents that are seeding get an explicit stop request first:

- 'acknowledged': the record is flagged pending_removal and dropped when the
  engine reports the torrent removed (or immediately if the engine does not
  hold it at all).
- 'best_effort': the record is dropped right after the stop request.

Removed identities are tombstoned by the registry so the next directory scan
does not re-add them while the descriptor file is still on disk.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from registry.models import SEED_STOPPED, EngineEvent
from shared.log import create_logger
from torrent.exceptions import EngineRejection

if TYPE_CHECKING:
    from registry.store import Registry
    from torrent.client import TorrentEngine

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Collector")

STOP_POLICIES = ('acknowledged', 'best_effort')


@dataclass
class CollectionResult:
    """Outcome of one garbage collection pass.

    Attributes:
        expired: Records past retention this pass
        stop_requested: Stop requests sent to the engine
        awaiting_ack: Records left pending an engine acknowledgement
        removed: Records dropped from the registry (including acknowledged ones)
        stop_failures: Stop requests the engine refused (retried next cycle)
    """
    expired: int = 0
    stop_requested: int = 0
    awaiting_ack: int = 0
    removed: int = 0
    stop_failures: int = 0


class GarbageCollector:
    """Retires records that have been unregistered for longer than the retention window.

    Args:
        registry: Registry holding the tracking records
        engine: Distribution engine
        retention: Seconds a record may stay unregistered; None disables collection
        stop_policy: 'acknowledged' or 'best_effort'
    """

    def __init__(
        self,
        registry: "Registry",
        engine: "TorrentEngine",
        retention: Optional[float] = None,
        stop_policy: str = 'acknowledged',
    ):
        if stop_policy not in STOP_POLICIES:
            raise ValueError(f"stop_policy must be one of {STOP_POLICIES}, got: {stop_policy}")
        self.registry = registry
        self.engine = engine
        self.retention = retention
        self.stop_policy = stop_policy

    @property
    def enabled(self) -> bool:
        return self.retention is not None

    def acknowledge(self, events: Iterable[EngineEvent]) -> int:
        """Drop records whose stop the engine has confirmed.

        Returns:
            Number of records removed
        """
        removed = 0
        for event in events:
            if event.kind != SEED_STOPPED:
                continue
            record = self.registry.get(event.identity)
            if record is None or not record.pending_removal:
                log_trace(f"Stop confirmation for untracked torrent {event.identity}")
                continue
            self.registry.remove(event.identity)
            removed += 1
            log_info(f"'{record.descriptor_filename}' stopped seeding and was removed")
        return removed

    def collect(self, reference_time: Optional[float], events: Iterable[EngineEvent] = ()) -> CollectionResult:
        """
        Run one collection pass.

        Args:
            reference_time: Authority's last successful contact; None skips expiry
            events: Engine events drained this cycle (stop acknowledgements)

        Returns:
            CollectionResult with counts
        """
        result = CollectionResult()
        result.removed += self.acknowledge(events)

        if not self.enabled:
            log_trace("Garbage collection disabled")
            return result
        if reference_time is None:
            log_debug("Authority never reached, skipping garbage collection")
            return result

        for record in self.registry.select_expired(reference_time, self.retention):
            if record.pending_removal:
                log_debug(f"'{record.descriptor_filename}' is waiting for the engine to stop it")
                result.awaiting_ack += 1
                continue

            result.expired += 1
            if not record.is_seeding:
                self.registry.remove(record.identity)
                result.removed += 1
                log_info(f"'{record.descriptor_filename}' retired (never seeded)")
                continue

            try:
                held = self.engine.stop_seed(record.identity)
            except EngineRejection as e:
                log_error(f"Unable to stop seeding '{record.descriptor_filename}': {e}")
                result.stop_failures += 1
                continue

            if not held or self.stop_policy == 'best_effort':
                if held:
                    result.stop_requested += 1
                self.registry.remove(record.identity)
                result.removed += 1
                log_info(f"'{record.descriptor_filename}' retired")
                continue

            result.stop_requested += 1
            result.awaiting_ack += 1
            self.registry.mark_pending_removal(record.identity)
            log_info(f"'{record.descriptor_filename}' is no longer wanted, stop requested")

        return result


__all__ = ['GarbageCollector', 'CollectionResult', 'STOP_POLICIES']
