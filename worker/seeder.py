"""
Seeding coordinator.

Submits newly eligible torrents to the engine and drains engine events.

A candidate is marked seeding right after the asynchronous submit, before
the engine confirms anything, so a later cycle never submits it again just
because confirmation is still in flight. Parse or submit failures leave the
record untouched and the candidate comes back on the next cycle.
"""

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from registry.models import SEED_FAILED, SEED_STARTED, EngineEvent, TorrentRecord
from shared.log import create_logger
from torrent.exceptions import EngineRejection, InvalidDescriptor

if TYPE_CHECKING:
    from registry.store import Registry
    from torrent.client import TorrentEngine

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Seeder")


@dataclass
class SeedingResult:
    """Outcome of one seeding pass.

    Attributes:
        candidates: Records eligible for seeding this pass
        submitted: Torrents handed to the engine and marked seeding
        parse_failures: Descriptors that failed to re-parse (retried next cycle)
        submit_failures: Submissions the engine refused (retried next cycle)
        superseded: Records dropped because their descriptor file now holds other content
    """
    candidates: int = 0
    submitted: int = 0
    parse_failures: int = 0
    submit_failures: int = 0
    superseded: int = 0


class SeedingCoordinator:
    """Drives engine submissions for registered, not-yet-seeding torrents.

    Args:
        registry: Registry holding the tracking records
        engine: Distribution engine
        directory: Directory holding the descriptor files
    """

    def __init__(self, registry: "Registry", engine: "TorrentEngine", directory: str):
        self.registry = registry
        self.engine = engine
        self.directory = directory

    def seed(self, candidates: Iterable[TorrentRecord]) -> SeedingResult:
        """Submit every candidate, re-parsing its descriptor fresh from disk."""
        result = SeedingResult()
        for record in candidates:
            result.candidates += 1
            path = os.path.join(self.directory, record.descriptor_filename)
            try:
                descriptor = self.engine.parse_descriptor(path)
            except InvalidDescriptor as e:
                log_error(f"Error on reading torrent file '{record.descriptor_filename}': {e}")
                result.parse_failures += 1
                continue

            if descriptor.identity != record.identity:
                # File was replaced on disk before its first seed. The old content
                # can never be seeded from it, and the new content is tracked as
                # its own record by the scan.
                log_warn(
                    f"'{record.descriptor_filename}' now has info hash {descriptor.identity}, "
                    f"expected {record.identity}. Dropping the stale record."
                )
                self.registry.remove(record.identity, tombstone=False)
                result.superseded += 1
                continue

            try:
                self.engine.submit_seed(descriptor)
            except EngineRejection as e:
                log_error(f"Engine refused '{record.descriptor_filename}': {e}")
                result.submit_failures += 1
                continue

            self.registry.mark_seeding(record.identity)
            result.submitted += 1
            log_info(f"'{record.descriptor_filename}' added to the engine for seeding.")
        return result

    def drain_events(self) -> list[EngineEvent]:
        """Pop engine events and log seeding outcomes.

        Confirmations are observational only; registry state was already set
        when the torrent was submitted.

        Returns:
            All drained events, for consumers such as the garbage collector
        """
        try:
            events = self.engine.poll_events()
        except EngineRejection as e:
            log_warn(f"Unable to read engine events: {e}")
            return []

        for event in events:
            if event.kind == SEED_STARTED:
                log_info(f"'{event.name or event.identity}' started seeding.")
            elif event.kind == SEED_FAILED:
                log_error(f"Engine failed to start seeding '{event.name or event.identity}': {event.message}")
            else:
                log_trace(f"Engine event: {event.kind} {event.identity}")
        return events


__all__ = ['SeedingCoordinator', 'SeedingResult']
