"""
Lock-guarded torrent registry.

Maps content identity (info-hash) to a TorrentRecord. Every operation runs
entirely under one lock, so each is atomic with respect to every other; no
operation does I/O while holding it. Callers never get a live record back,
only copies.

Lifecycle of a record:
    discovered on disk -> merge_discovered()            (unregistered, not seeding)
    listed by authority -> reconcile_authority()        (registered, last_seen refreshed)
    selected and submitted -> mark_seeding()            (seeding, never reverts)
    dropped by authority past retention -> remove()     (tombstoned until listed again or gone from disk)
"""

import threading
from dataclasses import replace
from typing import Iterable, Optional

from registry.models import AuthorityAnomaly, ContentDescriptor, RegistryStats, TorrentRecord
from shared.log import create_logger

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Registry")


class Registry:
    """Concurrent store of tracking records keyed by content identity."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: dict[str, TorrentRecord] = {}
        # identity -> descriptor filename of retired records
        self._tombstones: dict[str, str] = {}

    def merge_discovered(self, descriptors: Iterable[ContentDescriptor], now: float) -> int:
        """Insert records for identities not yet known.

        Existing identities are left untouched: re-discovery never overwrites
        last_seen or flags. Tombstoned identities are skipped. The descriptors
        are the full scan of the directory, so tombstones for identities no
        longer on disk are dropped.

        Args:
            descriptors: Descriptors parsed from disk this cycle
            now: Timestamp stored as last_seen for new records

        Returns:
            Number of records inserted
        """
        descriptors = list(descriptors)
        inserted = 0
        with self._lock:
            for descriptor in descriptors:
                identity = descriptor.identity
                if identity in self._records:
                    log_trace(f"'{descriptor.filename}' is in registry already")
                    continue
                if identity in self._tombstones:
                    log_trace(f"'{descriptor.filename}' was retired, not re-adding until the authority lists it again")
                    continue
                log_debug(f"'{descriptor.filename}' is not in registry, adding")
                self._records[identity] = TorrentRecord(
                    identity=identity,
                    descriptor_filename=descriptor.filename,
                    last_seen=now,
                )
                inserted += 1

            on_disk = {descriptor.identity for descriptor in descriptors}
            for identity in [i for i in self._tombstones if i not in on_disk]:
                log_trace(f"'{self._tombstones.pop(identity)}' is gone from disk, forgetting it")
            log_trace(f"Torrents: {self._format_locked()}")
        return inserted

    def reconcile_authority(self, expected_filenames: Iterable[str], now: float) -> list[AuthorityAnomaly]:
        """Align is_registered with the authority's expected filenames.

        Runs as one read-modify-write over the whole map. Records whose
        filename is missing from the expected set become unregistered but
        are kept. Expected names that match no record are returned as
        anomalies; names matching a tombstone lift it instead.

        Args:
            expected_filenames: Descriptor filenames the authority wants seeded
            now: Timestamp stored as last_seen for registered records

        Returns:
            Anomalies for expected names with no record, sorted by filename
        """
        # Snapshot: filename -> matched flag
        snapshot = {filename: False for filename in expected_filenames}

        with self._lock:
            for record in self._records.values():
                filename = record.descriptor_filename
                if filename not in snapshot:
                    if record.is_registered:
                        log_debug(f"'{filename}' is no longer known to the authority")
                    record.is_registered = False
                    continue
                snapshot[filename] = True
                record.is_registered = True
                record.last_seen = now

            lifted = [identity for identity, filename in self._tombstones.items()
                      if filename in snapshot and not snapshot[filename]]
            for identity in lifted:
                filename = self._tombstones.pop(identity)
                snapshot[filename] = True
                log_info(f"'{filename}' is listed by the authority again, it will be rediscovered")

            log_trace(f"Torrents: {self._format_locked()}")

        return [AuthorityAnomaly(filename) for filename, matched in sorted(snapshot.items()) if not matched]

    def select_seed_candidates(self) -> list[TorrentRecord]:
        """Return copies of records that are registered and not yet seeding."""
        with self._lock:
            return [
                replace(record) for record in self._records.values()
                if record.is_registered and not record.is_seeding and not record.pending_removal
            ]

    def mark_seeding(self, identity: str) -> None:
        """Flag a record as seeding. Calling it again is a no-op."""
        with self._lock:
            record = self._records.get(identity)
            if record is None:
                log_warn(f"Cannot mark unknown torrent {identity} as seeding")
                return
            if record.is_seeding:
                log_trace(f"'{record.descriptor_filename}' is being seeded already")
                return
            record.is_seeding = True

    def select_expired(self, reference_time: float, retention: float) -> list[TorrentRecord]:
        """Return copies of unregistered records last seen more than retention seconds before reference_time."""
        with self._lock:
            return [
                replace(record) for record in self._records.values()
                if not record.is_registered and reference_time - record.last_seen > retention
            ]

    def mark_pending_removal(self, identity: str) -> None:
        with self._lock:
            record = self._records.get(identity)
            if record is not None:
                record.pending_removal = True

    def remove(self, identity: str, tombstone: bool = True) -> Optional[TorrentRecord]:
        """Drop a record, tombstoning its identity unless tombstone is False.

        Returns:
            The removed record, or None if the identity was not present
        """
        with self._lock:
            record = self._records.pop(identity, None)
            if record is None:
                return None
            if tombstone:
                self._tombstones[identity] = record.descriptor_filename
            return record

    def get(self, identity: str) -> Optional[TorrentRecord]:
        with self._lock:
            record = self._records.get(identity)
            return replace(record) if record is not None else None

    def snapshot(self) -> dict[str, TorrentRecord]:
        """Copy of the whole registry, keyed by identity."""
        with self._lock:
            return {identity: replace(record) for identity, record in self._records.items()}

    def is_tombstoned(self, identity: str) -> bool:
        with self._lock:
            return identity in self._tombstones

    def stats(self) -> RegistryStats:
        with self._lock:
            records = list(self._records.values())
            return RegistryStats(
                total=len(records),
                registered=sum(1 for r in records if r.is_registered),
                seeding=sum(1 for r in records if r.is_seeding),
                pending_removal=sum(1 for r in records if r.pending_removal),
                tombstoned=len(self._tombstones),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, identity: str) -> bool:
        with self._lock:
            return identity in self._records

    def _format_locked(self) -> str:
        entries = ", ".join(f"{identity}: {record}" for identity, record in self._records.items())
        return f"[ {entries} ]"


__all__ = ['Registry']
