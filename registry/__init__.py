"""Torrent registry: tracking records and the lock-guarded store."""
from registry.models import (
    AuthorityAnomaly,
    ContentDescriptor,
    EngineEvent,
    RegistryStats,
    TorrentRecord,
    SEED_FAILED,
    SEED_STARTED,
    SEED_STOPPED,
)
from registry.store import Registry

__all__ = [
    'AuthorityAnomaly',
    'ContentDescriptor',
    'EngineEvent',
    'Registry',
    'RegistryStats',
    'TorrentRecord',
    'SEED_FAILED',
    'SEED_STARTED',
    'SEED_STOPPED',
]
