"""
Shared pytest fixtures for SeedKeeper tests.

Provides reusable fixtures for:
- Descriptor construction (fake info-hashes, filenames)
- A mock distribution engine whose parser knows a set of descriptors
- A mock authority client
- A fully wired ReconciliationCycle over a temporary torrent directory

The engine is a MagicMock so tests never need libtorrent or a socket.
"""

import hashlib
import os
from unittest.mock import MagicMock

import pytest

from registry.models import ContentDescriptor
from registry.store import Registry
from torrent.exceptions import InvalidDescriptor


def make_identity(name: str) -> str:
    """Deterministic 40-char hex identity for a name."""
    return hashlib.sha1(name.encode()).hexdigest()


def make_descriptor(filename: str, directory: str = "/srv/torrents") -> ContentDescriptor:
    """Build a ContentDescriptor the way the engine parser would."""
    stem = filename.rsplit('.', 1)[0]
    return ContentDescriptor(
        identity=make_identity(stem),
        name=stem,
        files=(f"{stem}.tgz",),
        filename=filename,
        path=os.path.join(directory, filename),
    )


@pytest.fixture
def descriptor_factory():
    """make_descriptor(filename, directory=...) as a fixture."""
    return make_descriptor


# =============================================================================
# Engine Mock Fixtures
# =============================================================================

@pytest.fixture
def torrent_dir(tmp_path):
    """Temporary torrent directory."""
    directory = tmp_path / "torrents"
    directory.mkdir()
    return directory


@pytest.fixture
def known_descriptors():
    """
    Mapping of filename -> ContentDescriptor the mock engine accepts.

    Tests add entries to teach the engine about a descriptor:
        known_descriptors['a.torrent'] = make_descriptor('a.torrent')
    """
    return {}


@pytest.fixture
def mock_engine(known_descriptors):
    """
    Mock TorrentEngine.

    Provides:
        - parse_descriptor(path): descriptor from known_descriptors by basename,
          InvalidDescriptor otherwise
        - submit_seed(descriptor): records the call
        - stop_seed(identity): returns True (engine held the torrent)
        - poll_events(): returns [] by default
    """
    engine = MagicMock()

    def _parse(path):
        filename = os.path.basename(path)
        if filename not in known_descriptors:
            raise InvalidDescriptor(f"Error for file '{path}': not a torrent")
        return known_descriptors[filename]

    engine.parse_descriptor.side_effect = _parse
    engine.submit_seed.return_value = None
    engine.stop_seed.return_value = True
    engine.poll_events.return_value = []
    return engine


@pytest.fixture
def mock_authority():
    """
    Mock InventoryAuthorityClient.

    fetch_expected_names() returns an empty set by default; set
    return_value or side_effect (e.g. AuthorityUnavailable) per test.
    last_contacted is None until a test sets it.
    """
    authority = MagicMock()
    authority.fetch_expected_names.return_value = set()
    authority.last_contacted = None
    return authority


@pytest.fixture
def registry():
    """Empty Registry."""
    return Registry()


@pytest.fixture
def add_torrent_file(torrent_dir, known_descriptors):
    """
    Factory creating a descriptor file on disk and registering it with the mock engine.

    Usage:
        descriptor = add_torrent_file('a.torrent')
    """
    def _add(filename: str) -> ContentDescriptor:
        (torrent_dir / filename).write_bytes(b"d4:infod4:name1:aee")
        descriptor = make_descriptor(filename, str(torrent_dir))
        known_descriptors[filename] = descriptor
        return descriptor
    return _add


@pytest.fixture
def cycle(registry, mock_engine, mock_authority, torrent_dir):
    """ReconciliationCycle wired with real scanner/registry/workers over mocks."""
    from reconciliation.cycle import ReconciliationCycle
    from scanner.directory import DirectoryScanner
    from worker.collector import GarbageCollector
    from worker.seeder import SeedingCoordinator

    return ReconciliationCycle(
        registry=registry,
        scanner=DirectoryScanner(str(torrent_dir), mock_engine, ".torrent"),
        authority=mock_authority,
        seeder=SeedingCoordinator(registry, mock_engine, str(torrent_dir)),
        collector=GarbageCollector(registry, mock_engine, retention=None),
    )


@pytest.fixture
def valid_config_dict(torrent_dir):
    """
    Dictionary with valid configuration values for SeedKeeperSettings.

    Usage:
        def test_config_parsing(valid_config_dict):
            config = SeedKeeperSettings(**valid_config_dict)
    """
    return {
        "torrent_dir": str(torrent_dir),
        "authority_cmd": "luna osimage list --names",
        "listen_ip": "10.30.255.254",
        "listen_port_min": 7052,
        "listen_port_max": 7200,
        "update_interval": 30,
    }
