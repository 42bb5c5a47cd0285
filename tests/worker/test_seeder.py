"""Tests for SeedingCoordinator."""

import pytest

from registry.models import EngineEvent, SEED_FAILED, SEED_STARTED, SEED_STOPPED
from torrent.exceptions import EngineRejection
from worker.seeder import SeedingCoordinator

NOW = 1_700_000_000.0


@pytest.fixture
def seeder(registry, mock_engine, torrent_dir):
    return SeedingCoordinator(registry, mock_engine, str(torrent_dir))


@pytest.fixture
def registered_a(registry, add_torrent_file):
    """'a.torrent' on disk, discovered and registered."""
    a = add_torrent_file('a.torrent')
    registry.merge_discovered([a], NOW)
    registry.reconcile_authority({'a.torrent'}, NOW)
    return a


def test_submits_and_marks_seeding(seeder, registry, mock_engine, registered_a):
    result = seeder.seed(registry.select_seed_candidates())

    assert result.candidates == 1
    assert result.submitted == 1
    mock_engine.submit_seed.assert_called_once_with(registered_a)
    assert registry.get(registered_a.identity).is_seeding is True


def test_reparses_descriptor_from_disk(seeder, registry, mock_engine, registered_a, torrent_dir):
    seeder.seed(registry.select_seed_candidates())
    mock_engine.parse_descriptor.assert_called_once_with(str(torrent_dir / 'a.torrent'))


def test_second_pass_submits_nothing(seeder, registry, mock_engine, registered_a):
    """Optimistic marking prevents resubmission before the engine confirms."""
    seeder.seed(registry.select_seed_candidates())
    result = seeder.seed(registry.select_seed_candidates())

    assert result.submitted == 0
    assert mock_engine.submit_seed.call_count == 1


def test_parse_failure_skips_and_retries_next_pass(seeder, registry, mock_engine, registered_a, known_descriptors):
    del known_descriptors['a.torrent']

    result = seeder.seed(registry.select_seed_candidates())

    assert result.parse_failures == 1
    assert result.submitted == 0
    mock_engine.submit_seed.assert_not_called()
    assert registry.get(registered_a.identity).is_seeding is False
    assert len(registry.select_seed_candidates()) == 1


def test_submit_rejection_leaves_record_unmarked(seeder, registry, mock_engine, registered_a):
    mock_engine.submit_seed.side_effect = EngineRejection("session closed")

    result = seeder.seed(registry.select_seed_candidates())

    assert result.submit_failures == 1
    assert registry.get(registered_a.identity).is_seeding is False


def test_one_failure_does_not_stop_other_candidates(seeder, registry, mock_engine, add_torrent_file, known_descriptors):
    a = add_torrent_file('a.torrent')
    b = add_torrent_file('b.torrent')
    registry.merge_discovered([a, b], NOW)
    registry.reconcile_authority({'a.torrent', 'b.torrent'}, NOW)
    del known_descriptors['a.torrent']

    result = seeder.seed(registry.select_seed_candidates())

    assert result.candidates == 2
    assert result.submitted == 1
    assert registry.get(b.identity).is_seeding is True


def test_replaced_file_drops_stale_record(
        seeder, registry, mock_engine, registered_a, known_descriptors, descriptor_factory):
    known_descriptors['a.torrent'] = descriptor_factory('a2.torrent')

    result = seeder.seed(registry.select_seed_candidates())

    assert result.submitted == 0
    assert result.superseded == 1
    mock_engine.submit_seed.assert_not_called()
    assert registered_a.identity not in registry
    assert not registry.is_tombstoned(registered_a.identity)
    assert registry.select_seed_candidates() == []


# =============================================================================
# drain_events
# =============================================================================

def test_drain_events_returns_all_events_without_touching_registry(seeder, registry, mock_engine, registered_a):
    events = [
        EngineEvent(kind=SEED_STARTED, identity=registered_a.identity, name='a'),
        EngineEvent(kind=SEED_FAILED, identity='f' * 40, message='no such file'),
        EngineEvent(kind=SEED_STOPPED, identity='e' * 40),
    ]
    mock_engine.poll_events.return_value = events
    before = registry.snapshot()

    assert seeder.drain_events() == events
    assert registry.snapshot() == before


def test_drain_events_engine_error_returns_empty(seeder, mock_engine):
    mock_engine.poll_events.side_effect = EngineRejection("session gone")
    assert seeder.drain_events() == []
