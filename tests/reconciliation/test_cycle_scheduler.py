"""Tests for ReconciliationScheduler timing, triggering and state persistence."""

import json
import os
import threading
from unittest.mock import MagicMock

import pytest

from reconciliation.cycle import CycleResult
from reconciliation.scheduler import ReconciliationScheduler, ReconciliationState


@pytest.fixture
def mock_cycle():
    cycle = MagicMock()
    cycle.run.return_value = CycleResult(discovered=2, registered=1, submitted=1, authority_ok=True)
    cycle.drain_events.return_value = 0
    return cycle


@pytest.fixture
def scheduler(mock_cycle):
    return ReconciliationScheduler(mock_cycle, update_interval=30, poll_interval=1)


# =============================================================================
# is_due / tick
# =============================================================================

class TestTick:

    def test_first_tick_runs_immediately(self, scheduler, mock_cycle):
        assert scheduler.is_due(now=100.0) is True
        result = scheduler.tick(now=100.0)

        assert result is mock_cycle.run.return_value
        mock_cycle.run.assert_called_once()

    def test_not_due_drains_events_instead(self, scheduler, mock_cycle):
        scheduler.tick(now=100.0)

        assert scheduler.tick(now=110.0) is None
        assert mock_cycle.run.call_count == 1
        mock_cycle.drain_events.assert_called_once()

    def test_runs_again_after_interval(self, scheduler, mock_cycle):
        scheduler.tick(now=100.0)
        assert scheduler.is_due(now=129.9) is False
        assert scheduler.is_due(now=130.0) is True

        scheduler.tick(now=130.0)
        assert mock_cycle.run.call_count == 2

    def test_request_run_bypasses_interval(self, scheduler, mock_cycle):
        scheduler.tick(now=100.0)
        scheduler.request_run()

        scheduler.tick(now=101.0)

        assert mock_cycle.run.call_count == 2
        assert scheduler.state.is_triggered_run is True

    def test_repeated_requests_coalesce(self, scheduler, mock_cycle):
        scheduler.tick(now=100.0)
        for _ in range(5):
            scheduler.request_run()

        scheduler.tick(now=101.0)
        scheduler.tick(now=102.0)

        assert mock_cycle.run.call_count == 2

    def test_triggered_run_restarts_interval(self, scheduler, mock_cycle):
        scheduler.tick(now=100.0)
        scheduler.request_run()
        scheduler.tick(now=120.0)

        assert scheduler.is_due(now=140.0) is False
        assert scheduler.is_due(now=150.0) is True

    def test_no_run_after_stop(self, scheduler, mock_cycle):
        scheduler.request_stop()

        assert scheduler.tick(now=100.0) is None
        mock_cycle.run.assert_not_called()
        assert scheduler.stopped is True

    def test_dropped_cycle_not_recorded(self, scheduler, mock_cycle):
        mock_cycle.run.return_value = None

        assert scheduler.tick(now=100.0) is None
        assert scheduler.state.run_count == 0


# =============================================================================
# State persistence
# =============================================================================

class TestState:

    def test_record_run_updates_counts(self, scheduler):
        result = CycleResult(discovered=3, registered=2, submitted=1, retired=1,
                             anomalies=['ghost.torrent'], authority_ok=True, duration=0.5)

        scheduler.record_run(result)

        state = scheduler.state
        assert state.run_count == 1
        assert state.last_discovered == 3
        assert state.last_registered == 2
        assert state.last_submitted == 1
        assert state.last_retired == 1
        assert state.last_anomalies == 1
        assert state.last_authority_ok is True
        assert state.last_run_time > 0

    def test_state_saved_and_reloaded(self, mock_cycle, tmp_path):
        scheduler = ReconciliationScheduler(mock_cycle, state_dir=str(tmp_path))
        scheduler.tick(now=100.0)

        path = tmp_path / ReconciliationScheduler.STATE_FILE
        assert path.exists()
        assert json.loads(path.read_text())['last_submitted'] == 1
        assert not os.path.exists(str(path) + '.tmp')

        reloaded = ReconciliationScheduler(mock_cycle, state_dir=str(tmp_path))
        assert reloaded.state.run_count == 1

    def test_corrupt_state_file_uses_defaults(self, mock_cycle, tmp_path):
        (tmp_path / ReconciliationScheduler.STATE_FILE).write_text("{not json")

        scheduler = ReconciliationScheduler(mock_cycle, state_dir=str(tmp_path))

        assert scheduler.state == ReconciliationState()

    def test_unknown_state_keys_use_defaults(self, mock_cycle, tmp_path):
        (tmp_path / ReconciliationScheduler.STATE_FILE).write_text(json.dumps({"queue_depth": 4}))

        scheduler = ReconciliationScheduler(mock_cycle, state_dir=str(tmp_path))

        assert scheduler.state == ReconciliationState()

    def test_no_state_dir_writes_nothing(self, scheduler, tmp_path):
        scheduler.tick(now=100.0)
        assert scheduler.state_path is None
        assert list(tmp_path.iterdir()) == []


# =============================================================================
# Background thread
# =============================================================================

class TestThread:

    def test_start_runs_cycle_and_stop_joins(self, mock_cycle):
        scheduler = ReconciliationScheduler(mock_cycle, update_interval=3600, poll_interval=0.05)

        scheduler.start()
        try:
            for _ in range(100):
                if mock_cycle.run.called:
                    break
                scheduler.wait(0.05)
        finally:
            scheduler.stop(timeout=5)

        assert mock_cycle.run.call_count == 1
        assert scheduler.running is False
        assert scheduler.wait(0) is True

    def test_loop_survives_cycle_errors(self, mock_cycle):
        mock_cycle.run.side_effect = [RuntimeError("boom"), mock_cycle.run.return_value]
        scheduler = ReconciliationScheduler(mock_cycle, update_interval=0.01, poll_interval=0.01)

        scheduler.start()
        try:
            for _ in range(200):
                if mock_cycle.run.call_count >= 2:
                    break
                scheduler.wait(0.02)
        finally:
            scheduler.stop(timeout=5)

        assert mock_cycle.run.call_count >= 2


def test_stop_during_authority_refresh_skips_seeding(cycle, mock_engine, mock_authority, add_torrent_file):
    """A stop requested while the authority command blocks ends the cycle after that phase."""
    add_torrent_file('a.torrent')
    entered = threading.Event()
    release = threading.Event()

    def slow_fetch():
        entered.set()
        release.wait(5)
        return {'a.torrent'}
    mock_authority.fetch_expected_names.side_effect = slow_fetch

    scheduler = ReconciliationScheduler(cycle, update_interval=3600, poll_interval=0.05)
    scheduler.start()
    try:
        assert entered.wait(5)
        scheduler.request_stop()
    finally:
        release.set()
        scheduler.stop(timeout=5)

    assert scheduler.running is False
    mock_engine.submit_seed.assert_not_called()
    assert scheduler.state.run_count == 1
