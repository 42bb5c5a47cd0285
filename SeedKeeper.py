#!/usr/bin/env python3
"""
SeedKeeper - seeding daemon for provisioned OS images

Entry point. Loads configuration, opens the libtorrent listen socket (fatal
on failure), wires scanner, authority, registry and workers into a
reconciliation cycle, and runs it on a timer until stopped.

Signals:
    SIGTERM, SIGINT  stop after the running cycle
    SIGHUP, SIGUSR1  run a reconciliation cycle now
"""

import argparse
import os
import signal
import sys

from shared.log import create_logger
log_trace, log_debug, log_info, log_warn, log_error = create_logger()

from authority.client import InventoryAuthorityClient
from reconciliation.cycle import ReconciliationCycle
from reconciliation.scheduler import ReconciliationScheduler
from registry.store import Registry
from scanner.directory import DirectoryScanner
from shared.logging_config import configure_logging
from torrent.exceptions import EngineRejection
from validation.config import ConfigError, SeedKeeperSettings, load_settings
from worker.collector import GarbageCollector
from worker.seeder import SeedingCoordinator

STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)
UPDATE_SIGNALS = (signal.SIGHUP, signal.SIGUSR1)

# Globals (initialized in initialize())
config: SeedKeeperSettings = None
engine = None
registry: Registry = None
cycle: ReconciliationCycle = None
scheduler: ReconciliationScheduler = None


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="seedkeeper", description="Seed OS image torrents listed by the authority.")
    parser.add_argument("-c", "--config", help="YAML config file (SEEDKEEPER_* env vars take precedence)")
    parser.add_argument("--once", action="store_true", help="run a single reconciliation cycle and exit")
    return parser.parse_args(argv)


def create_engine(settings: SeedKeeperSettings):
    """
    Build the libtorrent engine and open its listen socket.

    Raises:
        EngineRejection: If no port in the configured range can be bound
    """
    from torrent.client import TorrentEngine

    torrent_engine = TorrentEngine(settings.torrent_dir)
    torrent_engine.listen(settings.listen_port_min, settings.listen_port_max, settings.listen_ip)
    torrent_engine.set_identity(settings.agent_name)
    torrent_engine.configure(
        nat_traversal=settings.natpmp,
        local_discovery=settings.lsd,
        upnp=settings.upnp,
        announce_ip=settings.listen_ip,
        ssl_port=settings.ssl_port,
    )
    return torrent_engine


def build_cycle(settings: SeedKeeperSettings, torrent_engine, torrent_registry: Registry) -> ReconciliationCycle:
    """Wire scanner, authority and workers around the registry."""
    return ReconciliationCycle(
        registry=torrent_registry,
        scanner=DirectoryScanner(settings.torrent_dir, torrent_engine, settings.descriptor_suffix),
        authority=InventoryAuthorityClient(
            settings.authority_cmd,
            suffix=settings.descriptor_suffix,
            timeout=settings.authority_timeout,
        ),
        seeder=SeedingCoordinator(torrent_registry, torrent_engine, settings.torrent_dir),
        collector=GarbageCollector(
            torrent_registry,
            torrent_engine,
            retention=settings.gc_retention,
            stop_policy=settings.gc_stop_policy,
        ),
    )


def initialize(settings: SeedKeeperSettings) -> None:
    """
    Build engine, registry, cycle and scheduler.

    Raises:
        SystemExit: If the engine cannot open its listen socket
    """
    global config, engine, registry, cycle, scheduler
    config = settings

    if not os.path.isdir(config.torrent_dir):
        log_error(f"Torrent directory does not exist: {config.torrent_dir}")
        raise SystemExit(1)

    try:
        engine = create_engine(config)
    except EngineRejection as e:
        log_error(f"Failed to start the torrent engine: {e}")
        raise SystemExit(1)

    registry = Registry()
    cycle = build_cycle(config, engine, registry)
    scheduler = ReconciliationScheduler(
        cycle,
        update_interval=config.update_interval,
        poll_interval=config.poll_interval,
        state_dir=config.state_dir,
    )
    log_info("Initialization complete")


def register_handlers() -> None:
    """Route stop/update signals to the scheduler's tokens."""
    def _stop_handler(signum, frame):
        log_info(f"Received signal {signal.Signals(signum).name}, stopping")
        scheduler.request_stop()

    def _update_handler(signum, frame):
        log_debug(f"Received signal {signal.Signals(signum).name}, update requested")
        scheduler.request_run()

    for signum in STOP_SIGNALS:
        signal.signal(signum, _stop_handler)
    for signum in UPDATE_SIGNALS:
        signal.signal(signum, _update_handler)


def shutdown() -> None:
    """Stop the scheduler, letting the current cycle finish."""
    if scheduler:
        scheduler.stop(timeout=config.update_interval if config else None)
    log_trace("Shutdown complete")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level, json_output=settings.json_logs)
    settings.log_config()

    initialize(settings)

    if args.once:
        result = cycle.run()
        return 1 if result is None or result.errors else 0

    register_handlers()
    scheduler.start()
    try:
        scheduler.wait()
    finally:
        shutdown()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        shutdown()
        sys.exit(0)
