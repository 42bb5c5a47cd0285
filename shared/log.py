"""
SeedKeeper component logging.

Every module logs through a small set of level functions bound to a component
name, so the call sites read the same everywhere:

Usage:
    from shared.log import create_logger
    log_trace, log_debug, log_info, log_warn, log_error = create_logger("Scanner")
    log_info("Torrent file is found: a.torrent")  # -> [SeedKeeper Scanner] Torrent file is found: a.torrent

The functions route to stdlib ``logging`` loggers named ``SeedKeeper.<component>``;
handlers and formatting are set up once by shared.logging_config.configure_logging().
"""

import logging

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

ROOT_LOGGER_NAME = "SeedKeeper"


def create_logger(component: str = ""):
    """Create log functions for a component.

    Args:
        component: Component name suffix. If provided, prefix becomes
                   "[SeedKeeper {component}]", otherwise "[SeedKeeper]".

    Returns:
        Tuple of (log_trace, log_debug, log_info, log_warn, log_error) functions.
    """
    prefix = f"[SeedKeeper {component}]" if component else "[SeedKeeper]"
    name = f"{ROOT_LOGGER_NAME}.{component.replace(' ', '')}" if component else ROOT_LOGGER_NAME
    logger = logging.getLogger(name)

    def log_trace(msg): logger.log(TRACE, f"{prefix} {msg}")
    def log_debug(msg): logger.debug(f"{prefix} {msg}")
    def log_info(msg): logger.info(f"{prefix} {msg}")
    def log_warn(msg): logger.warning(f"{prefix} {msg}")
    def log_error(msg): logger.error(f"{prefix} {msg}")

    return log_trace, log_debug, log_info, log_warn, log_error
