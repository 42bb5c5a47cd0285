"""Root logger configuration for the SeedKeeper daemon."""

from __future__ import annotations

import logging

from pythonjsonlogger import json as jsonlogger

from shared.log import TRACE

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(message)s"


def resolve_level(log_level: str) -> int:
    """Map a level name ("trace", "debug", "info", ...) to a logging level number."""
    if log_level.lower() == "trace":
        return TRACE
    return getattr(logging, log_level.upper(), logging.INFO)


def configure_logging(log_level: str, json_output: bool = False) -> None:
    """Configure root logger with text or structured JSON output.

    JSON format: {"ts": "...", "level": "...", "name": "...", "msg": "..."}

    Args:
        log_level: Logging level string (e.g., "info", "debug", "trace").
        json_output: Emit one JSON object per record instead of plain text.
    """
    level = resolve_level(log_level)

    if json_output:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "ts",
                "levelname": "level",
                "message": "msg",
            },
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    # Clear any existing handlers to avoid duplicate output
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
