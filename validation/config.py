"""
Configuration validation for SeedKeeper.

Provides a pydantic-settings model for the daemon configuration with
fail-fast validation and sensible defaults.

Precedence (highest to lowest):
1. SEEDKEEPER_-prefixed environment variables
2. Values passed to the constructor (load_settings overrides)
3. YAML config file, read by a pydantic-settings YAML source
4. Defaults defined below
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

log = logging.getLogger('SeedKeeper.config')

ENV_PREFIX = "SEEDKEEPER_"


class ConfigError(Exception):
    """Configuration file unreadable or values failed validation."""


class SeedKeeperSettings(BaseSettings):
    """
    SeedKeeper daemon configuration.

    Required:
        torrent_dir: Directory holding *.torrent descriptor files (also the data dir)
        authority_cmd: Shell command printing the identifiers that should be seeded

    Optional tunables:
        descriptor_suffix: Descriptor file suffix (default: ".torrent")
        authority_timeout: Seconds to wait for authority_cmd (default: None = wait forever)
        listen_ip / listen_port_min / listen_port_max: Engine listen socket
        update_interval: Seconds between reconciliation cycles (default: 30)
        gc_retention: Seconds an unregistered torrent is kept before retiring it
                      (default: None = garbage collection disabled)
        gc_stop_policy: 'acknowledged' waits for the engine to confirm the stop
                        before dropping the record, 'best_effort' drops it at once
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        extra="ignore",
        yaml_file=None,
        yaml_file_encoding="utf-8",
    )

    # Required fields
    torrent_dir: str
    authority_cmd: str

    descriptor_suffix: str = Field(default=".torrent", min_length=1)
    authority_timeout: Optional[float] = Field(default=None, gt=0)

    # Engine listen socket and identity
    listen_ip: str = "0.0.0.0"
    listen_port_min: int = Field(default=7052, ge=1, le=65535)
    listen_port_max: int = Field(default=7200, ge=1, le=65535)
    ssl_port: Optional[int] = Field(default=None, ge=0, le=65535)
    agent_name: str = Field(default="seedkeeper", min_length=1)

    # Engine peer discovery toggles (all off on a provisioning network)
    natpmp: bool = False
    upnp: bool = False
    lsd: bool = False

    # Scheduling
    update_interval: float = Field(default=30.0, ge=1.0, le=86400.0)
    poll_interval: float = Field(default=1.0, ge=0.1, le=60.0)

    # Garbage collection
    gc_retention: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds an unregistered torrent may linger; unset disables garbage collection"
    )
    gc_stop_policy: Literal['acknowledged', 'best_effort'] = 'acknowledged'

    # Persistence of the scheduler run summary
    state_dir: Optional[str] = Field(
        default=None,
        description="Directory for reconciliation_state.json; unset keeps state in memory only"
    )

    # Logging
    log_level: str = "info"
    json_logs: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Return sources in priority order: env > init > YAML (defaults last)."""
        return (env_settings, init_settings, _YamlFileSource(settings_cls))

    @field_validator('torrent_dir', 'authority_cmd', mode='after')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only strings."""
        if not v.strip():
            raise ValueError('must not be empty')
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log_level is one of: trace, debug, info, warning, error."""
        valid = ('trace', 'debug', 'info', 'warning', 'error')
        if isinstance(v, str) and v.lower() in valid:
            return v.lower()
        raise ValueError(f"log_level must be one of {valid}, got: {v}")

    @field_validator('natpmp', 'upnp', 'lsd', 'json_logs', mode='before')
    @classmethod
    def validate_booleans(cls, v):
        """Ensure boolean fields are actual booleans, not truthy strings."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            lower = v.lower()
            if lower in ('true', '1', 'yes'):
                return True
            if lower in ('false', '0', 'no'):
                return False
            raise ValueError(f"Invalid boolean value: {v}")
        raise ValueError(f"Expected boolean, got {type(v).__name__}")

    @model_validator(mode='after')
    def validate_port_range(self) -> 'SeedKeeperSettings':
        if self.listen_port_min > self.listen_port_max:
            raise ValueError(
                f"listen_port_min ({self.listen_port_min}) is greater than "
                f"listen_port_max ({self.listen_port_max})"
            )
        return self

    def log_config(self) -> None:
        """Log configuration summary."""
        log.info(
            f"SeedKeeper config: torrent_dir={self.torrent_dir}, "
            f"suffix={self.descriptor_suffix}, "
            f"listen={self.listen_ip}:{self.listen_port_min}-{self.listen_port_max}, "
            f"agent={self.agent_name}, "
            f"natpmp={self.natpmp}, upnp={self.upnp}, lsd={self.lsd}, "
            f"update_interval={self.update_interval}s, "
            f"authority_timeout={self.authority_timeout}"
        )
        if self.gc_retention is None:
            log.warning(
                "Garbage collection disabled (gc_retention not set), torrents "
                "dropped by the authority stay registered and keep seeding"
            )
        else:
            log.info(f"Garbage collection: retention={self.gc_retention}s, policy={self.gc_stop_policy}")


class _YamlFileSource(YamlConfigSettingsSource):
    """YAML source that rejects unreadable files and non-mapping documents with ConfigError."""

    def _read_file(self, file_path: Path) -> dict[str, Any]:
        return read_config_file(str(file_path))


def read_config_file(path: str) -> dict[str, Any]:
    """Read a YAML config file into a dict.

    Raises:
        ConfigError: If the file cannot be read or is not a YAML mapping.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def settings_from_file(path: str) -> type[SeedKeeperSettings]:
    """Return a SeedKeeperSettings subclass whose YAML source reads path."""

    class FileSettings(SeedKeeperSettings):
        model_config = SettingsConfigDict(yaml_file=path)

    return FileSettings


def format_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into 'field: message; ...'."""
    errors = []
    for error in exc.errors():
        field = '.'.join(str(loc) for loc in error['loc']) or 'config'
        if error.get('type') == 'missing':
            errors.append(f"{field}: required (set it in the config file or {ENV_PREFIX}{field.upper()})")
        else:
            errors.append(f"{field}: {error['msg']}")
    return '; '.join(errors)


def load_settings(path: Optional[str] = None, **overrides: Any) -> SeedKeeperSettings:
    """
    Build validated settings from an optional YAML file plus the environment.

    Args:
        path: Optional YAML config file
        **overrides: Extra values layered over the file (still below env vars)

    Returns:
        SeedKeeperSettings

    Raises:
        ConfigError: On unreadable file or validation failure
    """
    settings_cls = SeedKeeperSettings
    if path:
        # The YAML source silently skips missing files; a named config file must exist
        if not os.path.isfile(path):
            raise ConfigError(f"Cannot read config file {path}: no such file")
        settings_cls = settings_from_file(path)

    try:
        return settings_cls(**overrides)
    except ValidationError as e:
        raise ConfigError(format_validation_error(e)) from e


__all__ = ['SeedKeeperSettings', 'ConfigError', 'load_settings', 'read_config_file', 'settings_from_file']
