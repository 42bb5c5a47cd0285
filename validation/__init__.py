"""
Validation module for SeedKeeper.

Provides daemon configuration loading and validation.
"""

from validation.config import ConfigError, SeedKeeperSettings, load_settings

__all__ = [
    'ConfigError',
    'SeedKeeperSettings',
    'load_settings',
]
