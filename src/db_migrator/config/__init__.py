"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_migrator.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from db_migrator.config.loader import load_db_config
from db_migrator.config.models import (
    ConnectionResult,
    DatabaseConfig,
    DatabaseProfile,
    IntrospectionSettings,
    MigrationSettings,
)

__all__ = [
    "load_db_config",
    "ConnectionResult",
    "DatabaseConfig",
    "DatabaseProfile",
    "IntrospectionSettings",
    "MigrationSettings",
]
