"""db-migrator: PostgreSQL schema diff and migration engine.

Compares two schema snapshots (live databases or JSON files), computes a
typed ChangeSet, orders it for safe execution, flags risky changes, and
renders or applies the DDL in one transaction.

Usage:
    from db_migrator import diff, order_changes, validate_changes, SQLGenerator
    from db_migrator import Applier, get_adapter, load_schema
"""

__version__ = "0.1.0"

# Adapters
from db_migrator.adapters.base import DatabaseClient
from db_migrator.adapters.postgres import AsyncPostgresAdapter

# Config
from db_migrator.config.loader import load_db_config
from db_migrator.config.models import DatabaseConfig, DatabaseProfile

# Factory
from db_migrator.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    get_adapter,
    load_schema,
    resolve_url,
)

# Schema engine
from db_migrator.schema.applier import Applier, ApplyError, ApplyResult
from db_migrator.schema.changes import ChangeSet, ChangeType
from db_migrator.schema.differ import diff
from db_migrator.schema.models import DatabaseSchema
from db_migrator.schema.orderer import order_changes
from db_migrator.schema.sql import SQLGenerator
from db_migrator.schema.validator import validate_changes

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncPostgresAdapter",
    # Config
    "load_db_config",
    "DatabaseProfile",
    "DatabaseConfig",
    # Factory
    "get_adapter",
    "load_schema",
    "connect_and_validate",
    "ProfileNotFoundError",
    "resolve_url",
    # Schema engine
    "DatabaseSchema",
    "ChangeSet",
    "ChangeType",
    "diff",
    "order_changes",
    "validate_changes",
    "SQLGenerator",
    "Applier",
    "ApplyError",
    "ApplyResult",
]
