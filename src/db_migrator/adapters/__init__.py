"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async PostgreSQL adapter
the applier executes migrations through.

Usage:
    from db_migrator.adapters import DatabaseClient, AsyncPostgresAdapter
"""

from db_migrator.adapters.base import DatabaseClient, TransactionClient
from db_migrator.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DatabaseClient",
    "TransactionClient",
    "AsyncPostgresAdapter",
]
