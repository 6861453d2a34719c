"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol the applier executes against.
All methods are ``async def`` -- the library is async-first.

Usage:
    from db_migrator.adapters.base import DatabaseClient

    async def migrate(client: DatabaseClient) -> None:
        async with client.transaction() as tx:
            await tx.execute("ALTER TABLE users ADD COLUMN email text")
            await tx.execute("CREATE INDEX idx_users_email ON users (email)")
        await client.close()
"""

from contextlib import AbstractAsyncContextManager
from typing import Protocol


class TransactionClient(Protocol):
    """Handle for executing statements inside an open transaction."""

    async def execute(self, sql: str) -> None:
        """Execute one SQL statement inside the transaction."""
        ...


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    All methods are async -- callers must ``await`` every operation.
    """

    async def execute(self, sql: str) -> None:
        """Execute a raw SQL statement and commit it immediately.

        The text is sent to the server verbatim, without parameter
        parsing, so DDL containing colons or percent signs is safe.

        Args:
            sql: A single SQL statement.

        Example:
            await client.execute(
                "ALTER TABLE users ADD COLUMN email VARCHAR(255)"
            )
        """
        ...

    def transaction(self) -> AbstractAsyncContextManager[TransactionClient]:
        """Open a transaction.

        Commits when the block exits cleanly and rolls back when it exits
        with an exception (cancellation included).

        Example:
            async with client.transaction() as tx:
                await tx.execute("DROP TABLE legacy")
        """
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources.

        Call this when done with the adapter, especially in long-running
        processes.
        """
        ...
