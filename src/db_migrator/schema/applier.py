"""Apply an ordered ChangeSet to a live database.

Two execution modes:

- ``apply()``: all-or-nothing.  Every statement runs inside one
  transaction; the first failure rolls everything back and raises
  ``ApplyError``.
- ``apply_with_continue()``: best effort.  Each statement runs on its own
  (autocommit); failures are recorded and execution continues.

``dry_run()`` renders the statements without touching the database.

Usage:
    from db_migrator.schema.applier import Applier

    applier = Applier(adapter)
    result = await applier.apply(ordered)
"""

import copy
import logging
from dataclasses import dataclass, field

from db_migrator.adapters.base import DatabaseClient
from db_migrator.schema.changes import Change, ChangeSet
from db_migrator.schema.sql import ChangeRenderError, SQLGenerator

logger = logging.getLogger(__name__)


class ApplyError(Exception):
    """Transactional apply failed and was rolled back.

    Attributes:
        result: The partial ``ApplyResult`` at the point of failure.  Its
            ``applied`` changes were executed and then rolled back.
    """

    def __init__(self, message: str, result: "ApplyResult") -> None:
        super().__init__(message)
        self.result = result


@dataclass
class ChangeError:
    """A change that failed, with the SQL attempted and the cause."""

    change: Change
    sql: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.change.description}: {self.error}"


@dataclass
class ApplyResult:
    """Changes that executed and changes that failed, in execution order."""

    applied: list[Change] = field(default_factory=list)
    failed: list[ChangeError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


class Applier:
    """Executes ChangeSets through a ``DatabaseClient``.

    The ChangeSet is expected to be ordered already (``order_changes()``).

    Args:
        client: Database client to execute against.
        generator: SQL generator.  Execution uses a comment-free copy; the
            caller's generator is left unchanged.
    """

    def __init__(self, client: DatabaseClient, generator: SQLGenerator | None = None) -> None:
        self.client = client
        if generator is None:
            self.generator = SQLGenerator(include_comments=False)
        else:
            self.generator = copy.copy(generator)
            self.generator.include_comments = False

    async def apply(self, cs: ChangeSet) -> ApplyResult:
        """Apply every change in a single transaction.

        Commits only if every statement succeeds.  Cancellation rolls the
        transaction back and propagates.

        Args:
            cs: Ordered ChangeSet.

        Returns:
            ``ApplyResult`` with every change in ``applied``.

        Raises:
            ApplyError: On the first failing change, after rollback.
        """
        result = ApplyResult()
        if cs.is_empty():
            return result

        async with self.client.transaction() as tx:
            for change in cs:
                statements = self.generator.generate_statements(change)
                sql = "\n".join(statements)
                if not statements:
                    err = ChangeRenderError(change)
                    result.failed.append(ChangeError(change=change, sql=sql, error=err))
                    raise ApplyError(f"Failed to apply change: {err}", result) from err

                for stmt in statements:
                    logger.debug("Executing: %s", stmt)
                    try:
                        await tx.execute(stmt)
                    except Exception as err:
                        logger.warning("Change failed, rolling back: %s: %s", change.description, err)
                        result.failed.append(ChangeError(change=change, sql=sql, error=err))
                        raise ApplyError(
                            f"Failed to apply change '{change.description}': {err}", result
                        ) from err

                result.applied.append(change)

        logger.debug("Applied %d change(s) in one transaction", len(result.applied))
        return result

    async def apply_with_continue(self, cs: ChangeSet) -> ApplyResult:
        """Apply each change independently, continuing past failures.

        Statements run through ``client.execute`` and commit individually.
        Within one change, execution stops at its first failing statement.

        Args:
            cs: Ordered ChangeSet.

        Returns:
            ``ApplyResult`` listing applied and failed changes.  Statement
            errors are recorded, never raised.
        """
        result = ApplyResult()

        for change in cs:
            statements = self.generator.generate_statements(change)
            sql = "\n".join(statements)
            if not statements:
                result.failed.append(
                    ChangeError(change=change, sql=sql, error=ChangeRenderError(change))
                )
                continue

            failed = False
            for stmt in statements:
                logger.debug("Executing: %s", stmt)
                try:
                    await self.client.execute(stmt)
                except Exception as err:
                    logger.warning("Change failed, continuing: %s: %s", change.description, err)
                    result.failed.append(ChangeError(change=change, sql=sql, error=err))
                    failed = True
                    break

            if not failed:
                result.applied.append(change)

        return result

    def dry_run(self, cs: ChangeSet) -> list[str]:
        """Render the SQL that ``apply()`` would execute, one entry per change.

        Raises:
            ChangeRenderError: If a change renders to nothing.
        """
        rendered: list[str] = []
        for change in cs:
            sql = self.generator.generate_change(change)
            if not sql:
                raise ChangeRenderError(change)
            rendered.append(sql)
        return rendered
