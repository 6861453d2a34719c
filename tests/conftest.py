"""Shared fixtures: an in-memory ``DatabaseClient`` with transaction semantics."""

from contextlib import asynccontextmanager

import pytest


class FakeTransaction:
    """Buffers statements until the owning transaction commits."""

    def __init__(self, client: "FakeClient") -> None:
        self._client = client
        self.pending: list[str] = []

    async def execute(self, sql: str) -> None:
        self._client.executed.append(sql)
        self._client.maybe_fail(sql)
        self.pending.append(sql)


class FakeClient:
    """Records executed SQL; statements in ``fail_on`` raise ``RuntimeError``.

    ``committed`` only ever holds statements whose transaction (or
    autocommit ``execute``) completed.
    """

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = set(fail_on or ())
        self.executed: list[str] = []
        self.committed: list[str] = []
        self.transactions = 0
        self.rollbacks = 0
        self.closed = False

    def maybe_fail(self, sql: str) -> None:
        if sql in self.fail_on:
            raise RuntimeError(f"statement failed: {sql}")

    async def execute(self, sql: str) -> None:
        self.executed.append(sql)
        self.maybe_fail(sql)
        self.committed.append(sql)

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        tx = FakeTransaction(self)
        try:
            yield tx
        except BaseException:
            self.rollbacks += 1
            raise
        self.committed.extend(tx.pending)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
