"""
Unit tests for the reconciliation run lock and tenant write serialization.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from campaign_core.infrastructure.repositories.unit_of_work import (
    advisory_lock,
    tenant_write_lock,
)


class RecordingConnection:
    def __init__(self, log: list[tuple[int, str]], number: int, lock_free: bool) -> None:
        self.log = log
        self.number = number
        self.lock_free = lock_free

    async def __aenter__(self) -> RecordingConnection:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.log.append((self.number, "close"))

    async def scalar(self, statement, params=None):
        self.log.append((self.number, str(statement)))
        return self.lock_free

    async def execute(self, statement, params=None) -> None:
        self.log.append((self.number, str(statement)))

    async def commit(self) -> None:
        self.log.append((self.number, "commit"))


class PostgresEngine:
    """Hands out a new numbered connection on every connect()."""

    dialect = SimpleNamespace(name="postgresql")

    def __init__(self, *, lock_free: bool = True) -> None:
        self.lock_free = lock_free
        self.log: list[tuple[int, str]] = []
        self.connections = 0

    def connect(self) -> RecordingConnection:
        self.connections += 1
        return RecordingConnection(self.log, self.connections, self.lock_free)


class TestAdvisoryLock:
    async def test_lock_and_unlock_use_the_same_connection(self) -> None:
        engine = PostgresEngine()

        async with advisory_lock(engine, 42) as acquired:
            assert acquired is True
            engine.log.append((0, "work"))

        assert engine.connections == 1
        statements = [statement for _, statement in engine.log]
        assert statements == [
            "SELECT pg_try_advisory_lock(:key)",
            "commit",
            "work",
            "SELECT pg_advisory_unlock(:key)",
            "commit",
            "close",
        ]
        assert {number for number, _ in engine.log if number} == {1}

    async def test_held_lock_is_not_released_by_the_loser(self) -> None:
        engine = PostgresEngine(lock_free=False)

        async with advisory_lock(engine, 42) as acquired:
            assert acquired is False

        assert not any("unlock" in statement for _, statement in engine.log)

    async def test_unlock_runs_when_the_body_fails(self) -> None:
        engine = PostgresEngine()

        with pytest.raises(RuntimeError):
            async with advisory_lock(engine, 42):
                raise RuntimeError("sweep failed")

        assert (1, "SELECT pg_advisory_unlock(:key)") in engine.log

    async def test_other_backends_always_acquire(self) -> None:
        engine = SimpleNamespace(dialect=SimpleNamespace(name="sqlite"))

        async with advisory_lock(engine, 42) as acquired:
            assert acquired is True


class TestTenantWriteLock:
    async def test_one_lock_per_tenant(self) -> None:
        assert tenant_write_lock("tenant-a") is tenant_write_lock("tenant-a")
        assert tenant_write_lock("tenant-a") is not tenant_write_lock("tenant-b")

    async def test_writers_of_one_tenant_take_turns(self) -> None:
        order: list[str] = []

        async def writer(name: str) -> None:
            async with tenant_write_lock("tenant-a"):
                order.append(f"{name}:start")
                await asyncio.sleep(0)
                order.append(f"{name}:end")

        await asyncio.gather(writer("first"), writer("second"))

        assert order == ["first:start", "first:end", "second:start", "second:end"]
