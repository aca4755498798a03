"""Pytest configuration helpers."""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Dict
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from pgjournal.storage.backends.postgres import PostgresJournalStorage


def make_connection(version: str = "14.5", conforming: str = "on") -> AsyncMock:
    """Build an asyncpg connection double answering the startup SHOW statements."""
    settings: Dict[str, Any] = {
        "SHOW server_version": version,
        "SHOW standard_conforming_strings": conforming,
    }

    def fetchval(sql: str, *args: Any) -> Any:
        return settings[sql]

    conn = AsyncMock()
    conn.fetchval = AsyncMock(side_effect=fetchval)
    conn.fetch = AsyncMock(return_value=[])
    conn.execute = AsyncMock(return_value="OK")
    conn.close = AsyncMock()
    return conn


@pytest.fixture
def connect(monkeypatch: pytest.MonkeyPatch) -> Callable[..., AsyncMock]:
    """Patch ``asyncpg.connect``; call the fixture to choose the fake server."""

    def _connect(version: str = "14.5", conforming: str = "on") -> AsyncMock:
        conn = make_connection(version, conforming)
        monkeypatch.setattr(
            "pgjournal.storage.backends.postgres.asyncpg.connect",
            AsyncMock(return_value=conn),
        )
        return conn

    return _connect


@pytest.fixture
def fake_connection(connect: Callable[..., AsyncMock]) -> AsyncMock:
    return connect()


@pytest_asyncio.fixture
async def storage(fake_connection: AsyncMock) -> AsyncIterator[PostgresJournalStorage]:
    """Initialized backend on top of the fake connection."""
    backend = PostgresJournalStorage("postgresql://test/journal")
    await backend.initialize()
    fake_connection.execute.reset_mock()
    yield backend
    await backend.close()
