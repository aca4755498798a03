"""Tests for the PostgreSQL backend against a fake asyncpg connection."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Callable
from unittest.mock import AsyncMock

import asyncpg
import pytest

from pgjournal.errors import (
    BackendNotInitialized,
    QueryExecutionError,
    VersionUnsupported,
    WriteError,
)
from pgjournal.models import JournalMessage, Query
from pgjournal.storage.backends.postgres import PostgresJournalStorage

TS = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)


def _sql(call) -> str:
    return " ".join(call.args[0].split())


@pytest.mark.asyncio
async def test_initialize_creates_jsonb_table(connect: Callable[..., AsyncMock]) -> None:
    conn = connect("14.5")
    backend = PostgresJournalStorage("postgresql://test/journal")
    await backend.initialize()

    assert backend.server.jsonb is True
    assert backend.capabilities.structured_json is True
    conn.execute.assert_awaited_once()
    assert _sql(conn.execute.await_args) == (
        "CREATE TABLE IF NOT EXISTS journal ( id UUID PRIMARY KEY, topic TEXT NOT NULL, "
        "timestamp TIMESTAMP WITH TIME ZONE NOT NULL, payload JSONB NOT NULL )"
    )
    await backend.close()
    conn.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_initialize_falls_back_to_json_on_93(connect: Callable[..., AsyncMock]) -> None:
    conn = connect("9.3")
    backend = PostgresJournalStorage()
    await backend.initialize()

    assert backend.server.version == "9.3.0"
    assert backend.capabilities.structured_json is False
    assert "payload JSON NOT NULL" in _sql(conn.execute.await_args)
    assert backend.compiler.structured_json is False
    assert backend.compile(Query(payload={"tags": [1]})).predicate == "(payload->>'tags' = $1)"


@pytest.mark.asyncio
async def test_initialize_rejects_old_server(connect: Callable[..., AsyncMock]) -> None:
    conn = connect("9.2.0")
    backend = PostgresJournalStorage()
    with pytest.raises(VersionUnsupported):
        await backend.initialize()

    conn.execute.assert_not_awaited()
    conn.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_connection_errors_propagate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "pgjournal.storage.backends.postgres.asyncpg.connect",
        AsyncMock(side_effect=ConnectionRefusedError("refused")),
    )
    with pytest.raises(ConnectionRefusedError):
        await PostgresJournalStorage().initialize()


@pytest.mark.asyncio
async def test_drop_option_drops_before_create(connect: Callable[..., AsyncMock]) -> None:
    conn = connect()
    backend = PostgresJournalStorage(drop=True)
    await backend.initialize()

    statements = [_sql(call) for call in conn.execute.await_args_list]
    assert statements[0] == "DROP TABLE journal"
    assert statements[1].startswith("CREATE TABLE IF NOT EXISTS journal")


@pytest.mark.asyncio
async def test_drop_failure_is_swallowed(connect: Callable[..., AsyncMock]) -> None:
    conn = connect()
    missing = asyncpg.exceptions.UndefinedTableError('table "journal" does not exist')
    conn.execute.side_effect = [missing, "CREATE TABLE"]
    backend = PostgresJournalStorage(drop=True)
    await backend.initialize()

    assert conn.execute.await_count == 2
    conn.execute.side_effect = None
    result = await backend.drop()
    assert result.dropped is True

    conn.execute.side_effect = missing
    result = await backend.drop()
    assert result.dropped is False
    assert not result
    assert result.error is missing


@pytest.mark.asyncio
async def test_insert_binds_four_parameters(
    storage: PostgresJournalStorage, fake_connection: AsyncMock
) -> None:
    message = JournalMessage(
        id=str(uuid.uuid4()), topic="room.join", timestamp=TS, payload={"nick": "bøb"}
    )
    await storage.insert(message)

    call = fake_connection.execute.await_args
    assert call.args == (
        "INSERT INTO journal VALUES ($1, $2, $3, $4)",
        message.id,
        "room.join",
        TS,
        json.dumps({"nick": "bøb"}, ensure_ascii=False),
    )


@pytest.mark.asyncio
async def test_insert_duplicate_raises_write_error(
    storage: PostgresJournalStorage, fake_connection: AsyncMock
) -> None:
    fake_connection.execute.side_effect = asyncpg.exceptions.UniqueViolationError(
        "duplicate key value violates unique constraint"
    )
    with pytest.raises(WriteError) as exc_info:
        await storage.insert(JournalMessage.create("t"))
    assert isinstance(exc_info.value.__cause__, asyncpg.exceptions.UniqueViolationError)


@pytest.mark.asyncio
async def test_find_appends_limit_and_offset(
    storage: PostgresJournalStorage, fake_connection: AsyncMock
) -> None:
    row_id = uuid.uuid4()
    fake_connection.fetch.return_value = [
        {"id": row_id, "topic": "room.join", "timestamp": TS, "payload": '{"a": [1, 2]}'}
    ]

    messages = await storage.find(Query(topic=["room*"]), limit=10, offset=5)

    fake_connection.fetch.assert_awaited_once_with(
        "SELECT * FROM journal WHERE (topic ILIKE $1) LIMIT 10 OFFSET 5", "room%"
    )
    assert messages == [
        JournalMessage(id=str(row_id), topic="room.join", timestamp=TS, payload={"a": [1, 2]})
    ]


@pytest.mark.asyncio
async def test_find_defaults(storage: PostgresJournalStorage, fake_connection: AsyncMock) -> None:
    await storage.find(Query(id=["a"]))
    fake_connection.fetch.assert_awaited_once_with(
        "SELECT * FROM journal WHERE (id = $1) LIMIT 100 OFFSET 0", "a"
    )


@pytest.mark.asyncio
async def test_unconstrained_find_matches_all_rows(
    storage: PostgresJournalStorage, fake_connection: AsyncMock
) -> None:
    await storage.find(Query(), limit=None)
    fake_connection.fetch.assert_awaited_once_with("SELECT * FROM journal OFFSET 0")


@pytest.mark.asyncio
async def test_find_rejects_negative_paging(storage: PostgresJournalStorage) -> None:
    with pytest.raises(ValueError):
        await storage.find(Query(), limit=-1)
    with pytest.raises(ValueError):
        await storage.find(Query(), offset=-1)


@pytest.mark.asyncio
async def test_count(storage: PostgresJournalStorage, fake_connection: AsyncMock) -> None:
    fake_connection.fetch.return_value = [(7,)]
    query = Query(topic=["room*"], payload={"meta.level": 3})

    assert await storage.count(query) == 7
    fake_connection.fetch.assert_awaited_once_with(
        "SELECT COUNT(*) FROM journal WHERE (topic ILIKE $1) "
        "AND (payload->'meta'->>'level' = $2)",
        "room%",
        "3",
    )


@pytest.mark.asyncio
async def test_rejected_query_raises_query_execution_error(
    storage: PostgresJournalStorage, fake_connection: AsyncMock
) -> None:
    fake_connection.fetch.side_effect = asyncpg.exceptions.UndefinedFunctionError(
        "operator does not exist"
    )
    with pytest.raises(QueryExecutionError) as exc_info:
        await storage.count(Query(id=["a"]))
    assert exc_info.value.sql == "SELECT COUNT(*) FROM journal WHERE (id = $1)"
    assert exc_info.value.params == ["a"]


@pytest.mark.asyncio
async def test_operations_require_initialize() -> None:
    backend = PostgresJournalStorage()
    with pytest.raises(BackendNotInitialized):
        await backend.find(Query())
    with pytest.raises(BackendNotInitialized):
        await backend.insert(JournalMessage.create("t"))
    assert backend.capabilities.structured_json is False


@pytest.mark.asyncio
async def test_context_manager_closes(connect: Callable[..., AsyncMock]) -> None:
    conn = connect()
    async with PostgresJournalStorage() as backend:
        assert backend.server.version == "14.5.0"
    conn.close.assert_awaited_once()
    with pytest.raises(BackendNotInitialized):
        await backend.count(Query())


@pytest.mark.asyncio
async def test_escaper_follows_server_setting(connect: Callable[..., AsyncMock]) -> None:
    connect(conforming="off")
    backend = PostgresJournalStorage()
    await backend.initialize()
    assert backend.compile(Query(payload={"a\\b": 1})).predicate == "(payload->>E'a\\\\b' = $1)"
