"""
PostgreSQL storage backend for the journal.

Implements the JournalStorage interface on a single asyncpg connection.
Payloads are stored as JSONB on PostgreSQL 9.4+ and as plain JSON on 9.3;
structured queries are compiled by ``QueryCompiler`` into parameterized
predicates.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, List, Optional, Type

import asyncpg

from pgjournal.errors import (
    BackendNotInitialized,
    QueryExecutionError,
    WriteError,
)
from pgjournal.models import JournalMessage, Query
from pgjournal.storage.base import DropResult, JournalStorage, StorageCapabilities
from pgjournal.storage.codec import message_to_params, row_to_message
from pgjournal.storage.compiler import CompiledQuery, QueryCompiler, StandardEscaper
from pgjournal.storage.version import ServerCapabilities, probe_capabilities

logger = logging.getLogger(__name__)

DEFAULT_URI = "postgresql://localhost/rbot_journal"
TABLE_NAME = "journal"

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _page_clause(limit: Optional[int], offset: int) -> str:
    offset = int(offset)
    if offset < 0:
        raise ValueError("offset must be non-negative")
    if limit is None:
        return f" OFFSET {offset}"
    limit = int(limit)
    if limit < 0:
        raise ValueError("limit must be non-negative")
    return f" LIMIT {limit} OFFSET {offset}"


class PostgresJournalStorage(JournalStorage):
    """
    PostgreSQL implementation of the journal storage backend.

    One connection per instance; the connection is not safe for concurrent
    use, so callers sharing an instance must serialize their awaits.

    Usage::

        async with PostgresJournalStorage("postgresql://localhost/journal") as storage:
            await storage.insert(JournalMessage.create("room.join", {"nick": "bob"}))
            messages = await storage.find(Query(topic=["room.*"]))
    """

    def __init__(
        self,
        uri: str = DEFAULT_URI,
        *,
        drop: bool = False,
        connect_timeout: float = 10.0,
    ) -> None:
        """
        Initialize the backend (no I/O happens until ``initialize``).

        Args:
            uri: PostgreSQL connection string
            drop: Drop the journal table before creating it (test/reset flows)
            connect_timeout: Seconds to wait for the connection
        """
        self.uri = uri
        self.drop_on_init = drop
        self.connect_timeout = connect_timeout
        self._conn: Optional[asyncpg.Connection] = None
        self._server: Optional[ServerCapabilities] = None
        self._compiler: Optional[QueryCompiler] = None

    @property
    def capabilities(self) -> StorageCapabilities:
        """Advertise capabilities supported by the PostgreSQL backend."""
        return StorageCapabilities(
            insert=True,
            find=True,
            count=True,
            drop=True,
            payload_query=True,
            structured_json=bool(self._server and self._server.jsonb),
        )

    @property
    def server(self) -> ServerCapabilities:
        if self._server is None:
            raise BackendNotInitialized("PostgreSQL journal backend not initialized")
        return self._server

    @property
    def compiler(self) -> QueryCompiler:
        if self._compiler is None:
            raise BackendNotInitialized("PostgreSQL journal backend not initialized")
        return self._compiler

    async def initialize(self) -> None:
        """
        Connect, probe the server version, and create the journal table.

        Raises:
            VersionUnsupported: If the server is older than PostgreSQL 9.3
        """
        # Connection failures (OSError, ConnectionError) propagate unchanged.
        self._conn = await asyncpg.connect(dsn=self.uri, timeout=self.connect_timeout)
        try:
            raw_version = await self._conn.fetchval("SHOW server_version")
            self._server = probe_capabilities(raw_version)
            logger.info(
                "journal storage: postgresql connected to version: %s", self._server.version
            )

            conforming = await self._conn.fetchval("SHOW standard_conforming_strings")
            self._compiler = QueryCompiler(
                StandardEscaper(standard_conforming_strings=conforming == "on"),
                structured_json=self._server.jsonb,
            )

            if self.drop_on_init:
                await self.drop_table()
            await self.create_table()
        except BaseException:
            await self.close()
            raise

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()

    async def __aenter__(self) -> "PostgresJournalStorage":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    def _connection(self) -> asyncpg.Connection:
        if self._conn is None:
            raise BackendNotInitialized("PostgreSQL journal backend not initialized")
        return self._conn

    async def create_table(self) -> None:
        """Create the journal table if it does not exist yet."""
        await self._connection().execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                id UUID PRIMARY KEY,
                topic TEXT NOT NULL,
                timestamp TIMESTAMP WITH TIME ZONE NOT NULL,
                payload {self.server.payload_type} NOT NULL
            )
            """
        )

    async def drop_table(self) -> DropResult:
        """Drop the journal table; failures are reported, never raised."""
        conn = self._connection()
        try:
            await conn.execute(f"DROP TABLE {TABLE_NAME}")
        except _DRIVER_ERRORS as exc:
            logger.debug("journal storage: drop table failed: %s", exc)
            return DropResult(dropped=False, error=exc)
        return DropResult(dropped=True)

    async def drop(self) -> DropResult:
        return await self.drop_table()

    async def insert(self, message: JournalMessage) -> None:
        params = message_to_params(message)
        conn = self._connection()
        try:
            await conn.execute(f"INSERT INTO {TABLE_NAME} VALUES ($1, $2, $3, $4)", *params)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise WriteError(f"Failed to insert journal message {message.id}: {exc}") from exc
        logger.debug("journal storage: inserted %s on topic %s", message.id, message.topic)

    def compile(self, query: Query) -> CompiledQuery:
        """Compile ``query`` with this backend's escaping rules."""
        return self.compiler.compile(query)

    async def find(
        self, query: Query, limit: Optional[int] = 100, offset: int = 0
    ) -> List[JournalMessage]:
        compiled = self.compile(query)
        sql = f"SELECT * FROM {TABLE_NAME}{compiled.where_clause()}{_page_clause(limit, offset)}"
        rows = await self._fetch(sql, compiled.params)
        return [row_to_message(row) for row in rows]

    async def count(self, query: Query) -> int:
        compiled = self.compile(query)
        sql = f"SELECT COUNT(*) FROM {TABLE_NAME}{compiled.where_clause()}"
        rows = await self._fetch(sql, compiled.params)
        return int(rows[0][0])

    async def _fetch(self, sql: str, params: List[Any]) -> List[Any]:
        conn = self._connection()
        logger.debug("journal storage: %s %r", sql, params)
        try:
            return await conn.fetch(sql, *params)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise QueryExecutionError(f"Journal query failed: {exc}", sql, params) from exc


__all__ = ["DEFAULT_URI", "TABLE_NAME", "PostgresJournalStorage"]
