from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import typer

from pgjournal.config import Settings, get_settings
from pgjournal.errors import JournalError
from pgjournal.models import JournalMessage, Query, TimestampRange
from pgjournal.storage.factory import create_storage_backend

app = typer.Typer(no_args_is_help=True, help="Append-only event journal on PostgreSQL")


def _settings(uri: Optional[str], drop: bool = False) -> Settings:
    base = get_settings()
    overrides: Dict[str, Any] = {}
    if uri is not None:
        overrides["URI"] = uri
    if drop:
        overrides["DROP"] = True
    settings = base.model_copy(update=overrides) if overrides else base
    logging.basicConfig(level=settings.LOG_LEVEL)
    return settings


def _parse_timestamp(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"{value!r} is not an ISO 8601 timestamp", param_hint=option) from e
    if parsed.tzinfo is None:
        raise typer.BadParameter("timestamp needs a timezone offset", param_hint=option)
    return parsed


def _parse_value(raw: str) -> Any:
    """JSON when it parses, otherwise the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_fields(fields: List[str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for item in fields:
        path, sep, raw = item.partition("=")
        if not sep or not path:
            raise typer.BadParameter(f"expected PATH=VALUE, got {item!r}", param_hint="--field")
        payload[path] = _parse_value(raw)
    return payload


def _build_query(
    ids: List[str],
    topics: List[str],
    since: Optional[str],
    until: Optional[str],
    fields: List[str],
) -> Query:
    return Query(
        id=ids,
        topic=topics,
        timestamp=TimestampRange(
            from_=_parse_timestamp(since, "--from"), to=_parse_timestamp(until, "--to")
        ),
        payload=_parse_fields(fields),
    )


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except (JournalError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def _message_json(message: JournalMessage) -> str:
    return json.dumps(message.model_dump(mode="json"), ensure_ascii=False)


IdOption = typer.Option([], "--id", help="Match this message id (repeatable).")
TopicOption = typer.Option([], "--topic", help="Topic glob, '*' matches anything (repeatable).")
FromOption = typer.Option(None, "--from", help="Inclusive lower bound (ISO 8601 with offset).")
ToOption = typer.Option(None, "--to", help="Inclusive upper bound (ISO 8601 with offset).")
FieldOption = typer.Option(
    [], "--field", help="Payload match PATH=VALUE, e.g. meta.level=3 (repeatable)."
)
UriOption = typer.Option(None, "--uri", help="PostgreSQL connection string.")


@app.command("init")
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop the journal table first (destructive)."),
    uri: Optional[str] = UriOption,
) -> None:
    """Create the journal table."""
    settings = _settings(uri, drop=drop)

    async def _init() -> None:
        storage = await create_storage_backend(settings)
        try:
            typer.echo(f"Journal initialized on PostgreSQL {storage.server.version}")
            typer.echo(f"  Payload column: {storage.server.payload_type}")
        finally:
            await storage.close()

    _run(_init())


@app.command("insert")
def insert(
    topic: str = typer.Argument(..., help="Message topic"),
    payload: str = typer.Option("{}", "--payload", help="JSON payload"),
    message_id: Optional[str] = typer.Option(None, "--id", help="Message id (default: new UUID)"),
    timestamp: Optional[str] = typer.Option(
        None, "--timestamp", help="ISO 8601 timestamp with offset (default: now)"
    ),
    uri: Optional[str] = UriOption,
) -> None:
    """Append a message to the journal."""
    settings = _settings(uri)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"invalid JSON: {e}", param_hint="--payload") from e
    message = JournalMessage.create(
        topic, data, id=message_id, timestamp=_parse_timestamp(timestamp, "--timestamp")
    )

    async def _insert() -> None:
        storage = await create_storage_backend(settings)
        try:
            await storage.insert(message)
        finally:
            await storage.close()

    _run(_insert())
    typer.echo(message.id)


@app.command("find")
def find(
    ids: List[str] = IdOption,
    topics: List[str] = TopicOption,
    since: Optional[str] = FromOption,
    until: Optional[str] = ToOption,
    fields: List[str] = FieldOption,
    limit: Optional[int] = typer.Option(None, "--limit", min=0, help="Maximum number of messages"),
    offset: int = typer.Option(0, "--offset", min=0, help="Skip this many messages"),
    uri: Optional[str] = UriOption,
) -> None:
    """Print matching messages as JSON lines."""
    settings = _settings(uri)
    query = _build_query(ids, topics, since, until, fields)
    page_size = settings.DEFAULT_LIMIT if limit is None else limit

    async def _find() -> List[JournalMessage]:
        storage = await create_storage_backend(settings)
        try:
            return await storage.find(query, limit=page_size, offset=offset)
        finally:
            await storage.close()

    for message in _run(_find()):
        typer.echo(_message_json(message))


@app.command("count")
def count(
    ids: List[str] = IdOption,
    topics: List[str] = TopicOption,
    since: Optional[str] = FromOption,
    until: Optional[str] = ToOption,
    fields: List[str] = FieldOption,
    uri: Optional[str] = UriOption,
) -> None:
    """Print the number of matching messages."""
    settings = _settings(uri)
    query = _build_query(ids, topics, since, until, fields)

    async def _count() -> int:
        storage = await create_storage_backend(settings)
        try:
            return await storage.count(query)
        finally:
            await storage.close()

    typer.echo(str(_run(_count())))


@app.command("drop")
def drop(uri: Optional[str] = UriOption) -> None:
    """Drop the journal table (best effort)."""
    settings = _settings(uri)

    async def _drop() -> bool:
        storage = await create_storage_backend(settings)
        try:
            result = await storage.drop()
        finally:
            await storage.close()
        return result.dropped

    if _run(_drop()):
        typer.echo("Journal table dropped")
    else:
        typer.echo("Journal table not dropped (absent?)")


if __name__ == "__main__":
    app()
