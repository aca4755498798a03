"""
Query compilation for the journal table.

A ``Query`` is translated into an intermediate tree of predicate groups (one
per constraint category, each holding leaf conditions joined by its own
operator) and then rendered into a parameterized SQL predicate with
positional ``$n`` placeholders.

Values are always bound as parameters. JSON path segments are embedded as
string literals through an ``Escaper`` supplied by the backend.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Literal, Protocol, Sequence, Tuple

from pgjournal.models import Query

Operator = Literal["AND", "OR"]


class Escaper(Protocol):
    """Turns untrusted text into a complete SQL string literal."""

    def literal(self, value: str) -> str:
        ...


class StandardEscaper:
    """
    String literal escaping for PostgreSQL.

    With ``standard_conforming_strings`` on (the server default since 9.1) only
    single quotes need doubling. When it is off, backslashes are doubled too
    and the literal uses the ``E''`` escape syntax.
    """

    def __init__(self, standard_conforming_strings: bool = True) -> None:
        self.standard_conforming_strings = standard_conforming_strings

    def literal(self, value: str) -> str:
        if "\x00" in value:
            raise ValueError("string literals cannot contain NUL characters")
        escaped = value.replace("'", "''")
        if self.standard_conforming_strings:
            return f"'{escaped}'"
        return "E'" + escaped.replace("\\", "\\\\") + "'"


class ParameterList(list):
    """Ordered bind parameters; ``bind`` returns the 1-indexed placeholder."""

    def bind(self, value: Any) -> str:
        self.append(value)
        return f"${len(self)}"


@dataclass(frozen=True)
class Condition:
    """Leaf predicate, already rendered with its placeholders."""

    sql: str

    def render(self) -> str:
        return self.sql


@dataclass
class PredicateGroup:
    """A parenthesized list of conditions joined by one operator."""

    operator: Operator
    conditions: List[Condition] = field(default_factory=list)

    def render(self) -> str:
        joiner = f" {self.operator} "
        return "(" + joiner.join(c.render() for c in self.conditions) + ")"


@dataclass(frozen=True)
class CompiledQuery:
    """Rendered predicate and its bind parameters."""

    predicate: str
    params: List[Any]

    def where_clause(self) -> str:
        """``" WHERE <predicate>"``, or nothing when the query is unconstrained."""
        return f" WHERE {self.predicate}" if self.predicate else ""

    def __iter__(self):  # allows ``predicate, params = compiler.compile(q)``
        return iter((self.predicate, self.params))


def payload_value_text(value: Any) -> str:
    """
    Text form of an expected scalar payload value.

    ``->>`` extracts leaves as text, so strings compare as-is and numbers and
    booleans compare against their JSON rendering (``3`` -> ``"3"``).
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def topic_pattern(pattern: str) -> str:
    """Rewrite glob ``*`` into the ``ILIKE`` wildcard ``%``."""
    return pattern.replace("*", "%")


class QueryCompiler:
    """
    Compiles ``Query`` objects into SQL predicates over the journal table.

    ``structured_json`` tells the compiler the payload column is JSONB, which
    lets list and object values compare as JSON documents. On plain JSON
    columns they fall back to comparing the extracted text.
    """

    def __init__(self, escaper: Escaper, structured_json: bool = True) -> None:
        self.escaper = escaper
        self.structured_json = structured_json

    def payload_selector(self, path: str, as_text: bool = True) -> str:
        """
        JSON selector for a dotted payload path.

        Intermediate segments navigate with ``->`` (keeping JSON values), the
        last one extracts text with ``->>`` unless ``as_text`` is false.
        """
        segments = path.split(".")
        selector = "payload"
        for index, segment in enumerate(segments):
            last = index == len(segments) - 1
            arrow = "->>" if last and as_text else "->"
            selector += arrow + self.escaper.literal(segment)
        return selector

    def payload_condition(self, path: str, value: Any, params: ParameterList) -> Condition:
        """Comparison of the value at ``path`` with ``value``."""
        if value is None:
            # JSON null: the key exists (``->`` is not NULL) but has no text value.
            return Condition(
                f"({self.payload_selector(path, as_text=False)} IS NOT NULL"
                f" AND {self.payload_selector(path)} IS NULL)"
            )
        if isinstance(value, (dict, list, tuple)) and self.structured_json:
            document = json.dumps(value, ensure_ascii=False)
            return Condition(
                f"{self.payload_selector(path, as_text=False)} = {params.bind(document)}::jsonb"
            )
        return Condition(f"{self.payload_selector(path)} = {params.bind(payload_value_text(value))}")

    def build(self, query: Query) -> Tuple[List[PredicateGroup], ParameterList]:
        """Build the predicate tree for ``query`` and the parameters it binds."""
        params = ParameterList()
        groups: List[PredicateGroup] = []

        if query.id:
            groups.append(
                PredicateGroup(
                    "OR", [Condition(f"id = {params.bind(value)}") for value in query.id]
                )
            )

        if query.topic:
            groups.append(
                PredicateGroup(
                    "OR",
                    [
                        Condition(f"topic ILIKE {params.bind(topic_pattern(pattern))}")
                        for pattern in query.topic
                    ],
                )
            )

        if query.timestamp.is_set:
            bounds = PredicateGroup("AND")
            if query.timestamp.from_ is not None:
                bounds.conditions.append(
                    Condition(f"timestamp >= {params.bind(query.timestamp.from_)}")
                )
            if query.timestamp.to is not None:
                bounds.conditions.append(
                    Condition(f"timestamp <= {params.bind(query.timestamp.to)}")
                )
            groups.append(bounds)

        if query.payload:
            groups.append(
                PredicateGroup(
                    "OR",
                    [
                        self.payload_condition(path, value, params)
                        for path, value in query.payload.items()
                    ],
                )
            )

        return groups, params

    def compile(self, query: Query) -> CompiledQuery:
        """Render ``query`` as ``(group) AND (group) ...`` plus its parameters."""
        groups, params = self.build(query)
        return CompiledQuery(render_groups(groups), list(params))


def render_groups(groups: Sequence[PredicateGroup]) -> str:
    """Join rendered groups with AND; no groups renders as an empty string."""
    return " AND ".join(group.render() for group in groups)


__all__ = [
    "CompiledQuery",
    "Condition",
    "Escaper",
    "ParameterList",
    "PredicateGroup",
    "QueryCompiler",
    "StandardEscaper",
    "payload_value_text",
    "render_groups",
    "topic_pattern",
]
