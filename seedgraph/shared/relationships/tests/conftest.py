"""Pytest fixtures for relationship engine tests."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import pytest

from seedgraph.shared.relationships.graph import DependencyGraph, DependencyGraphBuilder
from seedgraph.shared.relationships.models import (
    ColumnInfo,
    RelationshipEdge,
    TableMetadata,
)


def _edge(
    from_table: str,
    from_column: str,
    to_table: str,
    to_column: str = "id",
    *,
    nullable: bool = False,
    deferrable: bool = False,
    name: str | None = None,
    on_delete: str = "NO ACTION",
) -> RelationshipEdge:
    return RelationshipEdge(
        constraint_name=name or f"{from_table}_{from_column}_fkey",
        from_table=from_table,
        from_column=from_column,
        to_table=to_table,
        to_column=to_column,
        on_delete=on_delete,  # type: ignore[arg-type]
        is_nullable=nullable,
        is_deferrable=deferrable,
    )


def _columns(
    table: str,
    names: Sequence[str],
    primary_key: Sequence[str] = ("id",),
    required: Sequence[str] = (),
    types: dict[str, str] | None = None,
) -> list[ColumnInfo]:
    types = types or {}
    return [
        ColumnInfo(
            table_name=table,
            column_name=name,
            data_type=types.get(name, "integer"),
            is_nullable=name not in primary_key and name not in required,
            is_primary_key=name in primary_key,
        )
        for name in names
    ]


def _graph(
    tables: Iterable[str],
    edges: Iterable[RelationshipEdge] = (),
    metadata: dict[str, TableMetadata] | None = None,
    detect_self_references: bool = True,
) -> DependencyGraph:
    metadata = metadata or {}
    builder = DependencyGraphBuilder(detect_self_references=detect_self_references)
    for table in tables:
        builder.add_node(table, "public", metadata.get(table))
    for edge in edges:
        builder.add_edge(edge.from_table, edge.to_table, edge)
    return builder.build()


class FakeSnapshotProvider:
    """In-memory schema snapshot provider.

    Records every call; ``failures`` maps a fetch name to the exception it raises.
    """

    def __init__(
        self,
        tables: list[dict[str, Any]] | None = None,
        columns: list[dict[str, Any]] | None = None,
        primary_keys: list[dict[str, Any]] | None = None,
        foreign_keys: list[dict[str, Any]] | None = None,
        basic_foreign_keys: list[dict[str, Any]] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.tables = tables or []
        self.columns = columns or []
        self.primary_keys = primary_keys or []
        self.foreign_keys = foreign_keys or []
        self.basic_foreign_keys = (
            basic_foreign_keys if basic_foreign_keys is not None else self.foreign_keys
        )
        self.failures = failures or {}
        self.calls: list[str] = []

    async def fetch_tables(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._result("tables", self.tables)

    async def fetch_columns(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._result("columns", self.columns)

    async def fetch_primary_keys(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._result("primary_keys", self.primary_keys)

    async def fetch_foreign_keys(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._result("foreign_keys", self.foreign_keys)

    async def fetch_foreign_keys_basic(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._result("foreign_keys_basic", self.basic_foreign_keys)

    def _result(self, name: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]
        return [dict(row) for row in rows]


def _provider(
    tables: dict[str, Sequence[str]],
    foreign_keys: Sequence[tuple[str, str, str, bool]] = (),
    primary_keys: dict[str, Sequence[str]] | None = None,
    failures: dict[str, Exception] | None = None,
) -> FakeSnapshotProvider:
    """Build a fake provider from a compact schema description.

    Args:
        tables: Table name -> column names.
        foreign_keys: ``(from_table, from_column, to_table, nullable)`` tuples;
            every foreign key references ``id``.
        primary_keys: Table name -> primary key columns; defaults to ``id``
            where the table has one.
        failures: Fetch name -> exception to raise.
    """
    primary_keys = primary_keys or {
        table: ["id"] for table, names in tables.items() if "id" in names
    }
    fk_nullable = {(t, c): nullable for t, c, _, nullable in foreign_keys}

    table_rows = [
        {"table_schema": "public", "table_name": table, "table_type": "BASE TABLE"}
        for table in tables
    ]
    column_rows = [
        {
            "table_schema": "public",
            "table_name": table,
            "column_name": name,
            "data_type": "integer" if name == "id" or name.endswith("_id") else "text",
            "is_nullable": "YES"
            if fk_nullable.get((table, name), name not in primary_keys.get(table, ()))
            else "NO",
        }
        for table, names in tables.items()
        for name in names
    ]
    key_rows = [
        {"table_schema": "public", "table_name": table, "column_name": name}
        for table, names in primary_keys.items()
        for name in names
    ]
    fk_rows = [
        {
            "constraint_name": f"{from_table}_{from_column}_fkey",
            "table_schema": "public",
            "table_name": from_table,
            "column_name": from_column,
            "foreign_table_schema": "public",
            "foreign_table_name": to_table,
            "foreign_column_name": "id",
            "update_rule": "NO ACTION",
            "delete_rule": "CASCADE",
            "is_deferrable": False,
            "initially_deferred": False,
            "is_nullable": nullable,
        }
        for from_table, from_column, to_table, nullable in foreign_keys
    ]
    return FakeSnapshotProvider(
        tables=table_rows,
        columns=column_rows,
        primary_keys=key_rows,
        foreign_keys=fk_rows,
        failures=failures,
    )


def phase_index(phases) -> dict[str, int]:
    return {table: phase.phase for phase in phases for table in phase.tables}


@pytest.fixture
def make_edge():
    """Factory for relationship edges; the constraint is named ``<table>_<column>_fkey``."""
    return _edge


@pytest.fixture
def make_columns():
    """Factory for a table's columns."""
    return _columns


@pytest.fixture
def make_graph():
    """Factory building a dependency graph from table names and edges."""
    return _graph


@pytest.fixture
def make_provider():
    """Factory for in-memory snapshot providers."""
    return _provider


@pytest.fixture
def phases_by_table():
    """Map table -> phase number for a sequence of seeding phases."""
    return phase_index


@pytest.fixture
def blog_graph(make_edge, make_graph):
    """users <- posts <- comments, comments -> users."""
    return make_graph(
        ["users", "posts", "comments"],
        [
            make_edge("posts", "user_id", "users"),
            make_edge("comments", "post_id", "posts"),
            make_edge("comments", "user_id", "users", nullable=True),
        ],
    )
