"""Normalization of raw introspection rows into fixed-shape records.

Rows may come from the rich ``pg_constraint`` query, the ``information_schema``
fallback, or any other snapshot provider. Keys may be snake_case, UPPER_CASE
or camelCase, and flags may be booleans or ``'YES'``/``'NO'`` strings. One bad
row never aborts a batch: missing identifiers become ``"unknown"`` and rows
that are not mappings at all are skipped with a warning.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from seedgraph.core.logging import get_logger
from seedgraph.shared.relationships.models import (
    REFERENTIAL_ACTIONS,
    UNKNOWN,
    ColumnInfo,
    ReferentialAction,
    RelationshipEdge,
    TableInfo,
)

logger = get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_TRUE_STRINGS = frozenset({"yes", "y", "true", "t", "1", "on"})


def _normalize_key(key: str) -> str:
    if key.isupper() or key.islower():
        return key.lower()
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _as_mapping(row: Any) -> dict[str, Any] | None:
    """Return a dict with normalized keys, or None for malformed rows."""
    mapping = getattr(row, "_mapping", row)
    if not isinstance(mapping, Mapping):
        return None
    return {_normalize_key(str(key)): value for key, value in mapping.items()}


def _text(value: Any, default: str = UNKNOWN) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _flag(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def normalize_referential_action(value: Any) -> ReferentialAction:
    """Map a referential action string onto the five SQL actions.

    Missing and unrecognized values become ``NO ACTION``.
    """
    if value is None:
        return "NO ACTION"
    normalized = " ".join(str(value).replace("_", " ").upper().split())
    for action in REFERENTIAL_ACTIONS:
        if normalized == action:
            return action
    return "NO ACTION"


def normalize_foreign_key(row: Mapping[str, Any]) -> RelationshipEdge:
    """Convert one raw foreign-key row into a relationship edge.

    Unknown nullability is treated as NOT NULL, so the engine never assumes
    it can write a NULL the database would reject.
    """
    data = _as_mapping(row) or {}
    table_schema = _text(data.get("table_schema"), default="public")
    return RelationshipEdge(
        constraint_name=_text(data.get("constraint_name")),
        from_table=_text(data.get("table_name")),
        from_column=_text(data.get("column_name")),
        to_table=_text(data.get("foreign_table_name")),
        to_column=_text(data.get("foreign_column_name")),
        on_delete=normalize_referential_action(data.get("delete_rule")),
        on_update=normalize_referential_action(data.get("update_rule")),
        is_nullable=_flag(data.get("is_nullable")),
        is_deferrable=_flag(data.get("is_deferrable")),
        initially_deferred=_flag(data.get("initially_deferred")),
        schema=table_schema,
        foreign_schema=_text(data.get("foreign_table_schema"), default=table_schema),
    )


def normalize_foreign_keys(rows: Iterable[Any]) -> tuple[list[RelationshipEdge], list[str]]:
    """Normalize a batch of foreign-key rows.

    Args:
        rows: Raw rows from a snapshot provider.

    Returns:
        Tuple of (edges, warnings).
    """
    edges: list[RelationshipEdge] = []
    warnings: list[str] = []

    for position, row in enumerate(rows):
        if _as_mapping(row) is None:
            warnings.append(
                f"Skipped malformed foreign key row #{position}: expected a mapping, "
                f"got {type(row).__name__}"
            )
            continue
        edge = normalize_foreign_key(row)
        if edge.is_ambiguous:
            warnings.append(f"Foreign key row #{position} is incomplete: {edge.label}")
        edges.append(edge)

    if warnings:
        logger.warning(
            "relationships.normalizer.rows_degraded",
            total=len(edges),
            degraded=len(warnings),
        )

    return edges, warnings


def normalize_tables(rows: Iterable[Any]) -> tuple[list[TableInfo], list[str]]:
    """Normalize table rows, keeping base tables only."""
    tables: list[TableInfo] = []
    warnings: list[str] = []

    for position, row in enumerate(rows):
        data = _as_mapping(row)
        if data is None or data.get("table_name") is None:
            warnings.append(f"Skipped table row #{position}: missing table_name")
            continue
        table_type = _text(data.get("table_type"), default="BASE TABLE").upper()
        if table_type != "BASE TABLE":
            continue
        tables.append(
            TableInfo(
                table_name=_text(data.get("table_name")),
                table_schema=_text(data.get("table_schema"), default="public"),
                table_type=table_type,
            )
        )

    return tables, warnings


def primary_key_index(rows: Iterable[Any]) -> dict[str, set[str]]:
    """Build a table -> primary key columns lookup from primary key rows."""
    index: dict[str, set[str]] = {}
    for row in rows:
        data = _as_mapping(row)
        if data is None:
            continue
        table = data.get("table_name")
        column = data.get("column_name")
        if table is None or column is None:
            continue
        index.setdefault(str(table), set()).add(str(column))
    return index


def normalize_columns(
    rows: Iterable[Any],
    primary_keys: Mapping[str, set[str]] | None = None,
) -> tuple[list[ColumnInfo], list[str]]:
    """Normalize column rows and merge in primary key membership.

    Args:
        rows: Raw column rows.
        primary_keys: Optional table -> primary key columns lookup.

    Returns:
        Tuple of (columns, warnings).
    """
    primary_keys = primary_keys or {}
    columns: list[ColumnInfo] = []
    warnings: list[str] = []

    for position, row in enumerate(rows):
        data = _as_mapping(row)
        if data is None or data.get("table_name") is None or data.get("column_name") is None:
            warnings.append(f"Skipped column row #{position}: missing table or column name")
            continue
        table_name = _text(data.get("table_name"))
        column_name = _text(data.get("column_name"))
        columns.append(
            ColumnInfo(
                table_name=table_name,
                column_name=column_name,
                data_type=_text(data.get("data_type")).lower(),
                is_nullable=_flag(data.get("is_nullable"), default=True),
                is_primary_key=_flag(data.get("is_primary_key"))
                or column_name in primary_keys.get(table_name, ()),
            )
        )

    return columns, warnings
