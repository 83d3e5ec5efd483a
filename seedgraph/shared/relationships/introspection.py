"""Schema snapshot providers.

A provider returns raw catalog rows; the normalizer turns them into records.
``PostgresSnapshotProvider`` runs each query on its own pooled connection,
bounded by a semaphore and a per-query timeout.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import TextClause

from seedgraph.core.exceptions import DatabaseError
from seedgraph.core.logging import get_logger

logger = get_logger(__name__)

Row = dict[str, Any]


@runtime_checkable
class SchemaSnapshotProvider(Protocol):
    """Protocol for schema introspection sources."""

    async def fetch_tables(self, schemas: Sequence[str]) -> list[Row]:
        """Fetch base tables in the given schemas."""
        ...

    async def fetch_columns(self, schemas: Sequence[str]) -> list[Row]:
        """Fetch columns of every table in the given schemas."""
        ...

    async def fetch_primary_keys(self, schemas: Sequence[str]) -> list[Row]:
        """Fetch primary key columns of every table in the given schemas."""
        ...

    async def fetch_foreign_keys(self, schemas: Sequence[str]) -> list[Row]:
        """Fetch foreign keys with deferrability and nullability in one pass."""
        ...

    async def fetch_foreign_keys_basic(self, schemas: Sequence[str]) -> list[Row]:
        """Fetch foreign keys from standard catalog views only."""
        ...


def _schema_query(sql: str) -> TextClause:
    return text(sql).bindparams(bindparam("schemas", expanding=True))


TABLES_QUERY = _schema_query("""
    SELECT table_schema, table_name, table_type
    FROM information_schema.tables
    WHERE table_schema IN :schemas
      AND table_type = 'BASE TABLE'
    ORDER BY table_schema, table_name
""")

COLUMNS_QUERY = _schema_query("""
    SELECT table_schema, table_name, column_name, is_nullable, data_type
    FROM information_schema.columns
    WHERE table_schema IN :schemas
    ORDER BY table_schema, table_name, ordinal_position
""")

PRIMARY_KEYS_QUERY = _schema_query("""
    SELECT kcu.table_schema, kcu.table_name, kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
     AND tc.table_schema = kcu.table_schema
     AND tc.table_name = kcu.table_name
    WHERE tc.constraint_type = 'PRIMARY KEY'
      AND tc.table_schema IN :schemas
    ORDER BY kcu.table_schema, kcu.table_name, kcu.ordinal_position
""")

# Reads pg_constraint directly so deferrability, referential actions and
# referencing column nullability come back in a single round-trip.
FOREIGN_KEYS_QUERY = _schema_query("""
    SELECT
        con.conname AS constraint_name,
        src_ns.nspname AS table_schema,
        src.relname AS table_name,
        src_att.attname AS column_name,
        tgt_ns.nspname AS foreign_table_schema,
        tgt.relname AS foreign_table_name,
        tgt_att.attname AS foreign_column_name,
        CASE con.confupdtype
            WHEN 'c' THEN 'CASCADE'
            WHEN 'n' THEN 'SET NULL'
            WHEN 'd' THEN 'SET DEFAULT'
            WHEN 'r' THEN 'RESTRICT'
            ELSE 'NO ACTION'
        END AS update_rule,
        CASE con.confdeltype
            WHEN 'c' THEN 'CASCADE'
            WHEN 'n' THEN 'SET NULL'
            WHEN 'd' THEN 'SET DEFAULT'
            WHEN 'r' THEN 'RESTRICT'
            ELSE 'NO ACTION'
        END AS delete_rule,
        con.condeferrable AS is_deferrable,
        con.condeferred AS initially_deferred,
        NOT src_att.attnotnull AS is_nullable
    FROM pg_constraint con
    JOIN pg_class src ON src.oid = con.conrelid
    JOIN pg_namespace src_ns ON src_ns.oid = src.relnamespace
    JOIN pg_class tgt ON tgt.oid = con.confrelid
    JOIN pg_namespace tgt_ns ON tgt_ns.oid = tgt.relnamespace
    CROSS JOIN LATERAL unnest(con.conkey, con.confkey) AS cols(src_attnum, tgt_attnum)
    JOIN pg_attribute src_att
      ON src_att.attrelid = con.conrelid AND src_att.attnum = cols.src_attnum
    JOIN pg_attribute tgt_att
      ON tgt_att.attrelid = con.confrelid AND tgt_att.attnum = cols.tgt_attnum
    WHERE con.contype = 'f'
      AND src_ns.nspname IN :schemas
    ORDER BY src.relname, con.conname, src_att.attname
""")

FOREIGN_KEYS_BASIC_QUERY = _schema_query("""
    SELECT
        tc.constraint_name,
        tc.table_schema,
        tc.table_name,
        kcu.column_name,
        ccu.table_schema AS foreign_table_schema,
        ccu.table_name AS foreign_table_name,
        ccu.column_name AS foreign_column_name,
        rc.update_rule,
        rc.delete_rule,
        tc.is_deferrable,
        tc.initially_deferred,
        col.is_nullable
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
     AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage ccu
      ON ccu.constraint_name = tc.constraint_name
     AND ccu.constraint_schema = tc.table_schema
    JOIN information_schema.referential_constraints rc
      ON rc.constraint_name = tc.constraint_name
     AND rc.constraint_schema = tc.table_schema
    JOIN information_schema.columns col
      ON col.table_schema = tc.table_schema
     AND col.table_name = tc.table_name
     AND col.column_name = kcu.column_name
    WHERE tc.constraint_type = 'FOREIGN KEY'
      AND tc.table_schema IN :schemas
    ORDER BY tc.table_name, tc.constraint_name
""")


class PostgresSnapshotProvider:
    """Introspects a PostgreSQL database through an async SQLAlchemy engine."""

    def __init__(
        self,
        engine: AsyncEngine,
        max_concurrent_queries: int = 10,
        query_timeout: float = 30.0,
    ) -> None:
        """Initialize the provider.

        Args:
            engine: Async engine for the target database.
            max_concurrent_queries: Upper bound on queries in flight.
            query_timeout: Seconds before a single query is abandoned.
        """
        self.engine = engine
        self.query_timeout = query_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent_queries)

    async def fetch_tables(self, schemas: Sequence[str]) -> list[Row]:
        return await self._fetch("tables", TABLES_QUERY, schemas)

    async def fetch_columns(self, schemas: Sequence[str]) -> list[Row]:
        return await self._fetch("columns", COLUMNS_QUERY, schemas)

    async def fetch_primary_keys(self, schemas: Sequence[str]) -> list[Row]:
        return await self._fetch("primary_keys", PRIMARY_KEYS_QUERY, schemas)

    async def fetch_foreign_keys(self, schemas: Sequence[str]) -> list[Row]:
        return await self._fetch("foreign_keys", FOREIGN_KEYS_QUERY, schemas)

    async def fetch_foreign_keys_basic(self, schemas: Sequence[str]) -> list[Row]:
        return await self._fetch("foreign_keys_basic", FOREIGN_KEYS_BASIC_QUERY, schemas)

    async def _fetch(self, name: str, statement: TextClause, schemas: Sequence[str]) -> list[Row]:
        """Run one catalog query under the concurrency limit and timeout.

        Raises:
            DatabaseError: If the query fails or times out.
        """
        async with self._semaphore:
            try:
                rows = await asyncio.wait_for(
                    self._execute(statement, schemas), timeout=self.query_timeout
                )
            except TimeoutError:
                logger.warning(
                    "relationships.introspection.timeout",
                    query=name,
                    timeout_seconds=self.query_timeout,
                )
                raise DatabaseError(
                    message=f"Introspection query '{name}' timed out after {self.query_timeout}s",
                    details={"query": name},
                ) from None
            except SQLAlchemyError as exc:
                logger.warning(
                    "relationships.introspection.query_failed",
                    query=name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise DatabaseError(
                    message=f"Introspection query '{name}' failed: {exc}",
                    details={"query": name},
                ) from exc

        logger.debug("relationships.introspection.fetched", query=name, rows=len(rows))
        return rows

    async def _execute(self, statement: TextClause, schemas: Sequence[str]) -> list[Row]:
        async with self.engine.connect() as conn:
            result = await conn.execute(statement, {"schemas": list(schemas)})
            return [dict(row) for row in result.mappings()]
