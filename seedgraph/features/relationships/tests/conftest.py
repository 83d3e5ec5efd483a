"""Test fixtures for the relationships feature."""

from collections.abc import AsyncGenerator, Generator, Sequence
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from seedgraph.core.config import get_settings
from seedgraph.features.relationships.routes import get_snapshot_provider
from seedgraph.main import app
from seedgraph.shared.relationships import AnalysisCache


class StaticSnapshotProvider:
    """Serves fixed catalog rows, optionally failing every fetch."""

    def __init__(
        self,
        tables: list[dict[str, Any]],
        columns: list[dict[str, Any]],
        primary_keys: list[dict[str, Any]],
        foreign_keys: list[dict[str, Any]],
        error: Exception | None = None,
    ) -> None:
        self.tables = tables
        self.columns = columns
        self.primary_keys = primary_keys
        self.foreign_keys = foreign_keys
        self.error = error
        self.fetch_count = 0

    async def fetch_tables(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        self.fetch_count += 1
        return self._rows(self.tables)

    async def fetch_columns(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._rows(self.columns)

    async def fetch_primary_keys(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._rows(self.primary_keys)

    async def fetch_foreign_keys(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._rows(self.foreign_keys)

    async def fetch_foreign_keys_basic(self, schemas: Sequence[str]) -> list[dict[str, Any]]:
        return self._rows(self.foreign_keys)

    def _rows(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return rows


def _blog_provider() -> StaticSnapshotProvider:
    """users <- posts <- comments, plus a nullable comments.user_id."""
    tables = {
        "users": ["id", "email"],
        "posts": ["id", "user_id", "title"],
        "comments": ["id", "post_id", "user_id", "body"],
    }
    foreign_keys = [
        ("posts", "user_id", "users", False),
        ("comments", "post_id", "posts", False),
        ("comments", "user_id", "users", True),
    ]
    return StaticSnapshotProvider(
        tables=[
            {"table_schema": "public", "table_name": name, "table_type": "BASE TABLE"}
            for name in tables
        ],
        columns=[
            {
                "table_schema": "public",
                "table_name": table,
                "column_name": column,
                "data_type": "integer" if column.endswith("id") else "text",
                "is_nullable": "NO" if column in ("id", "post_id") or table == "posts" else "YES",
            }
            for table, columns in tables.items()
            for column in columns
        ],
        primary_keys=[
            {"table_schema": "public", "table_name": name, "column_name": "id"} for name in tables
        ],
        foreign_keys=[
            {
                "constraint_name": f"{table}_{column}_fkey",
                "table_schema": "public",
                "table_name": table,
                "column_name": column,
                "foreign_table_schema": "public",
                "foreign_table_name": target,
                "foreign_column_name": "id",
                "update_rule": "NO ACTION",
                "delete_rule": "CASCADE",
                "is_deferrable": "NO",
                "initially_deferred": "NO",
                "is_nullable": "YES" if nullable else "NO",
            }
            for table, column, target, nullable in foreign_keys
        ],
    )


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Rebuild settings around each test so env overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def blog_provider() -> StaticSnapshotProvider:
    """Snapshot provider for a three-table blog schema."""
    return _blog_provider()


@pytest.fixture
def analysis_cache() -> Generator[AnalysisCache, None, None]:
    """The application-wide cache, emptied around each test."""
    cache: AnalysisCache = app.state.analysis_cache
    cache.clear()
    yield cache
    cache.clear()


@pytest.fixture
async def client(
    blog_provider: StaticSnapshotProvider,
    analysis_cache: AnalysisCache,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with the snapshot provider overridden."""
    app.dependency_overrides[get_snapshot_provider] = lambda: blog_provider

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
