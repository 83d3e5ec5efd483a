"""Relationship analysis orchestrator.

Fetches a schema snapshot, normalizes and classifies it, builds the
dependency graph, resolves cycles and computes the seeding order. The
top-level call never raises: introspection failures degrade to warnings and
unexpected failures come back as ``success=False`` results.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import replace
from typing import Any

from seedgraph.core.exceptions import RelationshipAnalysisError
from seedgraph.core.logging import analysis_id_ctx, get_logger
from seedgraph.shared.relationships.cache import AnalysisCache, fingerprint
from seedgraph.shared.relationships.classifier import TableClassifier
from seedgraph.shared.relationships.config import AnalysisOptions
from seedgraph.shared.relationships.cycles import resolve_cycles
from seedgraph.shared.relationships.graph import DependencyGraph, DependencyGraphBuilder
from seedgraph.shared.relationships.introspection import SchemaSnapshotProvider
from seedgraph.shared.relationships.models import (
    AnalysisMetadata,
    ColumnInfo,
    RelationshipAnalysisResult,
    RelationshipEdge,
    SchemaSnapshot,
    TableDependency,
)
from seedgraph.shared.relationships.normalizer import (
    normalize_columns,
    normalize_foreign_keys,
    normalize_tables,
    primary_key_index,
)
from seedgraph.shared.relationships.ordering import SeedingOrderCalculator
from seedgraph.shared.relationships.recommendations import analysis_recommendations

logger = get_logger(__name__)


class RelationshipAnalyzer:
    """Analyzes foreign-key relationships and computes a seeding order.

    Each call builds its own graph. The only state shared across calls is the
    injected ``AnalysisCache``.
    """

    def __init__(
        self,
        provider: SchemaSnapshotProvider,
        options: AnalysisOptions | None = None,
        cache: AnalysisCache | None = None,
        classifier: TableClassifier | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            provider: Source of raw catalog rows.
            options: Analysis configuration.
            cache: Result cache. When omitted and caching is enabled, the
                analyzer owns a private cache.
            classifier: Table classifier; built from ``options`` when omitted.
        """
        self.provider = provider
        self.options = options or AnalysisOptions()
        if cache is None and self.options.enable_caching:
            ttl_minutes = self.options.cache_ttl_minutes
            cache = AnalysisCache(ttl_seconds=ttl_minutes * 60 if ttl_minutes else None)
        self.cache = cache
        self.classifier = classifier or TableClassifier(
            config=self.options.classifier,
            detect_junction_tables=self.options.detect_junction_tables,
            analyze_tenant_scoping=self.options.analyze_tenant_scoping,
        )

    def fingerprint(self) -> str:
        """Cache key for this analyzer's options and the classifier in use."""
        options = replace(
            self.options,
            detect_junction_tables=self.classifier.detect_junction_tables,
            analyze_tenant_scoping=self.classifier.analyze_tenant_scoping,
            classifier=self.classifier.config,
        )
        return fingerprint(options)

    def clear_cache(self) -> int:
        """Drop cached results. Returns the number of entries removed."""
        if self.cache is None:
            return 0
        return self.cache.clear()

    async def analyze_relationships(self) -> RelationshipAnalysisResult:
        """Run a complete relationship analysis.

        Returns:
            Analysis result. ``success`` is False only when an unexpected
            internal failure aborted the run; the result then carries an
            empty graph and the error message.
        """
        started = time.perf_counter()
        token = analysis_id_ctx.set(uuid.uuid4().hex[:12])
        try:
            key = self.fingerprint()
            use_cache = self.options.enable_caching and self.cache is not None
            if use_cache:
                cached = self.cache.get(key)
                if cached is not None:
                    logger.info("relationships.analysis.cache_hit", key=key)
                    return replace(
                        cached,
                        analysis_metadata=replace(cached.analysis_metadata, cache_hit=True),
                    )

            logger.info(
                "relationships.analysis.started",
                schemas=self.options.schemas,
                include_tables=self.options.include_tables,
                exclude_tables=self.options.exclude_tables,
            )
            try:
                result = await self._analyze(started)
            except Exception as exc:
                logger.error(
                    "relationships.analysis.failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                return RelationshipAnalysisResult(
                    success=False,
                    dependency_graph=DependencyGraph.empty(),
                    errors=(f"Relationship analysis failed: {exc}",),
                    execution_time=_elapsed_ms(started),
                )

            if use_cache:
                self.cache.set(key, result)
            logger.info(
                "relationships.analysis.completed",
                tables=result.analysis_metadata.tables_analyzed,
                relationships=result.analysis_metadata.relationships_found,
                cycles=result.analysis_metadata.circular_dependencies,
                phases=result.seeding_order.metadata.total_phases,
                warnings=len(result.warnings),
                errors=len(result.errors),
                duration_ms=result.execution_time,
            )
            return result
        finally:
            analysis_id_ctx.reset(token)

    async def get_dependency_graph_for_tables(self, table_names: Iterable[str]) -> DependencyGraph:
        """Analyze, then filter the graph down to ``table_names``.

        Raises:
            RelationshipAnalysisError: If the analysis failed.
        """
        result = await self.analyze_relationships()
        if not result.success:
            raise RelationshipAnalysisError(
                message="Cannot build a subgraph: relationship analysis failed",
                details={"errors": list(result.errors)},
            )
        return result.dependency_graph.subgraph(table_names)

    async def _analyze(self, started: float) -> RelationshipAnalysisResult:
        options = self.options
        snapshot = await self.load_snapshot()

        tables = [t for t in snapshot.tables if self._in_scope(t.table_name)]
        in_scope = {t.table_name for t in tables}
        edges = [e for e in snapshot.foreign_keys if e.from_table in in_scope]
        if not options.include_optional_relationships:
            edges = [e for e in edges if not e.is_nullable]

        columns_by_table: dict[str, list[ColumnInfo]] = defaultdict(list)
        for column in snapshot.columns:
            columns_by_table[column.table_name].append(column)
        edges_by_table: dict[str, list[RelationshipEdge]] = defaultdict(list)
        for edge in edges:
            edges_by_table[edge.from_table].append(edge)

        builder = DependencyGraphBuilder(detect_self_references=options.detect_self_references)
        for table in tables:
            metadata = self.classifier.classify(
                columns_by_table[table.table_name], edges_by_table[table.table_name]
            )
            builder.add_node(table.table_name, table.table_schema, metadata)
        for edge in edges:
            builder.add_edge(edge.from_table, edge.to_table, edge)
        graph = builder.build()

        resolution = resolve_cycles(graph)
        seeding = SeedingOrderCalculator(
            graph,
            options=options.seeding,
            resolution=resolution,
            verbose_logging=options.verbose_logging,
        ).calculate()

        junction_tables = tuple(n.table for n in graph.nodes if n.metadata.is_junction_table)
        tenant_tables = tuple(n.table for n in graph.nodes if n.metadata.is_tenant_scoped)

        recommendations: list[str] = []
        if options.generate_recommendations:
            recommendations = analysis_recommendations(
                graph.metadata, junction_tables, tenant_tables
            )
            recommendations.extend(seeding.metadata.recommendations)

        return RelationshipAnalysisResult(
            success=True,
            dependency_graph=graph,
            foreign_key_relationships=graph.edges,
            table_dependencies=tuple(
                TableDependency(
                    from_table=edge.from_table,
                    to_table=edge.to_table,
                    relationship=edge.kind,
                    foreign_key=edge,
                    constraint=edge.constraint_name,
                )
                for edge in graph.edges
            ),
            analysis_metadata=AnalysisMetadata(
                tables_analyzed=len(graph.nodes),
                relationships_found=len(graph.edges),
                junction_tables_detected=junction_tables,
                tenant_scoped_tables=tenant_tables,
                circular_dependencies=graph.metadata.circular_dependencies,
                max_dependency_depth=graph.metadata.max_depth,
                analysis_timestamp=graph.metadata.analysis_timestamp,
                confidence=graph.metadata.confidence,
            ),
            seeding_order=seeding,
            recommendations=tuple(dict.fromkeys(recommendations)),
            warnings=(*snapshot.warnings, *graph.metadata.warnings, *seeding.warnings),
            errors=seeding.errors,
            execution_time=_elapsed_ms(started),
        )

    async def load_snapshot(self) -> SchemaSnapshot:
        """Fetch and normalize the catalog rows for the configured schemas.

        Queries run concurrently. Any failed query contributes a warning and
        an empty row set instead of an exception.
        """
        warnings: list[str] = []
        schemas = self.options.schemas
        table_rows, column_rows, key_rows, fk_rows = await asyncio.gather(
            self._fetch("tables", self.provider.fetch_tables, schemas, warnings),
            self._fetch("columns", self.provider.fetch_columns, schemas, warnings),
            self._fetch("primary keys", self.provider.fetch_primary_keys, schemas, warnings),
            self._fetch_foreign_keys(schemas, warnings),
        )

        tables, table_warnings = normalize_tables(table_rows)
        columns, column_warnings = normalize_columns(column_rows, primary_key_index(key_rows))
        foreign_keys, fk_warnings = normalize_foreign_keys(fk_rows)

        return SchemaSnapshot(
            tables=tuple(tables),
            columns=tuple(columns),
            foreign_keys=tuple(foreign_keys),
            warnings=(*warnings, *table_warnings, *column_warnings, *fk_warnings),
        )

    async def _fetch(
        self,
        name: str,
        fetch: Callable[[Sequence[str]], Awaitable[list[dict[str, Any]]]],
        schemas: Sequence[str],
        warnings: list[str],
    ) -> list[dict[str, Any]]:
        try:
            return await fetch(schemas)
        except Exception as exc:
            warnings.append(f"Failed to fetch {name}: {exc}")
            logger.warning(
                "relationships.introspection.failed",
                query=name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []

    async def _fetch_foreign_keys(
        self, schemas: Sequence[str], warnings: list[str]
    ) -> list[dict[str, Any]]:
        """Fetch foreign keys, falling back to the catalog-view query."""
        try:
            return await self.provider.fetch_foreign_keys(schemas)
        except Exception as exc:
            warnings.append(
                f"Detailed foreign key query failed ({exc}); using information_schema fallback"
            )
            logger.warning(
                "relationships.introspection.fallback",
                error=str(exc),
                error_type=type(exc).__name__,
            )

        try:
            return await self.provider.fetch_foreign_keys_basic(schemas)
        except Exception as exc:
            warnings.append(
                f"Foreign key introspection failed ({exc}); continuing without relationships"
            )
            logger.error(
                "relationships.introspection.foreign_keys_unavailable",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []

    def _in_scope(self, table: str) -> bool:
        include = self.options.include_tables
        if include and table not in include:
            return False
        return table not in self.options.exclude_tables


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
