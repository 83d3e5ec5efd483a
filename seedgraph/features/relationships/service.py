"""Service layer for relationship analysis."""

from __future__ import annotations

from seedgraph.core.config import get_settings
from seedgraph.core.exceptions import BadRequestError, RelationshipAnalysisError
from seedgraph.core.logging import get_logger
from seedgraph.features.relationships import schemas
from seedgraph.shared.relationships import (
    AnalysisCache,
    AnalysisOptions,
    RelationshipAnalyzer,
    SchemaSnapshotProvider,
    SeedingOrderOptions,
)

logger = get_logger(__name__)

_SEEDING_FIELDS = (
    "respect_circular_dependencies",
    "prioritize_junction_tables",
    "group_by_tenant",
    "handle_optional_relationships",
)


def build_options(params: schemas.AnalysisParams | None = None) -> AnalysisOptions:
    """Build analysis options from settings, applying request overrides.

    Args:
        params: Optional per-request overrides.

    Returns:
        Analysis options.

    Raises:
        BadRequestError: If a table is both included and excluded.
    """
    settings = get_settings()
    options = AnalysisOptions(
        schemas=list(settings.relationship_schemas),
        include_tables=list(settings.relationship_include_tables),
        exclude_tables=list(settings.relationship_exclude_tables),
        detect_junction_tables=settings.relationship_detect_junction_tables,
        analyze_tenant_scoping=settings.relationship_analyze_tenant_scoping,
        include_optional_relationships=settings.relationship_include_optional_relationships,
        detect_self_references=settings.relationship_detect_self_references,
        enable_caching=settings.relationship_enable_caching,
        cache_ttl_minutes=settings.relationship_cache_ttl_minutes,
        max_concurrent_queries=settings.relationship_max_concurrent_queries,
        query_timeout_seconds=settings.relationship_query_timeout_seconds,
        generate_recommendations=settings.relationship_generate_recommendations,
        verbose_logging=settings.relationship_verbose_logging,
        seeding=SeedingOrderOptions(),
    )

    if params is not None:
        for name, value in params.model_dump(exclude_none=True).items():
            target = options.seeding if name in _SEEDING_FIELDS else options
            setattr(target, name, value)

    overlap = sorted(set(options.include_tables) & set(options.exclude_tables))
    if overlap:
        raise BadRequestError(
            message=f"Tables cannot be both included and excluded: {', '.join(overlap)}",
            details={"tables": overlap},
        )
    return options


def build_analyzer(
    provider: SchemaSnapshotProvider,
    cache: AnalysisCache,
    params: schemas.AnalysisParams | None = None,
) -> RelationshipAnalyzer:
    """Create an analyzer sharing the application-wide cache."""
    return RelationshipAnalyzer(provider, options=build_options(params), cache=cache)


async def analyze(
    provider: SchemaSnapshotProvider,
    cache: AnalysisCache,
    params: schemas.AnalysisParams | None = None,
) -> schemas.AnalysisResponse:
    """Run a relationship analysis.

    Args:
        provider: Schema snapshot provider.
        cache: Application-wide analysis cache.
        params: Optional overrides of the configured options.

    Returns:
        Analysis response; ``success`` is False when the analysis failed.
    """
    analyzer = build_analyzer(provider, cache, params)
    result = await analyzer.analyze_relationships()
    return schemas.AnalysisResponse.model_validate(result, from_attributes=True)


async def get_seeding_order(
    provider: SchemaSnapshotProvider,
    cache: AnalysisCache,
) -> schemas.SeedingOrderSchema:
    """Compute the seeding order for the configured scope.

    Raises:
        RelationshipAnalysisError: If the analysis failed.
    """
    analyzer = build_analyzer(provider, cache)
    result = await analyzer.analyze_relationships()
    if not result.success:
        raise RelationshipAnalysisError(
            message="Seeding order unavailable: relationship analysis failed",
            details={"errors": list(result.errors)},
        )
    return schemas.SeedingOrderSchema.model_validate(result.seeding_order, from_attributes=True)


async def get_subgraph(
    provider: SchemaSnapshotProvider,
    cache: AnalysisCache,
    params: schemas.SubgraphParams,
) -> schemas.DependencyGraphSchema:
    """Filter the dependency graph down to the requested tables."""
    analyzer = build_analyzer(provider, cache)
    graph = await analyzer.get_dependency_graph_for_tables(params.tables)

    missing = sorted(set(params.tables) - set(graph.table_names))
    if missing:
        logger.info("relationships.subgraph.unknown_tables", tables=missing)
    return schemas.DependencyGraphSchema.model_validate(graph, from_attributes=True)


def clear_cache(cache: AnalysisCache) -> int:
    """Drop every cached analysis result."""
    return cache.clear()
