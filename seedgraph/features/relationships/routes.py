"""FastAPI routes for relationship analysis.

Exposes the dependency graph and seeding order to the data generation
pipeline over HTTP.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncEngine

from seedgraph.core.config import get_settings
from seedgraph.core.database import get_engine
from seedgraph.core.logging import get_logger
from seedgraph.features.relationships import schemas, service
from seedgraph.shared.relationships import (
    AnalysisCache,
    PostgresSnapshotProvider,
    SchemaSnapshotProvider,
)

router = APIRouter(prefix="/relationships", tags=["relationships"])
logger = get_logger(__name__)


def get_snapshot_provider(engine: AsyncEngine = Depends(get_engine)) -> SchemaSnapshotProvider:
    """Dependency providing the schema snapshot provider for the target database."""
    settings = get_settings()
    return PostgresSnapshotProvider(
        engine,
        max_concurrent_queries=settings.relationship_max_concurrent_queries,
        query_timeout=settings.relationship_query_timeout_seconds,
    )


def get_analysis_cache(request: Request) -> AnalysisCache:
    """Dependency returning the application-wide analysis cache."""
    cache: AnalysisCache = request.app.state.analysis_cache
    return cache


@router.post(
    "/analysis",
    response_model=schemas.AnalysisResponse,
    summary="Analyze relationships",
    description="Introspect foreign keys, classify tables and compute the seeding order.",
)
async def analyze_relationships(
    params: schemas.AnalysisParams | None = None,
    provider: SchemaSnapshotProvider = Depends(get_snapshot_provider),
    cache: AnalysisCache = Depends(get_analysis_cache),
) -> schemas.AnalysisResponse:
    """Run a full relationship analysis.

    Failures inside the analysis are reported in the body (``success=false``
    with ``errors``) rather than as an HTTP error.

    Args:
        params: Optional overrides of the configured analysis options.

    Returns:
        AnalysisResponse with graph, seeding order and recommendations.
    """
    return await service.analyze(provider, cache, params)


@router.get(
    "/seeding-order",
    response_model=schemas.SeedingOrderSchema,
    summary="Get seeding order",
    description="Phase-based insertion order for the configured schema scope.",
)
async def get_seeding_order(
    provider: SchemaSnapshotProvider = Depends(get_snapshot_provider),
    cache: AnalysisCache = Depends(get_analysis_cache),
) -> schemas.SeedingOrderSchema:
    """Return the seeding order only.

    Raises:
        RelationshipAnalysisError: If the analysis failed (503).
    """
    return await service.get_seeding_order(provider, cache)


@router.post(
    "/subgraph",
    response_model=schemas.DependencyGraphSchema,
    summary="Filter dependency graph",
    description="Dependency graph restricted to the requested tables.",
)
async def get_subgraph(
    params: schemas.SubgraphParams,
    provider: SchemaSnapshotProvider = Depends(get_snapshot_provider),
    cache: AnalysisCache = Depends(get_analysis_cache),
) -> schemas.DependencyGraphSchema:
    """Return the subgraph over ``params.tables``.

    Only edges whose both endpoints are requested are kept. Unknown table
    names are ignored.
    """
    return await service.get_subgraph(provider, cache, params)


@router.delete(
    "/cache",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear analysis cache",
    description="Drop every cached analysis result.",
)
async def clear_cache(
    cache: AnalysisCache = Depends(get_analysis_cache),
) -> Response:
    """Invalidate the analysis cache."""
    removed = service.clear_cache(cache)
    logger.info("relationships.cache.clear_requested", removed=removed)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
