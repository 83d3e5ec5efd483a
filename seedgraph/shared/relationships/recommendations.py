"""Human-readable guidance derived from graph and seeding-order facts."""

from __future__ import annotations

from collections.abc import Sequence

from seedgraph.shared.relationships.cycles import describe_cycle
from seedgraph.shared.relationships.models import (
    CircularDependency,
    GraphMetadata,
    RelationshipEdge,
    SeedingPhase,
)

DEEP_CHAIN_DEPTH = 5
LONG_SEEDING_CHAIN = 10
LOW_CONFIDENCE = 0.7


def analysis_recommendations(
    metadata: GraphMetadata,
    junction_tables: Sequence[str],
    tenant_tables: Sequence[str],
) -> list[str]:
    """Recommendations for a whole analysis run.

    Args:
        metadata: Metadata of the built dependency graph.
        junction_tables: Tables classified as junction tables.
        tenant_tables: Tables classified as tenant-scoped.

    Returns:
        Recommendations, empty when there is nothing to say.
    """
    recommendations: list[str] = []
    if metadata.circular_dependencies > 0:
        recommendations.append(
            f"Found {metadata.circular_dependencies} circular dependencies - "
            "consider using nullable foreign keys"
        )
    if junction_tables:
        recommendations.append(
            f"Detected {len(junction_tables)} junction tables - "
            "ensure proper many-to-many handling"
        )
    if metadata.max_depth > DEEP_CHAIN_DEPTH:
        recommendations.append(
            "Deep dependency chain detected - consider flattening schema design"
        )
    if tenant_tables:
        recommendations.append(
            f"{len(tenant_tables)} tenant-scoped tables detected - enable multi-tenant mode"
        )
    if metadata.dropped_edges:
        recommendations.append(
            f"{metadata.dropped_edges} foreign keys reference tables outside the analysis "
            "scope - widen the schema or table filters"
        )
    if metadata.total_tables and metadata.confidence < LOW_CONFIDENCE:
        recommendations.append("Low analysis confidence - review warnings before seeding")
    return recommendations


def seeding_recommendations(
    phases: Sequence[SeedingPhase],
    deferred_edges: Sequence[RelationshipEdge],
    unresolved: Sequence[CircularDependency],
) -> list[str]:
    """Recommendations attached to a seeding order."""
    if not phases:
        return []

    recommendations: list[str] = []
    if deferred_edges:
        recommendations.append(
            f"Seed {len(deferred_edges)} deferred foreign keys as NULL first and patch "
            "them with UPDATE statements after all phases complete"
        )
    for cycle in unresolved:
        recommendations.append(
            f"Make one foreign key in {describe_cycle(cycle.tables)} nullable or "
            "DEFERRABLE so the cycle can be seeded"
        )
    if any(phase.can_run_in_parallel for phase in phases):
        recommendations.append("Tables within a phase can be seeded in parallel")
    if len(phases) > LONG_SEEDING_CHAIN:
        recommendations.append(
            f"Long seeding chain ({len(phases)} phases) - consider seeding in batches"
        )
    return recommendations
