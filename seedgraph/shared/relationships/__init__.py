"""Relationship analysis and seeding-order engine.

Introspects a schema's foreign-key graph and produces a deterministic,
phase-based insertion order that a data generation pipeline can follow.

Provides:
- Normalization of raw catalog rows into relationship records
- Junction-table, tenant-scoping and complexity classification
- An immutable dependency graph with cycle detection
- Cycle resolution preferring nullable or deferrable foreign keys
- Seeding phases from topological generations, with deferred fix-ups
- A fingerprint-keyed analysis cache
"""

from seedgraph.shared.relationships.analyzer import RelationshipAnalyzer
from seedgraph.shared.relationships.cache import AnalysisCache, fingerprint
from seedgraph.shared.relationships.classifier import TableClassifier
from seedgraph.shared.relationships.config import (
    AnalysisOptions,
    ClassifierConfig,
    SeedingOrderOptions,
)
from seedgraph.shared.relationships.cycles import CycleResolution, resolve_cycles
from seedgraph.shared.relationships.graph import DependencyGraph, DependencyGraphBuilder
from seedgraph.shared.relationships.introspection import (
    PostgresSnapshotProvider,
    SchemaSnapshotProvider,
)
from seedgraph.shared.relationships.models import (
    CircularDependency,
    RelationshipAnalysisResult,
    RelationshipEdge,
    SeedingOrderResult,
    SeedingPhase,
    TableMetadata,
    TableNode,
)
from seedgraph.shared.relationships.ordering import SeedingOrderCalculator

__all__ = [
    "AnalysisCache",
    "AnalysisOptions",
    "CircularDependency",
    "ClassifierConfig",
    "CycleResolution",
    "DependencyGraph",
    "DependencyGraphBuilder",
    "PostgresSnapshotProvider",
    "RelationshipAnalysisResult",
    "RelationshipAnalyzer",
    "RelationshipEdge",
    "SchemaSnapshotProvider",
    "SeedingOrderCalculator",
    "SeedingOrderOptions",
    "SeedingOrderResult",
    "SeedingPhase",
    "TableClassifier",
    "TableMetadata",
    "TableNode",
    "fingerprint",
    "resolve_cycles",
]
