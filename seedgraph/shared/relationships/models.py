"""Value types for relationship analysis.

Every record here is a frozen dataclass. Raw introspection rows are turned
into these records by the normalizer, and nothing downstream ever sees a
loosely-typed mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from seedgraph.shared.relationships.graph import DependencyGraph

ReferentialAction = Literal["CASCADE", "SET NULL", "RESTRICT", "NO ACTION", "SET DEFAULT"]
RelationshipKind = Literal["required", "optional"]
EstimatedSize = Literal["small", "medium", "large"]
SeedingComplexity = Literal["simple", "moderate", "complex"]
GraphComplexity = Literal["simple", "moderate", "complex", "very_complex"]
ResolutionStrategy = Literal["null_initially", "defer_constraints", "manual"]

REFERENTIAL_ACTIONS: tuple[ReferentialAction, ...] = (
    "CASCADE",
    "SET NULL",
    "RESTRICT",
    "NO ACTION",
    "SET DEFAULT",
)

UNKNOWN = "unknown"


# =============================================================================
# Schema snapshot records
# =============================================================================


@dataclass(frozen=True)
class TableInfo:
    """A base table discovered by introspection."""

    table_name: str
    table_schema: str = "public"
    table_type: str = "BASE TABLE"

    @property
    def qualified_name(self) -> str:
        return f"{self.table_schema}.{self.table_name}"


@dataclass(frozen=True)
class ColumnInfo:
    """A column of a discovered table."""

    table_name: str
    column_name: str
    data_type: str = UNKNOWN
    is_nullable: bool = True
    is_primary_key: bool = False


@dataclass(frozen=True)
class RelationshipEdge:
    """One foreign-key constraint column pair.

    ``from_table`` depends on ``to_table``: the referenced row in ``to_table``
    must exist before the ``from_table`` row can be written.

    Attributes:
        constraint_name: Constraint name, ``"unknown"`` when missing.
        from_table: Referencing table.
        from_column: Referencing column.
        to_table: Referenced table.
        to_column: Referenced column.
        on_delete: Referential action on delete.
        on_update: Referential action on update.
        is_nullable: Whether the referencing column accepts NULL.
        is_deferrable: Whether the constraint is DEFERRABLE.
        initially_deferred: Whether the constraint is INITIALLY DEFERRED.
        schema: Schema of the referencing table.
        foreign_schema: Schema of the referenced table.
    """

    constraint_name: str
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    on_delete: ReferentialAction = "NO ACTION"
    on_update: ReferentialAction = "NO ACTION"
    is_nullable: bool = False
    is_deferrable: bool = False
    initially_deferred: bool = False
    schema: str = "public"
    foreign_schema: str = "public"

    @property
    def kind(self) -> RelationshipKind:
        return "optional" if self.is_nullable else "required"

    @property
    def is_self_reference(self) -> bool:
        return self.from_table == self.to_table

    @property
    def can_be_deferred(self) -> bool:
        """Whether seeding may break this edge and patch it afterwards."""
        return self.is_nullable or self.is_deferrable

    @property
    def is_ambiguous(self) -> bool:
        """Whether normalization had to fill in any identifying field."""
        return UNKNOWN in (
            self.constraint_name,
            self.from_table,
            self.from_column,
            self.to_table,
            self.to_column,
        )

    @property
    def weight(self) -> int:
        """Relationship strength from 1 to 10."""
        weight = 5
        if not self.is_nullable:
            weight += 3
        if self.on_delete == "CASCADE":
            weight += 2
        elif self.on_delete == "RESTRICT":
            weight += 3
        elif self.on_delete == "SET NULL":
            weight += 1
        return min(weight, 10)

    @property
    def label(self) -> str:
        return f"{self.from_table}.{self.from_column} -> {self.to_table}.{self.to_column}"


@dataclass(frozen=True)
class SchemaSnapshot:
    """Normalized introspection output for one analysis run."""

    tables: tuple[TableInfo, ...] = ()
    columns: tuple[ColumnInfo, ...] = ()
    foreign_keys: tuple[RelationshipEdge, ...] = ()
    warnings: tuple[str, ...] = ()


# =============================================================================
# Graph records
# =============================================================================


@dataclass(frozen=True)
class TableMetadata:
    """Classification of a single table."""

    is_junction_table: bool = False
    is_tenant_scoped: bool = False
    has_timestamps: bool = False
    primary_key_columns: tuple[str, ...] = ()
    foreign_key_count: int = 0
    estimated_size: EstimatedSize = "medium"
    seeding_complexity: SeedingComplexity = "simple"


@dataclass(frozen=True)
class TableNode:
    """A table in a built dependency graph.

    Attributes:
        table: Table name, unique within the graph.
        schema: Schema the table lives in.
        metadata: Classifier output.
        dependencies: Tables this table references, sorted.
        dependents: Tables referencing this table, sorted.
        depth: Longest chain of dependencies below this table, ignoring
            edges inside cycles.
        is_circular: Whether the table sits on a detected cycle.
    """

    table: str
    schema: str = "public"
    metadata: TableMetadata = field(default_factory=TableMetadata)
    dependencies: tuple[str, ...] = ()
    dependents: tuple[str, ...] = ()
    depth: int = 0
    is_circular: bool = False

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True)
class GraphMetadata:
    """Summary statistics for a built dependency graph."""

    total_tables: int = 0
    total_relationships: int = 0
    circular_dependencies: int = 0
    max_depth: int = 0
    complexity: GraphComplexity = "simple"
    confidence: float = 1.0
    dropped_edges: int = 0
    warnings: tuple[str, ...] = ()
    self_references_tracked: bool = True
    analysis_timestamp: str = ""


# =============================================================================
# Cycle records
# =============================================================================


@dataclass(frozen=True)
class CircularDependency:
    """A cycle found in the dependency graph and how it is broken.

    Attributes:
        tables: Tables in cycle order; each depends on the next, the last
            depends on the first.
        edges: Every edge along the cycle, including parallel ones.
        break_edge: Edge chosen to break the cycle.
        resolved: Whether the break edge can be deferred safely.
        resolution_strategy: How the insertion pipeline should handle the break.
        complexity: ``simple`` for cycles of at most two edges.
    """

    tables: tuple[str, ...]
    edges: tuple[RelationshipEdge, ...]
    break_edge: RelationshipEdge
    resolved: bool
    resolution_strategy: ResolutionStrategy
    complexity: Literal["simple", "complex"] = "simple"


# =============================================================================
# Seeding order records
# =============================================================================


@dataclass(frozen=True)
class SeedingPhase:
    """A group of tables that may be seeded together.

    Attributes:
        phase: 1-based phase number.
        tables: Tables in this phase; their relative order carries no constraint.
        description: Human-readable summary.
        can_run_in_parallel: Whether more than one table is in the phase.
        estimated_time: Estimated seeding time in milliseconds.
        dependencies: Labels of phases that must complete first.
        requirements: Fix-ups owed by tables in this phase.
        best_effort: Whether the phase collects tables left in a dependency deadlock.
    """

    phase: int
    tables: tuple[str, ...]
    description: str = ""
    can_run_in_parallel: bool = False
    estimated_time: int = 0
    dependencies: tuple[str, ...] = ()
    requirements: tuple[str, ...] = ()
    best_effort: bool = False


@dataclass(frozen=True)
class SeedingOrderMetadata:
    """Summary of a seeding order."""

    total_phases: int = 0
    estimated_seeding_time: int = 0
    complexity: str = "low"
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class SeedingOrderResult:
    """Phase-based insertion order for a dependency graph.

    Attributes:
        success: False only when no order could be produced at all.
        seeding_order: Flattened phases, in order.
        phases: Ordered seeding phases.
        circular_dependencies_resolved: Edges seeded out of order; the insertion
            pipeline writes NULL first and patches them with an UPDATE.
        warnings: Non-fatal findings.
        errors: Unresolved cycles and other error-level findings.
        metadata: Phase count, time estimate, complexity, recommendations.
        deletion_order: Reverse of ``seeding_order``, for teardown.
    """

    success: bool = True
    seeding_order: tuple[str, ...] = ()
    phases: tuple[SeedingPhase, ...] = ()
    circular_dependencies_resolved: tuple[RelationshipEdge, ...] = ()
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    metadata: SeedingOrderMetadata = field(default_factory=SeedingOrderMetadata)
    deletion_order: tuple[str, ...] = ()


# =============================================================================
# Analysis records
# =============================================================================


@dataclass(frozen=True)
class TableDependency:
    """A table-level dependency backed by one foreign key."""

    from_table: str
    to_table: str
    relationship: RelationshipKind
    foreign_key: RelationshipEdge
    constraint: str


@dataclass(frozen=True)
class AnalysisMetadata:
    """Facts about an analysis run."""

    tables_analyzed: int = 0
    relationships_found: int = 0
    junction_tables_detected: tuple[str, ...] = ()
    tenant_scoped_tables: tuple[str, ...] = ()
    circular_dependencies: int = 0
    max_dependency_depth: int = 0
    analysis_timestamp: str = ""
    confidence: float = 0.0
    cache_hit: bool = False


@dataclass(frozen=True)
class RelationshipAnalysisResult:
    """Complete output of ``RelationshipAnalyzer.analyze_relationships``.

    Attributes:
        success: False when an unexpected internal failure aborted the run.
        dependency_graph: The built graph (empty on failure).
        foreign_key_relationships: Normalized foreign keys of in-scope tables.
        table_dependencies: Table-level view of the graph's edges.
        analysis_metadata: Counts, detected table kinds, confidence, cache flag.
        seeding_order: Phase-based insertion order.
        recommendations: Human-readable guidance.
        warnings: Degradations encountered along the way.
        errors: Error-level findings.
        execution_time: Wall-clock duration in milliseconds.
    """

    success: bool
    dependency_graph: DependencyGraph
    foreign_key_relationships: tuple[RelationshipEdge, ...] = ()
    table_dependencies: tuple[TableDependency, ...] = ()
    analysis_metadata: AnalysisMetadata = field(default_factory=AnalysisMetadata)
    seeding_order: SeedingOrderResult = field(default_factory=SeedingOrderResult)
    recommendations: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    execution_time: float = 0.0
