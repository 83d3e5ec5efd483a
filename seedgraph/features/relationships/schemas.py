"""Pydantic schemas for the relationships feature.

Response models read the engine's dataclasses directly (``from_attributes``).
"""

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RelationshipEdgeSchema(BaseModel):
    """A foreign key in the dependency graph."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    constraint_name: str
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    on_delete: str
    on_update: str
    is_nullable: bool
    is_deferrable: bool
    initially_deferred: bool
    table_schema: str = Field(validation_alias=AliasChoices("table_schema", "schema"))
    foreign_schema: str
    kind: Literal["required", "optional"]
    weight: int = Field(ge=1, le=10, description="Relationship strength")
    is_self_reference: bool
    can_be_deferred: bool


class TableMetadataSchema(BaseModel):
    """Classifier output for a table."""

    model_config = ConfigDict(from_attributes=True)

    is_junction_table: bool
    is_tenant_scoped: bool
    has_timestamps: bool
    primary_key_columns: list[str]
    foreign_key_count: int
    estimated_size: Literal["small", "medium", "large"]
    seeding_complexity: Literal["simple", "moderate", "complex"]


class TableNodeSchema(BaseModel):
    """A table in the dependency graph."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    table: str
    table_schema: str = Field(validation_alias=AliasChoices("table_schema", "schema"))
    qualified_name: str
    metadata: TableMetadataSchema
    dependencies: list[str]
    dependents: list[str]
    depth: int
    is_circular: bool


class GraphMetadataSchema(BaseModel):
    """Dependency graph summary."""

    model_config = ConfigDict(from_attributes=True)

    total_tables: int
    total_relationships: int
    circular_dependencies: int
    max_depth: int
    complexity: Literal["simple", "moderate", "complex", "very_complex"]
    confidence: float = Field(ge=0.0, le=1.0)
    dropped_edges: int
    warnings: list[str]
    analysis_timestamp: str


class DependencyGraphSchema(BaseModel):
    """Dependency graph with detected cycles."""

    model_config = ConfigDict(from_attributes=True)

    nodes: list[TableNodeSchema]
    edges: list[RelationshipEdgeSchema]
    cycles: list[list[str]]
    metadata: GraphMetadataSchema


class SeedingPhaseSchema(BaseModel):
    """One phase of the seeding order."""

    model_config = ConfigDict(from_attributes=True)

    phase: int = Field(ge=1)
    tables: list[str]
    description: str
    can_run_in_parallel: bool
    estimated_time: int = Field(description="Estimated seeding time in milliseconds")
    dependencies: list[str]
    requirements: list[str]
    best_effort: bool


class SeedingOrderMetadataSchema(BaseModel):
    """Seeding order summary."""

    model_config = ConfigDict(from_attributes=True)

    total_phases: int
    estimated_seeding_time: int = Field(description="Estimated total time in milliseconds")
    complexity: str
    recommendations: list[str]


class SeedingOrderSchema(BaseModel):
    """Phase-based insertion order."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    seeding_order: list[str]
    phases: list[SeedingPhaseSchema]
    circular_dependencies_resolved: list[RelationshipEdgeSchema] = Field(
        description="Foreign keys to insert as NULL (or deferred) and patch afterwards",
    )
    warnings: list[str]
    errors: list[str]
    metadata: SeedingOrderMetadataSchema
    deletion_order: list[str]


class TableDependencySchema(BaseModel):
    """Table-level dependency backed by one foreign key."""

    model_config = ConfigDict(from_attributes=True)

    from_table: str
    to_table: str
    relationship: Literal["required", "optional"]
    foreign_key: RelationshipEdgeSchema
    constraint: str


class AnalysisMetadataSchema(BaseModel):
    """Facts about an analysis run."""

    model_config = ConfigDict(from_attributes=True)

    tables_analyzed: int
    relationships_found: int
    junction_tables_detected: list[str]
    tenant_scoped_tables: list[str]
    circular_dependencies: int
    max_dependency_depth: int
    analysis_timestamp: str
    confidence: float
    cache_hit: bool


class AnalysisResponse(BaseModel):
    """Complete relationship analysis result."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    dependency_graph: DependencyGraphSchema
    foreign_key_relationships: list[RelationshipEdgeSchema]
    table_dependencies: list[TableDependencySchema]
    analysis_metadata: AnalysisMetadataSchema
    seeding_order: SeedingOrderSchema
    recommendations: list[str]
    warnings: list[str]
    errors: list[str]
    execution_time: float = Field(description="Wall-clock duration in milliseconds")


class AnalysisParams(BaseModel):
    """Optional overrides of the configured analysis options."""

    schemas: list[str] | None = Field(
        default=None,
        min_length=1,
        description="Database schemas to analyze",
    )
    include_tables: list[str] | None = Field(
        default=None,
        description="Only analyze these tables",
    )
    exclude_tables: list[str] | None = Field(
        default=None,
        description="Tables to leave out of the analysis",
    )
    detect_junction_tables: bool | None = None
    analyze_tenant_scoping: bool | None = None
    include_optional_relationships: bool | None = None
    detect_self_references: bool | None = None
    enable_caching: bool | None = None
    generate_recommendations: bool | None = None
    respect_circular_dependencies: bool | None = None
    prioritize_junction_tables: bool | None = None
    group_by_tenant: bool | None = None
    handle_optional_relationships: Literal["include", "defer", "ignore"] | None = Field(
        default=None,
        description="How nullable foreign keys affect ordering",
    )


class SubgraphParams(BaseModel):
    """Tables to filter the dependency graph down to."""

    tables: list[str] = Field(min_length=1, description="Table names to keep")
