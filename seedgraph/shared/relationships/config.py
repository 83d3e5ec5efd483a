"""Configuration dataclasses for the relationship analysis engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Literal


@dataclass
class ClassifierConfig:
    """Thresholds and name sets used by the table classifier.

    The numeric defaults are working heuristics, not correctness constraints.

    Attributes:
        junction_min_foreign_keys: Minimum outgoing foreign keys for a junction table.
        junction_max_extra_columns: Maximum non-FK, non-housekeeping columns.
        housekeeping_columns: Columns ignored when judging junction tables.
        tenant_columns: Column names that mark a table as tenant-scoped.
        timestamp_columns: Column names that count as row timestamps.
        small_table_max_columns: Upper column count for the ``small`` size bucket.
        medium_table_max_columns: Upper column count for the ``medium`` size bucket.
        simple_max_score: Upper complexity score for ``simple`` tables.
        moderate_max_score: Upper complexity score for ``moderate`` tables.
        foreign_key_weight: Complexity score per outgoing foreign key.
        required_column_weight: Complexity score per NOT NULL column.
        complex_type_weight: Complexity score per complex-typed column.
        complex_types: Data type fragments treated as complex.
    """

    junction_min_foreign_keys: int = 2
    junction_max_extra_columns: int = 2
    housekeeping_columns: frozenset[str] = frozenset({"id", "created_at", "updated_at"})
    tenant_columns: frozenset[str] = frozenset(
        {"account_id", "tenant_id", "organization_id", "team_id"}
    )
    timestamp_columns: frozenset[str] = frozenset({"created_at", "updated_at", "timestamp"})
    small_table_max_columns: int = 5
    medium_table_max_columns: int = 15
    simple_max_score: int = 5
    moderate_max_score: int = 15
    foreign_key_weight: int = 2
    required_column_weight: int = 1
    complex_type_weight: int = 3
    complex_types: tuple[str, ...] = ("json", "jsonb", "array", "geometry")

    def fingerprint_payload(self) -> dict[str, object]:
        """Return every threshold and name set, with sets sorted."""
        payload: dict[str, object] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            payload[item.name] = sorted(value) if isinstance(value, frozenset) else value
        return payload


@dataclass
class SeedingOrderOptions:
    """Options for the seeding-order calculator.

    Attributes:
        respect_circular_dependencies: Honor the deferred edges chosen by the
            cycle resolver. When False, cycles break at the first edge met.
        prioritize_junction_tables: Place junction tables last within a phase.
        group_by_tenant: Keep tenant-scoped tables in one phase where the
            dependency order allows it.
        handle_optional_relationships: ``include`` gates on nullable edges like
            any other, ``defer`` treats them as deferred fix-ups, ``ignore``
            drops them from ordering without recording them.
        time_per_table_ms: Seeding time estimate per table.
        time_per_phase_ms: Seeding time estimate per phase barrier.
    """

    respect_circular_dependencies: bool = True
    prioritize_junction_tables: bool = False
    group_by_tenant: bool = False
    handle_optional_relationships: Literal["include", "defer", "ignore"] = "include"
    time_per_table_ms: int = 1000
    time_per_phase_ms: int = 500


@dataclass
class AnalysisOptions:
    """Master configuration for a relationship analysis run.

    Attributes:
        schemas: Database schemas in scope.
        include_tables: When non-empty, only these tables are analyzed.
        exclude_tables: Tables removed from the analysis.
        detect_junction_tables: Run the junction-table heuristic.
        analyze_tenant_scoping: Run the tenant-scoping heuristic. Grouping
            tenant tables in the seeding order is ``seeding.group_by_tenant``.
        include_optional_relationships: Keep nullable foreign keys in the graph.
        detect_self_references: Report self-referencing foreign keys as cycles.
        enable_caching: Serve repeated analyses from the cache.
        cache_ttl_minutes: Cache entry lifetime; ``None`` keeps entries until cleared.
        max_concurrent_queries: Upper bound on concurrent introspection queries.
        query_timeout_seconds: Timeout applied to each introspection query.
        generate_recommendations: Produce human-readable guidance.
        verbose_logging: Log the full seeding order at info level.
        classifier: Table classifier thresholds.
        seeding: Seeding-order calculator options.
    """

    schemas: list[str] = field(default_factory=lambda: ["public"])
    include_tables: list[str] = field(default_factory=list)
    exclude_tables: list[str] = field(default_factory=list)
    detect_junction_tables: bool = True
    analyze_tenant_scoping: bool = True
    include_optional_relationships: bool = True
    detect_self_references: bool = True
    enable_caching: bool = True
    cache_ttl_minutes: int | None = 30
    max_concurrent_queries: int = 10
    query_timeout_seconds: float = 30.0
    generate_recommendations: bool = True
    verbose_logging: bool = False
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    seeding: SeedingOrderOptions = field(default_factory=SeedingOrderOptions)

    def fingerprint_payload(self) -> dict[str, object]:
        """Return the inputs that determine an analysis result.

        Lists are sorted so that argument order never changes the fingerprint.
        """
        return {
            "schemas": sorted(self.schemas),
            "include_tables": sorted(self.include_tables),
            "exclude_tables": sorted(self.exclude_tables),
            "classifier": self.classifier.fingerprint_payload(),
            "options": {
                "junctions": self.detect_junction_tables,
                "tenant": self.analyze_tenant_scoping,
                "optional": self.include_optional_relationships,
                "self_references": self.detect_self_references,
                "recommendations": self.generate_recommendations,
                "respect_cycles": self.seeding.respect_circular_dependencies,
                "prioritize_junctions": self.seeding.prioritize_junction_tables,
                "group_by_tenant": self.seeding.group_by_tenant,
                "optional_handling": self.seeding.handle_optional_relationships,
                "time_per_table_ms": self.seeding.time_per_table_ms,
                "time_per_phase_ms": self.seeding.time_per_phase_ms,
            },
        }
