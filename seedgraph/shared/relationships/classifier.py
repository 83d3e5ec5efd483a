"""Table classification heuristics.

Derives junction-table likelihood, tenant scoping, timestamp presence and
size/complexity estimates from a table's columns and outgoing foreign keys.
Classifications are hints for the insertion pipeline; they never gate the
seeding order.
"""

from __future__ import annotations

from collections.abc import Sequence

from seedgraph.shared.relationships.config import ClassifierConfig
from seedgraph.shared.relationships.models import (
    ColumnInfo,
    EstimatedSize,
    RelationshipEdge,
    SeedingComplexity,
    TableMetadata,
)


class TableClassifier:
    """Classifies tables from their columns and foreign keys."""

    def __init__(
        self,
        config: ClassifierConfig | None = None,
        detect_junction_tables: bool = True,
        analyze_tenant_scoping: bool = True,
    ) -> None:
        """Initialize the classifier.

        Args:
            config: Thresholds and column name sets.
            detect_junction_tables: When False, no table is a junction table.
            analyze_tenant_scoping: When False, no table is tenant-scoped.
        """
        self.config = config or ClassifierConfig()
        self.detect_junction_tables = detect_junction_tables
        self.analyze_tenant_scoping = analyze_tenant_scoping

    def classify(
        self,
        columns: Sequence[ColumnInfo],
        foreign_keys: Sequence[RelationshipEdge],
    ) -> TableMetadata:
        """Build table metadata.

        Args:
            columns: The table's columns.
            foreign_keys: Foreign keys whose referencing side is this table.

        Returns:
            Classification for the table.
        """
        return TableMetadata(
            is_junction_table=self.detect_junction_tables
            and self.is_junction_table(columns, foreign_keys),
            is_tenant_scoped=self.analyze_tenant_scoping and self.is_tenant_scoped(columns),
            has_timestamps=self.has_timestamps(columns),
            primary_key_columns=self.primary_key_columns(columns),
            foreign_key_count=len(foreign_keys),
            estimated_size=self.estimate_size(columns),
            seeding_complexity=self.estimate_complexity(columns, foreign_keys),
        )

    @staticmethod
    def primary_key_columns(columns: Sequence[ColumnInfo]) -> tuple[str, ...]:
        """Primary key column names in column order, without duplicates."""
        return tuple(dict.fromkeys(c.column_name for c in columns if c.is_primary_key))

    def is_junction_table(
        self,
        columns: Sequence[ColumnInfo],
        foreign_keys: Sequence[RelationshipEdge],
    ) -> bool:
        """Check whether a table looks like a many-to-many junction table.

        A junction table has at least two foreign keys, a primary key made only
        of foreign key columns (a surrogate ``id`` is tolerated), and at most
        ``junction_max_extra_columns`` other non-housekeeping columns.
        """
        if len(foreign_keys) < self.config.junction_min_foreign_keys:
            return False

        housekeeping = self.config.housekeeping_columns
        fk_columns = {fk.from_column for fk in foreign_keys}

        primary_key = [c for c in self.primary_key_columns(columns) if c not in housekeeping]
        if not all(column in fk_columns for column in primary_key):
            return False

        extra_columns = [
            c
            for c in columns
            if c.column_name not in fk_columns and c.column_name not in housekeeping
        ]
        return len(extra_columns) <= self.config.junction_max_extra_columns

    def is_tenant_scoped(self, columns: Sequence[ColumnInfo]) -> bool:
        return any(c.column_name in self.config.tenant_columns for c in columns)

    def has_timestamps(self, columns: Sequence[ColumnInfo]) -> bool:
        return any(c.column_name in self.config.timestamp_columns for c in columns)

    def estimate_size(self, columns: Sequence[ColumnInfo]) -> EstimatedSize:
        """Bucket a table by column count."""
        if len(columns) <= self.config.small_table_max_columns:
            return "small"
        if len(columns) <= self.config.medium_table_max_columns:
            return "medium"
        return "large"

    def complexity_score(
        self,
        columns: Sequence[ColumnInfo],
        foreign_keys: Sequence[RelationshipEdge],
    ) -> int:
        """Weighted score of foreign keys, required columns and complex types."""
        complex_columns = [
            c
            for c in columns
            if any(fragment in c.data_type.lower() for fragment in self.config.complex_types)
        ]
        return (
            len(foreign_keys) * self.config.foreign_key_weight
            + sum(1 for c in columns if not c.is_nullable) * self.config.required_column_weight
            + len(complex_columns) * self.config.complex_type_weight
        )

    def estimate_complexity(
        self,
        columns: Sequence[ColumnInfo],
        foreign_keys: Sequence[RelationshipEdge],
    ) -> SeedingComplexity:
        score = self.complexity_score(columns, foreign_keys)
        if score <= self.config.simple_max_score:
            return "simple"
        if score <= self.config.moderate_max_score:
            return "moderate"
        return "complex"
