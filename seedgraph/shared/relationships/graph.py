"""Dependency graph construction.

``DependencyGraphBuilder`` accumulates tables and foreign keys through
imperative calls and hands back a frozen ``DependencyGraph``. The graph is an
arena: nodes are stored sorted by table name and addressed by index, and each
edge has a matching ``(from_index, to_index)`` pair in ``edge_endpoints``.
``to_networkx`` exposes the arena as a networkx graph for the algorithms.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType

import networkx as nx

from seedgraph.core.logging import get_logger
from seedgraph.shared.relationships.cycles import (
    build_digraph,
    cyclic_edge_indices,
    detect_cycles,
)
from seedgraph.shared.relationships.models import (
    GraphComplexity,
    GraphMetadata,
    RelationshipEdge,
    TableMetadata,
    TableNode,
)

logger = get_logger(__name__)

DEEP_CHAIN_DEPTH = 5


@dataclass(frozen=True)
class DependencyGraph:
    """Read-only table dependency graph.

    Attributes:
        nodes: Tables, sorted by name.
        edges: Foreign keys between tables in ``nodes``.
        cycles: Detected cycles as table names in cycle order.
        metadata: Summary statistics and build warnings.
        edge_endpoints: ``(from_index, to_index)`` per edge.
        node_index: Table name -> position in ``nodes``.
    """

    nodes: tuple[TableNode, ...] = ()
    edges: tuple[RelationshipEdge, ...] = ()
    cycles: tuple[tuple[str, ...], ...] = ()
    metadata: GraphMetadata = field(default_factory=GraphMetadata)
    edge_endpoints: tuple[tuple[int, int], ...] = field(default=(), repr=False)
    node_index: Mapping[str, int] = field(
        default_factory=lambda: MappingProxyType({}), repr=False, compare=False
    )

    @classmethod
    def empty(cls) -> DependencyGraph:
        return DependencyGraphBuilder().build()

    @property
    def table_names(self) -> tuple[str, ...]:
        return tuple(node.table for node in self.nodes)

    def has_table(self, table: str) -> bool:
        return table in self.node_index

    def node(self, table: str) -> TableNode:
        """Look up a node by table name.

        Raises:
            KeyError: If the table is not in the graph.
        """
        return self.nodes[self.node_index[table]]

    def dependencies_of(self, table: str) -> tuple[RelationshipEdge, ...]:
        """Edges whose referencing side is ``table``."""
        return tuple(edge for edge in self.edges if edge.from_table == table)

    def dependents_of(self, table: str) -> tuple[RelationshipEdge, ...]:
        """Edges whose referenced side is ``table``."""
        return tuple(edge for edge in self.edges if edge.to_table == table)

    def to_networkx(
        self, edge_indices: Iterable[int] | None = None
    ) -> nx.MultiDiGraph:  # type: ignore[type-arg]
        """The arena as a ``MultiDiGraph`` keyed by edge index.

        Nodes are indices into ``nodes`` and carry their table name; an edge
        runs from the referencing table to the referenced one.
        """
        G = build_digraph(len(self.nodes), self.edge_endpoints, edge_indices)
        nx.set_node_attributes(G, dict(enumerate(self.table_names)), "table")
        return G

    def subgraph(self, table_names: Iterable[str]) -> DependencyGraph:
        """Filter the graph down to ``table_names``.

        Only edges with both endpoints in the requested set survive. Names not
        present in the graph are ignored.
        """
        wanted = set(table_names)
        builder = DependencyGraphBuilder(
            detect_self_references=self.metadata.self_references_tracked
        )
        for node in self.nodes:
            if node.table in wanted:
                builder.add_node(node.table, node.schema, node.metadata)
        for edge in self.edges:
            if edge.from_table in wanted and edge.to_table in wanted:
                builder.add_edge(edge.from_table, edge.to_table, edge)
        return builder.build()


class DependencyGraphBuilder:
    """Builds an immutable ``DependencyGraph``.

    Edges may be added before or after their tables; endpoints are checked at
    build time. An edge whose endpoint was never added is dropped with a
    warning.
    """

    def __init__(self, detect_self_references: bool = True) -> None:
        """Initialize an empty builder.

        Args:
            detect_self_references: Report self-referencing foreign keys as cycles.
        """
        self.detect_self_references = detect_self_references
        self._nodes: dict[str, tuple[str, TableMetadata]] = {}
        self._edges: list[RelationshipEdge] = []
        self._warnings: list[str] = []
        self._built: DependencyGraph | None = None

    def add_node(
        self,
        table: str,
        schema: str = "public",
        metadata: TableMetadata | None = None,
    ) -> None:
        """Add a table. A repeated table name keeps the first registration."""
        if table in self._nodes:
            existing_schema = self._nodes[table][0]
            message = (
                f"Table '{table}' found in schemas '{existing_schema}' and '{schema}'; "
                f"keeping '{existing_schema}.{table}'"
            )
            self._warnings.append(message)
            logger.warning("relationships.graph.duplicate_table", table=table, schema=schema)
            self._built = None
            return
        self._nodes[table] = (schema, metadata or TableMetadata())
        self._built = None

    def add_edge(self, from_table: str, to_table: str, relationship: RelationshipEdge) -> None:
        """Add a foreign key where ``from_table`` depends on ``to_table``."""
        if relationship.from_table != from_table or relationship.to_table != to_table:
            relationship = replace(relationship, from_table=from_table, to_table=to_table)
        self._edges.append(relationship)
        self._built = None

    def build(self) -> DependencyGraph:
        """Build the graph.

        Repeated calls without intervening changes return the same graph.

        Returns:
            Frozen dependency graph with cycles and metadata populated.
        """
        if self._built is not None:
            return self._built

        names = sorted(self._nodes)
        index = {name: position for position, name in enumerate(names)}
        warnings = list(self._warnings)

        edges: list[RelationshipEdge] = []
        endpoints: list[tuple[int, int]] = []
        dropped = 0
        for edge in self._edges:
            missing = [t for t in dict.fromkeys((edge.from_table, edge.to_table)) if t not in index]
            if missing:
                dropped += 1
                missing_text = ", ".join(f"'{t}'" for t in missing)
                warnings.append(
                    f"Dropped foreign key {edge.constraint_name} ({edge.label}): "
                    f"table {missing_text} is not in the analyzed table set"
                )
                logger.warning(
                    "relationships.graph.edge_dropped",
                    constraint=edge.constraint_name,
                    missing=missing,
                )
                continue
            edges.append(edge)
            endpoints.append((index[edge.from_table], index[edge.to_table]))

        detected = detect_cycles(
            len(names), endpoints, edges, include_self_loops=self.detect_self_references
        )
        cycles = tuple(tuple(names[i] for i in found.nodes) for found in detected)
        circular = {i for found in detected for i in found.nodes}
        unresolvable = sum(1 for found in detected if not edges[found.break_index].can_be_deferred)
        depths = self._depths(len(names), endpoints)

        dependencies: list[set[str]] = [set() for _ in names]
        dependents: list[set[str]] = [set() for _ in names]
        for source, target in endpoints:
            dependencies[source].add(names[target])
            dependents[target].add(names[source])

        nodes = tuple(
            TableNode(
                table=name,
                schema=self._nodes[name][0],
                metadata=self._nodes[name][1],
                dependencies=tuple(sorted(dependencies[i])),
                dependents=tuple(sorted(dependents[i])),
                depth=depths[i],
                is_circular=i in circular,
            )
            for i, name in enumerate(names)
        )

        max_depth = max(depths, default=0)
        if cycles:
            warnings.append(f"{len(cycles)} circular dependencies detected")
        if len(cycles) > 3:
            warnings.append("High number of circular dependencies may slow down seeding")
        if max_depth > DEEP_CHAIN_DEPTH:
            warnings.append(
                f"Deep dependency chain detected (depth {max_depth}); "
                "consider flattening the schema design"
            )

        ambiguous = sum(1 for edge in edges if edge.is_ambiguous)
        metadata = GraphMetadata(
            total_tables=len(names),
            total_relationships=len(edges),
            circular_dependencies=len(cycles),
            max_depth=max_depth,
            complexity=self._complexity(len(names), len(cycles), max_depth),
            confidence=self._confidence(dropped, ambiguous, len(cycles), unresolvable),
            dropped_edges=dropped,
            warnings=tuple(warnings),
            self_references_tracked=self.detect_self_references,
            analysis_timestamp=datetime.now(UTC).isoformat(),
        )

        self._built = DependencyGraph(
            nodes=nodes,
            edges=tuple(edges),
            cycles=cycles,
            metadata=metadata,
            edge_endpoints=tuple(endpoints),
            node_index=MappingProxyType(index),
        )
        logger.debug(
            "relationships.graph.built",
            tables=len(names),
            relationships=len(edges),
            dropped=dropped,
            cycles=len(cycles),
            max_depth=max_depth,
        )
        return self._built

    @staticmethod
    def _depths(node_count: int, endpoints: list[tuple[int, int]]) -> list[int]:
        """Longest dependency chain below each node, skipping cyclic edges."""
        cyclic = cyclic_edge_indices(node_count, endpoints)
        dag = build_digraph(node_count, endpoints, set(range(len(endpoints))) - cyclic)
        depths = [0] * node_count
        for node in reversed(list(nx.topological_sort(dag))):
            depths[node] = max((depths[target] + 1 for target in dag.successors(node)), default=0)
        return depths

    @staticmethod
    def _complexity(tables: int, cycles: int, max_depth: int) -> GraphComplexity:
        if tables > 20 and cycles > 3:
            return "very_complex"
        if cycles > 2 or max_depth > 5:
            return "complex"
        if cycles > 0 or max_depth > 3:
            return "moderate"
        return "simple"

    @staticmethod
    def _confidence(dropped: int, ambiguous: int, cycles: int, unresolvable: int) -> float:
        """Confidence in [0, 1], lowered by dropped, ambiguous and cyclic edges."""
        confidence = 1.0 - 0.05 * (dropped + ambiguous + cycles) - 0.1 * unresolvable
        return round(min(max(confidence, 0.0), 1.0), 3)
