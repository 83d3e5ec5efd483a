"""Phase-based seeding order.

Topological generations of the dependency graph, computed with networkx:
every table whose dependencies are satisfied forms one phase. Tables inside
a phase are sorted by name, so identical graphs always give identical phases.
Edges deferred by the cycle resolver never gate a table; they are returned as
fix-ups owed by the insertion pipeline.
"""

from __future__ import annotations

from collections.abc import Sequence

import networkx as nx

from seedgraph.core.logging import get_logger
from seedgraph.shared.relationships.config import SeedingOrderOptions
from seedgraph.shared.relationships.cycles import CycleResolution, resolve_cycles
from seedgraph.shared.relationships.graph import DependencyGraph
from seedgraph.shared.relationships.models import (
    RelationshipEdge,
    SeedingOrderMetadata,
    SeedingOrderResult,
    SeedingPhase,
)
from seedgraph.shared.relationships.recommendations import seeding_recommendations

logger = get_logger(__name__)


def fixup_requirement(edge: RelationshipEdge) -> str:
    """Describe the post-insert fix-up a deferred edge needs."""
    if edge.is_nullable:
        return (
            f"Insert {edge.from_table}.{edge.from_column} as NULL, "
            f"then UPDATE it once {edge.to_table} is seeded"
        )
    if edge.is_deferrable:
        return (
            f"Seed {edge.from_table} in one transaction with constraint "
            f"{edge.constraint_name} set DEFERRED"
        )
    return f"Manually resolve required foreign key {edge.label}"


class SeedingOrderCalculator:
    """Computes a phase-based insertion order for a dependency graph.

    The graph is only read; the result is a separate value.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        options: SeedingOrderOptions | None = None,
        resolution: CycleResolution | None = None,
        verbose_logging: bool = False,
    ) -> None:
        """Initialize the calculator.

        Args:
            graph: Built dependency graph.
            options: Ordering options.
            resolution: Cycle resolution for ``graph``; computed when omitted.
            verbose_logging: Log the computed order at info level.
        """
        self.graph = graph
        self.options = options or SeedingOrderOptions()
        self.resolution = resolution if resolution is not None else resolve_cycles(graph)
        self.verbose_logging = verbose_logging

    def calculate(self) -> SeedingOrderResult:
        """Compute the seeding order.

        Every table of the graph appears in exactly one phase. Tables left in
        a dependency deadlock are appended as a final best-effort phase.

        Returns:
            Seeding order with phases, deferred edges and metadata.
        """
        graph = self.graph
        names = graph.table_names
        node_count = len(names)
        endpoints = graph.edge_endpoints
        warnings: list[str] = []
        errors = list(self.resolution.errors)

        deferred, gating = self._partition_edges()

        # Edges run from referenced to referencing table, so generations are phases.
        remaining = graph.to_networkx(gating).reverse(copy=True)
        layers: list[list[int]] = []
        forced: list[int] = []
        best_effort = False

        while True:
            layers.extend(self._peel(remaining))
            if not remaining:
                break

            if self.options.respect_circular_dependencies:
                stuck = sorted(remaining)
                layers.append(stuck)
                best_effort = True
                stuck_names = ", ".join(names[node] for node in stuck)
                warnings.append(
                    f"Dependency deadlock among {stuck_names}; "
                    "appended as a final best-effort phase"
                )
                logger.warning("relationships.ordering.deadlock", tables=stuck_names)
                break

            edge_index = self._force_break(remaining)
            forced.append(edge_index)
            source, target = endpoints[edge_index]
            remaining.remove_edge(target, source, key=edge_index)
            edge = graph.edges[edge_index]
            warnings.append(f"Broke circular dependency at {edge.label} ({edge.constraint_name})")
            logger.warning(
                "relationships.ordering.forced_break",
                constraint=edge.constraint_name,
                edge=edge.label,
            )

        deferred_indices = sorted(deferred) + forced
        if self.options.group_by_tenant:
            constraints: list[list[int]] = [[] for _ in range(node_count)]
            for edge_index in gating.difference(forced):
                source, target = endpoints[edge_index]
                if source != target:
                    constraints[target].append(source)
            layers = self._group_by_tenant(layers, best_effort, constraints)

        phases = self._build_phases(layers, best_effort, deferred_indices)
        seeding_order = tuple(table for phase in phases for table in phase.tables)
        deferred_edges = tuple(graph.edges[i] for i in deferred_indices)

        estimated_time = (
            node_count * self.options.time_per_table_ms
            + len(phases) * self.options.time_per_phase_ms
        )
        metadata = SeedingOrderMetadata(
            total_phases=len(phases),
            estimated_seeding_time=estimated_time,
            complexity=self._complexity(node_count, len(phases)),
            recommendations=tuple(
                seeding_recommendations(phases, deferred_edges, self.resolution.unresolved)
            ),
        )

        log = logger.info if self.verbose_logging else logger.debug
        log(
            "relationships.ordering.calculated",
            phases=[list(phase.tables) for phase in phases],
            deferred=[edge.label for edge in deferred_edges],
        )

        return SeedingOrderResult(
            success=True,
            seeding_order=seeding_order,
            phases=phases,
            circular_dependencies_resolved=deferred_edges,
            warnings=tuple(warnings),
            errors=tuple(errors),
            metadata=metadata,
            deletion_order=tuple(reversed(seeding_order)),
        )

    def _partition_edges(self) -> tuple[set[int], set[int]]:
        """Split graph edges into (deferred, gating) index sets.

        Edges in neither set are ignored for ordering and not recorded.
        """
        handling = self.options.handle_optional_relationships
        deferred: set[int] = set()
        if self.options.respect_circular_dependencies:
            deferred.update(self.resolution.deferred_edge_indices)

        gating: set[int] = set()
        for edge_index, edge in enumerate(self.graph.edges):
            if edge_index in deferred:
                continue
            if edge.is_self_reference and not self.graph.metadata.self_references_tracked:
                continue
            if edge.is_nullable and handling == "defer":
                deferred.add(edge_index)
                continue
            if edge.is_nullable and handling == "ignore":
                continue
            gating.add(edge_index)
        return deferred, gating

    @staticmethod
    def _peel(remaining: nx.MultiDiGraph) -> list[list[int]]:  # type: ignore[type-arg]
        """Remove and return topological generations until only cycles remain."""
        layers: list[list[int]] = []
        try:
            for generation in nx.topological_generations(remaining):
                layers.append(sorted(generation))
        except nx.NetworkXUnfeasible:
            # the tables still in ``remaining`` wait on a cycle
            logger.debug("relationships.ordering.cycle_reached", phases=len(layers))
        for layer in layers:
            remaining.remove_nodes_from(layer)
        return layers

    def _force_break(self, remaining: nx.MultiDiGraph) -> int:  # type: ignore[type-arg]
        """Pick the edge to break when no table is ready.

        Chooses the alphabetically first table that sits on a cycle among the
        remaining tables, and breaks its edge to the first table on that cycle.
        """
        members_of: dict[int, set[int]] = {
            node: {node} for node in nx.nodes_with_selfloops(remaining)
        }
        for component in nx.strongly_connected_components(remaining):
            if len(component) > 1:
                for node in component:
                    members_of.setdefault(node, set()).update(component)

        node = min(members_of)
        members = members_of[node]
        names = self.graph.table_names
        edges = self.graph.edges
        candidates = [
            (names[target], edges[key].constraint_name, key)
            for target, _, key in remaining.in_edges(node, keys=True)
            if target in members
        ]
        return min(candidates)[2]

    def _group_by_tenant(
        self,
        layers: list[list[int]],
        best_effort: bool,
        constraints: Sequence[Sequence[int]],
    ) -> list[list[int]]:
        """Move tenant-scoped tables toward the latest tenant phase.

        A table only moves later, and never past the phase before its
        earliest dependent, so dependency order is kept.
        """
        regular = len(layers) - 1 if best_effort else len(layers)
        phase_of = {node: position for position, layer in enumerate(layers) for node in layer}
        tenant = [
            node
            for node, table in enumerate(self.graph.nodes)
            if table.metadata.is_tenant_scoped and phase_of[node] < regular
        ]
        if len(tenant) < 2:
            return layers

        target = max(phase_of[node] for node in tenant)
        for node in sorted(tenant, key=lambda n: (-phase_of[n], n)):
            limit = min(
                (phase_of[source] - 1 for source in constraints[node]),
                default=regular - 1,
            )
            phase_of[node] = max(phase_of[node], min(target, limit))

        regrouped: list[list[int]] = [[] for _ in layers]
        for node, position in phase_of.items():
            regrouped[position].append(node)
        return [sorted(layer) for layer in regrouped if layer]

    def _build_phases(
        self,
        layers: list[list[int]],
        best_effort: bool,
        deferred_indices: Sequence[int],
    ) -> tuple[SeedingPhase, ...]:
        graph = self.graph
        names = graph.table_names
        phase_of = {node: position for position, layer in enumerate(layers) for node in layer}

        requirements: list[list[str]] = [[] for _ in layers]
        for edge_index in deferred_indices:
            source, target = graph.edge_endpoints[edge_index]
            if phase_of[source] <= phase_of[target]:
                requirements[phase_of[source]].append(fixup_requirement(graph.edges[edge_index]))

        phases: list[SeedingPhase] = []
        for position, layer in enumerate(layers):
            if self.options.prioritize_junction_tables:
                layer = sorted(layer, key=lambda n: (graph.nodes[n].metadata.is_junction_table, n))
            is_best_effort = best_effort and position == len(layers) - 1
            if is_best_effort:
                description = "Best-effort phase for tables in an unresolved dependency cycle"
            elif position == 0:
                description = "Independent tables with no dependencies"
            else:
                description = f"Tables depending on phases 1-{position}"
            phases.append(
                SeedingPhase(
                    phase=position + 1,
                    tables=tuple(names[node] for node in layer),
                    description=description,
                    can_run_in_parallel=len(layer) > 1,
                    estimated_time=len(layer) * self.options.time_per_table_ms,
                    dependencies=(f"phase_{position}",) if position else (),
                    requirements=tuple(requirements[position]),
                    best_effort=is_best_effort,
                )
            )
        return tuple(phases)

    def _complexity(self, node_count: int, phase_count: int) -> str:
        cycles = len(self.resolution.cycles)
        if self.resolution.unresolved or cycles > 3 or node_count > 20 or phase_count > 10:
            return "high"
        if cycles > 0 or node_count > 10 or phase_count > 5:
            return "medium"
        return "low"
