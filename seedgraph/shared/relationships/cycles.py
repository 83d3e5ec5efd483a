"""Cycle detection and resolution over the dependency graph arena.

Nodes and edges are addressed by index; the arena is loaded into a networkx
``MultiDiGraph`` keyed by edge index, so parallel foreign keys between the
same two tables stay distinct edges. Detection repeatedly finds strongly
connected components, extracts the shortest cycle through the alphabetically
first table of each component, chooses a break edge for it and removes that
edge, until no cycle remains. Every iteration removes one edge, so the loop
terminates; a component holding several interlocking cycles yields one entry
per break.

Break edge preference: nullable, then deferrable, then the smallest
constraint name.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import networkx as nx

from seedgraph.core.logging import get_logger
from seedgraph.shared.relationships.models import (
    CircularDependency,
    RelationshipEdge,
    ResolutionStrategy,
)

if TYPE_CHECKING:
    from seedgraph.shared.relationships.graph import DependencyGraph

logger = get_logger(__name__)


@dataclass(frozen=True)
class DetectedCycle:
    """A cycle in index form.

    Attributes:
        nodes: Node indices in cycle order.
        edge_indices: Every edge along the cycle.
        break_index: Edge chosen to break the cycle.
    """

    nodes: tuple[int, ...]
    edge_indices: tuple[int, ...]
    break_index: int


@dataclass(frozen=True)
class CycleResolution:
    """Outcome of resolving every cycle in a graph.

    Attributes:
        cycles: All detected cycles with their break edges.
        deferred_edge_indices: Graph edge indices the seeding order may ignore.
        deferred_edges: The deferred edges themselves, in detection order.
        errors: One message per cycle that could not be broken safely.
    """

    cycles: tuple[CircularDependency, ...] = ()
    deferred_edge_indices: frozenset[int] = frozenset()
    deferred_edges: tuple[RelationshipEdge, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def unresolved(self) -> tuple[CircularDependency, ...]:
        return tuple(cycle for cycle in self.cycles if not cycle.resolved)


def build_digraph(
    node_count: int,
    endpoints: Sequence[tuple[int, int]],
    edge_indices: Iterable[int] | None = None,
) -> nx.MultiDiGraph:  # type: ignore[type-arg]
    """Load arena edges into a ``MultiDiGraph``.

    Args:
        node_count: Number of nodes; nodes are ``0..node_count-1``.
        endpoints: ``(from_index, to_index)`` per edge.
        edge_indices: Edges to include; all edges when omitted.

    Returns:
        Graph whose edge keys are the arena edge indices.
    """
    G: nx.MultiDiGraph = nx.MultiDiGraph()  # type: ignore[type-arg]
    G.add_nodes_from(range(node_count))
    indices = range(len(endpoints)) if edge_indices is None else sorted(edge_indices)
    G.add_edges_from((*endpoints[i], i, {}) for i in indices)
    return G


def strongly_connected_components(G: nx.DiGraph) -> list[list[int]]:  # type: ignore[type-arg]
    """Strongly connected components, each sorted, ordered by their smallest node."""
    components = [sorted(component) for component in nx.strongly_connected_components(G)]
    return sorted(components, key=lambda component: component[0])


def break_edge_key(edge: RelationshipEdge, edge_index: int) -> tuple[bool, bool, str, int]:
    """Sort key ranking break-edge candidates, best first."""
    return (not edge.is_nullable, not edge.is_deferrable, edge.constraint_name, edge_index)


def choose_break_edge(edges: Sequence[RelationshipEdge], candidates: Sequence[int]) -> int:
    """Pick the edge index to break a cycle with."""
    return min(candidates, key=lambda i: break_edge_key(edges[i], i))


def _shortest_cycle(
    G: nx.MultiDiGraph,  # type: ignore[type-arg]
    start: int,
    members: list[int],
) -> list[int]:
    """Shortest cycle through ``start`` that stays inside ``members``."""
    component = G.subgraph(members)
    paths = nx.single_source_shortest_path(component, start)
    closing = [paths[node] for node in component.predecessors(start) if node != start]
    return min(closing, key=lambda path: (len(path), path))


def detect_cycles(
    node_count: int,
    endpoints: Sequence[tuple[int, int]],
    edges: Sequence[RelationshipEdge],
    include_self_loops: bool = True,
) -> list[DetectedCycle]:
    """Detect cycles and choose a break edge for each.

    Args:
        node_count: Number of nodes.
        endpoints: ``(from_index, to_index)`` per edge.
        edges: Edge records, parallel to ``endpoints``.
        include_self_loops: Report self-referencing edges as cycles.

    Returns:
        Detected cycles in detection order.
    """
    active = (
        i for i, (source, target) in enumerate(endpoints) if include_self_loops or source != target
    )
    G = build_digraph(node_count, endpoints, active)
    detected: list[DetectedCycle] = []

    while True:
        components = [c for c in strongly_connected_components(G) if len(c) > 1]
        self_loops = sorted(nx.nodes_with_selfloops(G))
        if not components and not self_loops:
            return detected

        for component in components:
            path = _shortest_cycle(G, component[0], component)
            candidates = [
                key
                for position, source in enumerate(path)
                for key in sorted(G[source][path[(position + 1) % len(path)]])
            ]
            chosen = choose_break_edge(edges, candidates)
            detected.append(DetectedCycle(tuple(path), tuple(candidates), chosen))
            G.remove_edge(*endpoints[chosen], key=chosen)

        for node in self_loops:
            candidates = sorted(G[node][node])
            chosen = choose_break_edge(edges, candidates)
            detected.append(DetectedCycle((node,), tuple(candidates), chosen))
            G.remove_edge(node, node, key=chosen)


def cyclic_edge_indices(node_count: int, endpoints: Sequence[tuple[int, int]]) -> set[int]:
    """Indices of edges that lie inside a cycle, self-loops included."""
    condensed = nx.condensation(build_digraph(node_count, endpoints))
    component_of = condensed.graph["mapping"]
    return {
        i
        for i, (source, target) in enumerate(endpoints)
        if component_of[source] == component_of[target]
    }


def _strategy(edge: RelationshipEdge) -> ResolutionStrategy:
    if edge.is_nullable:
        return "null_initially"
    if edge.is_deferrable:
        return "defer_constraints"
    return "manual"


def describe_cycle(tables: Sequence[str]) -> str:
    """Render a cycle as ``a -> b -> a``."""
    return " -> ".join([*tables, tables[0]])


def resolve_cycles(graph: DependencyGraph) -> CycleResolution:
    """Choose how every cycle in ``graph`` is broken.

    The graph is only read. Cycles whose break edge is nullable or deferrable
    are resolved by deferring that edge. Any other cycle is reported as an
    error; the seeding order still places its tables in a best-effort phase.

    Args:
        graph: A built dependency graph.

    Returns:
        Cycle resolution plan.
    """
    names = [node.table for node in graph.nodes]
    detected = detect_cycles(
        len(graph.nodes),
        graph.edge_endpoints,
        graph.edges,
        include_self_loops=graph.metadata.self_references_tracked,
    )

    cycles: list[CircularDependency] = []
    deferred_indices: list[int] = []
    errors: list[str] = []

    for found in detected:
        break_edge = graph.edges[found.break_index]
        tables = tuple(names[i] for i in found.nodes)
        cycle = CircularDependency(
            tables=tables,
            edges=tuple(graph.edges[i] for i in found.edge_indices),
            break_edge=break_edge,
            resolved=break_edge.can_be_deferred,
            resolution_strategy=_strategy(break_edge),
            complexity="complex" if len(found.edge_indices) > 2 else "simple",
        )
        cycles.append(cycle)

        if cycle.resolved:
            deferred_indices.append(found.break_index)
            logger.debug(
                "relationships.cycles.resolved",
                cycle=describe_cycle(tables),
                deferred=break_edge.label,
                strategy=cycle.resolution_strategy,
            )
        else:
            message = (
                f"Unresolved circular dependency {describe_cycle(tables)}: no nullable or "
                f"deferrable foreign key to break (constraints: "
                f"{', '.join(sorted(edge.constraint_name for edge in cycle.edges))})"
            )
            errors.append(message)
            logger.error(
                "relationships.cycles.unresolved",
                cycle=describe_cycle(tables),
                constraint=break_edge.constraint_name,
            )

    return CycleResolution(
        cycles=tuple(cycles),
        deferred_edge_indices=frozenset(deferred_indices),
        deferred_edges=tuple(graph.edges[i] for i in deferred_indices),
        errors=tuple(errors),
    )
