"""Helpers for analysing a recorded call graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import networkx as nx

from tracing_callgraph.graph import WEIGHT

NodeId = str


def _weight(data: dict[str, object]) -> int:
    value = data.get(WEIGHT, 1)
    return int(value) if isinstance(value, (int, str)) else 1


@dataclass
class WeightedEdge:
    caller: NodeId
    callee: NodeId
    weight: int


@dataclass
class GraphSummary:
    node_count: int
    edge_count: int
    total_calls: int
    roots: list[NodeId]
    leaves: list[NodeId]
    self_loops: list[NodeId]


def summarize(graph: nx.DiGraph) -> GraphSummary:
    """Count nodes, edges and observed calls, and list entry points, leaves and recursion."""

    total = sum(_weight(data) for _, _, data in graph.edges(data=True))
    roots = sorted(node for node in graph.nodes if graph.in_degree(node) == 0)
    leaves = sorted(node for node in graph.nodes if graph.out_degree(node) == 0)
    loops = sorted(node for node, _ in nx.selfloop_edges(graph))
    return GraphSummary(
        node_count=graph.number_of_nodes(),
        edge_count=graph.number_of_edges(),
        total_calls=total,
        roots=roots,
        leaves=leaves,
        self_loops=loops,
    )


def heaviest_edges(graph: nx.DiGraph, limit: Optional[int] = None) -> list[WeightedEdge]:
    """Return edges sorted by descending weight, ties broken by caller and callee name."""

    edges = [WeightedEdge(caller, callee, _weight(data)) for caller, callee, data in graph.edges(data=True)]
    edges.sort(key=lambda edge: (-edge.weight, edge.caller, edge.callee))
    if limit is not None:
        edges = edges[:limit]
    return edges


def callers_of(graph: nx.DiGraph, node: NodeId) -> list[tuple[NodeId, int]]:
    if node not in graph:
        raise KeyError(f"Unknown span: {node}")
    return sorted(
        ((caller, _weight(graph.edges[caller, node])) for caller in graph.predecessors(node)),
        key=lambda item: (-item[1], item[0]),
    )


def callees_of(graph: nx.DiGraph, node: NodeId) -> list[tuple[NodeId, int]]:
    if node not in graph:
        raise KeyError(f"Unknown span: {node}")
    return sorted(
        ((callee, _weight(graph.edges[node, callee])) for callee in graph.successors(node)),
        key=lambda item: (-item[1], item[0]),
    )


__all__ = [
    "GraphSummary",
    "WeightedEdge",
    "callees_of",
    "callers_of",
    "heaviest_edges",
    "summarize",
]
