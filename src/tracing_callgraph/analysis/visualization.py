"""Visualization helpers for recorded call graphs."""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import networkx as nx

from tracing_callgraph.graph import WEIGHT


def _edge_widths(graph: nx.DiGraph, *, min_width: float = 0.5, max_width: float = 6.0) -> list[float]:
    weights = [int(data.get(WEIGHT, 1)) for _, _, data in graph.edges(data=True)]
    if not weights:
        return []
    heaviest = max(weights)
    return [min_width + (max_width - min_width) * weight / heaviest for weight in weights]


def plot_call_graph(
    graph: nx.DiGraph,
    output_path: Path,
    *,
    layout: str = "spring",
    show_weights: bool = True,
    title: str | None = None,
) -> Path:
    """
    Render a call graph to ``output_path`` using matplotlib.

    Edge width scales with the number of observed calls. Weights are drawn as edge labels unless
    ``show_weights`` is disabled.
    """

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if graph.number_of_nodes() == 0:
        raise ValueError("Graph contains no nodes to visualize.")

    if layout == "kamada-kawai":
        positions = nx.kamada_kawai_layout(graph)
    elif layout == "shell":
        positions = nx.shell_layout(graph)
    elif layout == "spring":
        positions = nx.spring_layout(graph, seed=42, iterations=100)
    else:
        raise ValueError(f"Unsupported layout: {layout} (expected spring, shell or kamada-kawai)")

    node_sizes = [300 + 60 * graph.in_degree(node) for node in graph.nodes()]

    plt.figure(figsize=(10, 10))
    nx.draw_networkx_nodes(graph, positions, node_size=node_sizes, node_color="#9ecae1", alpha=0.9)
    nx.draw_networkx_edges(graph, positions, width=_edge_widths(graph), arrows=True, alpha=0.6)
    nx.draw_networkx_labels(graph, positions, font_size=8)

    if show_weights and graph.number_of_edges():
        labels = {(caller, callee): data.get(WEIGHT, 1) for caller, callee, data in graph.edges(data=True)}
        nx.draw_networkx_edge_labels(graph, positions, edge_labels=labels, font_size=7)

    if title is None:
        title = f"{graph.number_of_nodes()} spans, {graph.number_of_edges()} call edges"

    plt.title(title)
    plt.axis("off")
    plt.tight_layout()
    plt.savefig(output_path, dpi=150)
    plt.close()
    return output_path


__all__ = ["plot_call_graph"]
