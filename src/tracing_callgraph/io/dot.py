"""Graphviz dot serialization for recorded call graphs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import networkx as nx
import pydot

from tracing_callgraph.graph import WEIGHT

_RESERVED_NODES = {"node", "edge", "graph"}


@dataclass(frozen=True, slots=True)
class DotConfig:
    """Switches controlling how a call graph is rendered to dot."""

    graph_name: str = "callgraph"
    node_labels: bool = True
    edge_labels: bool = True
    rankdir: Optional[str] = None


def to_dot(graph: nx.DiGraph, config: DotConfig | None = None) -> str:
    """
    Render ``graph`` as a dot ``digraph``.

    Nodes get numeric identifiers in insertion order and carry the span name as their label, so
    arbitrary span names never need escaping as dot identifiers. Each edge carries its observation
    count as ``weight`` and, unless disabled, as its label.
    """

    config = config or DotConfig()
    attributes = {}
    if config.rankdir:
        attributes["rankdir"] = config.rankdir
    dot = pydot.Dot(config.graph_name, graph_type="digraph", **attributes)

    index = {}
    for position, name in enumerate(graph.nodes()):
        index[name] = str(position)
        node_attributes = {"label": str(name)} if config.node_labels else {}
        dot.add_node(pydot.Node(index[name], **node_attributes))

    for caller, callee, data in graph.edges(data=True):
        weight = int(data.get(WEIGHT, 1))
        edge_attributes = {"weight": str(weight)}
        if config.edge_labels:
            edge_attributes["label"] = str(weight)
        dot.add_edge(pydot.Edge(index[caller], index[callee], **edge_attributes))

    return dot.to_string()


_ESCAPES = {'"': '"', "\\": "\\", "n": "\n"}
_ESCAPE_PATTERN = re.compile(r'\\(["\\n])')


def _unquote(value: object) -> str:
    text = str(value)
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = _ESCAPE_PATTERN.sub(lambda match: _ESCAPES[match.group(1)], text[1:-1])
    return text


def read_dot(source: Path | str) -> nx.DiGraph:
    """
    Load a dot file (or dot text) written by :func:`to_dot` into a name-keyed ``DiGraph``.

    A file flushed several times holds one ``digraph`` per flush; the last one wins.
    """

    if isinstance(source, Path):
        text = source.read_text(encoding="utf-8")
        origin = str(source)
    else:
        text = source
        origin = "<string>"

    parsed = pydot.graph_from_dot_data(text)
    if not parsed:
        raise ValueError(f"No dot graph found in {origin}")
    dot = parsed[-1]

    graph = nx.DiGraph(name=_unquote(dot.get_name()))
    names: dict[str, str] = {}
    for node in dot.get_nodes():
        node_id = _unquote(node.get_name())
        if node_id in _RESERVED_NODES:
            continue
        label = node.get_attributes().get("label")
        names[node_id] = _unquote(label) if label is not None else node_id
        graph.add_node(names[node_id])

    for edge in dot.get_edges():
        caller = _unquote(edge.get_source())
        callee = _unquote(edge.get_destination())
        attributes = edge.get_attributes()
        raw_weight = attributes.get(WEIGHT, attributes.get("label", 1))
        graph.add_edge(
            names.get(caller, caller),
            names.get(callee, callee),
            **{WEIGHT: int(_unquote(raw_weight))},
        )

    return graph


__all__ = ["DotConfig", "read_dot", "to_dot"]
