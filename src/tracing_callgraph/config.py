"""Configuration primitives for the project."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from tracing_callgraph.io.dot import DotConfig

ENV_OUTPUT = "TRACING_CALLGRAPH_OUTPUT"
ENV_TOP_NODE = "TRACING_CALLGRAPH_TOP_NODE"
ENV_GRAPH_NAME = "TRACING_CALLGRAPH_GRAPH_NAME"
ENV_EDGE_LABELS = "TRACING_CALLGRAPH_EDGE_LABELS"

DEFAULT_OUTPUT = Path("output.dot")

_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class CallGraphConfig:
    """Settings for a file-backed call graph recording."""

    output: Path = DEFAULT_OUTPUT
    top_node: Optional[str] = None
    dot: DotConfig = field(default_factory=DotConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CallGraphConfig":
        """Build a config from ``TRACING_CALLGRAPH_*`` environment variables."""

        environ = os.environ if environ is None else environ
        output = Path(environ.get(ENV_OUTPUT) or DEFAULT_OUTPUT).expanduser()
        top_node = environ.get(ENV_TOP_NODE) or None
        defaults = DotConfig()
        dot = DotConfig(
            graph_name=environ.get(ENV_GRAPH_NAME) or defaults.graph_name,
            node_labels=defaults.node_labels,
            edge_labels=environ.get(ENV_EDGE_LABELS, "1").strip().lower() not in _FALSE_VALUES,
            rankdir=defaults.rankdir,
        )
        return cls(output=output, top_node=top_node, dot=dot)
