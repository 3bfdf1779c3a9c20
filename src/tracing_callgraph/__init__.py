"""Build weighted call graphs from span-enter events and write them as Graphviz dot files."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tracing-callgraph")
except PackageNotFoundError:  # pragma: no cover - package metadata absent in dev mode
    __version__ = "0.0.0"

from tracing_callgraph.config import CallGraphConfig
from tracing_callgraph.errors import (
    CallGraphError,
    CreateFileError,
    FlushFileError,
    GuardReleasedError,
    PoisonedGraphError,
)
from tracing_callgraph.io.dot import DotConfig
from tracing_callgraph.layer import FlushGuard, GraphLayer

__all__ = [
    "__version__",
    "CallGraphConfig",
    "CallGraphError",
    "CreateFileError",
    "DotConfig",
    "FlushFileError",
    "FlushGuard",
    "GraphLayer",
    "GuardReleasedError",
    "PoisonedGraphError",
]
