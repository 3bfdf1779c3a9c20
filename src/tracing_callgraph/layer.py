"""The call graph layer and the guard that writes its graph out."""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Optional, TextIO, Tuple

import networkx as nx

from tracing_callgraph.config import CallGraphConfig
from tracing_callgraph.errors import CreateFileError, FlushFileError, GuardReleasedError
from tracing_callgraph.graph import WEIGHT, SharedGraph, unwinding
from tracing_callgraph.io.dot import DotConfig, to_dot

LOGGER = logging.getLogger(__name__)


class GraphLayer:
    """
    Records span-enter events as directed, weighted edges in a call graph.

    Each span name becomes one node. Entering span ``B`` while ``A`` is its parent adds the edge
    ``A -> B`` or bumps its ``weight`` by one. Spans without a parent hang off the top node when one
    is enabled and are recorded as bare nodes otherwise.

    To make sure the graph is written when the program exits, use :meth:`flush_on_drop` (or
    :meth:`with_file`) to obtain a :class:`FlushGuard`.
    """

    def __init__(self) -> None:
        self._graph = SharedGraph()
        self._top_node: Optional[str] = None

    @property
    def top_node(self) -> Optional[str]:
        return self._top_node

    def enable_top_node(self, name: str) -> "GraphLayer":
        """Add a top node that acts as the caller of every parentless span."""

        with self._graph.exclusive() as graph:
            if self._top_node == name:
                return self
            self._remove_top_node(graph)
            graph.add_node(name)
            self._top_node = name
        LOGGER.debug("Enabled top node %r", name)
        return self

    def disable_top_node(self) -> "GraphLayer":
        """Remove the top node, and every edge touching it, from the graph."""

        with self._graph.exclusive() as graph:
            self._remove_top_node(graph)
        return self

    def _remove_top_node(self, graph: nx.DiGraph) -> None:
        name = self._top_node
        if name is None:
            return
        self._top_node = None
        if name in graph:
            graph.remove_node(name)
        LOGGER.debug("Disabled top node %r", name)

    def observe(self, span_name: str, parent_name: Optional[str] = None) -> None:
        """Record that ``span_name`` was entered below ``parent_name``."""

        with self._graph.exclusive() as graph:
            graph.add_node(span_name)

            if parent_name is not None:
                caller = parent_name
            elif self._top_node is not None:
                caller = self._top_node
            else:
                return

            if graph.has_edge(caller, span_name):
                graph[caller][span_name][WEIGHT] += 1
            else:
                graph.add_edge(caller, span_name, **{WEIGHT: 1})

    def on_enter(self, span_name: str, parent_name: Optional[str]) -> None:
        self.observe(span_name, parent_name)

    def snapshot(self) -> nx.DiGraph:
        """Return a consistent copy of the current call graph."""

        return self._graph.snapshot()

    def render(self, dot: DotConfig | None = None) -> str:
        with self._graph.exclusive() as graph:
            return to_dot(graph, dot)

    def flush_on_drop(
        self,
        writer: TextIO,
        *,
        dot: DotConfig | None = None,
        close_writer: bool = False,
    ) -> "FlushGuard":
        """
        Return a :class:`FlushGuard` bound to this layer's graph.

        The guard writes the graph to ``writer`` when it is released, or whenever ``flush`` is
        called on it.
        """

        return FlushGuard(self._graph, writer, dot=dot, close_writer=close_writer)

    @classmethod
    def with_file(
        cls,
        path: Path | str,
        *,
        top_node: Optional[str] = None,
        dot: DotConfig | None = None,
    ) -> Tuple["GraphLayer", "FlushGuard"]:
        """Create ``path`` and return a layer plus a guard that writes the dot graph there."""

        path = Path(path)
        try:
            writer = path.open("w", encoding="utf-8")
        except OSError as exc:
            raise CreateFileError(path, exc) from exc

        layer = cls()
        if top_node is not None:
            layer.enable_top_node(top_node)
        guard = layer.flush_on_drop(writer, dot=dot, close_writer=True)
        LOGGER.debug("Recording call graph to %s", path)
        return layer, guard

    @classmethod
    def from_config(cls, config: CallGraphConfig) -> Tuple["GraphLayer", "FlushGuard"]:
        return cls.with_file(config.output, top_node=config.top_node, dot=config.dot)


class GuardState(enum.Enum):
    BOUND = "bound"
    RELEASED = "released"


class FlushGuard:
    """
    Writes a layer's call graph to a writer when released.

    Use it as a context manager, call :meth:`close` explicitly, or let it be garbage collected.
    Errors from an explicit :meth:`flush` or :meth:`close` are raised; errors from the automatic
    release are logged. A guard can be flushed any number of times but released only once.

    A guard collected by the garbage collector may outlive the failure that poisoned its graph
    (a traceback keeps the frame holding it alive until the exception is handled), so collection
    never raises :class:`PoisonedGraphError`: it logs the poisoned state and skips the write.
    """

    def __init__(
        self,
        graph: SharedGraph,
        writer: TextIO,
        *,
        dot: DotConfig | None = None,
        close_writer: bool = False,
    ) -> None:
        self._graph = graph
        self._writer = writer
        self._dot = dot or DotConfig()
        self._close_writer = close_writer
        self._state = GuardState.BOUND

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def released(self) -> bool:
        return self._state is GuardState.RELEASED

    def flush(self) -> None:
        """Write the current graph to the writer and flush it."""

        self._ensure_bound()
        self._write_graph(during_unwind=unwinding())

    def close(self) -> None:
        """Flush one last time and release the guard."""

        self._ensure_bound()
        try:
            self._write_graph(during_unwind=unwinding())
        finally:
            self._release()

    def _ensure_bound(self) -> None:
        if self._state is GuardState.RELEASED:
            raise GuardReleasedError("flush guard has already been released")

    def _write_graph(self, *, during_unwind: bool) -> None:
        with self._graph.exclusive(during_unwind=during_unwind) as graph:
            if graph is None:
                return
            text = to_dot(graph, self._dot)
            node_count = graph.number_of_nodes()
            edge_count = graph.number_of_edges()

        try:
            self._writer.write(text + "\n")
            self._writer.flush()
        except (OSError, ValueError) as exc:
            raise FlushFileError(exc) from exc
        LOGGER.debug("Flushed call graph (%d nodes, %d edges)", node_count, edge_count)

    def _release(self, *, report_errors: bool = False) -> None:
        self._state = GuardState.RELEASED
        if not self._close_writer:
            return
        try:
            self._writer.close()
        except OSError as exc:
            error = FlushFileError(exc)
            if not report_errors:
                raise error from exc
            error.report()

    def _release_implicitly(self, *, during_unwind: bool) -> None:
        if self._state is GuardState.RELEASED:
            return
        try:
            self._write_graph(during_unwind=during_unwind)
        except FlushFileError as exc:
            exc.report()
        finally:
            self._release(report_errors=True)

    def __enter__(self) -> "FlushGuard":
        self._ensure_bound()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._release_implicitly(during_unwind=exc_type is not None)

    def __del__(self) -> None:
        if getattr(self, "_state", None) is not GuardState.BOUND:
            return
        if self._graph.poisoned:
            LOGGER.error("Discarding poisoned call graph instead of flushing it on collection")
            self._release(report_errors=True)
            return
        self._release_implicitly(during_unwind=unwinding())


__all__ = ["FlushGuard", "GraphLayer", "GuardState"]
