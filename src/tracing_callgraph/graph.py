"""Shared, lock-guarded storage for the call graph."""

from __future__ import annotations

import enum
import logging
import sys
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import networkx as nx

from tracing_callgraph.errors import PoisonedGraphError

LOGGER = logging.getLogger(__name__)

WEIGHT = "weight"


class AccessState(enum.Enum):
    """Outcome of asking for exclusive access to a :class:`SharedGraph`."""

    HEALTHY = "healthy"
    POISONED_DURING_UNWIND = "poisoned-during-unwind"
    POISONED_FATAL = "poisoned-fatal"


def unwinding() -> bool:
    """Return True while the current thread is handling an exception."""

    return sys.exc_info()[1] is not None


class SharedGraph:
    """
    A ``networkx.DiGraph`` shared between a layer and its flush guards.

    Every read and write goes through :meth:`exclusive`, which holds a single lock for the
    duration of the block. An exception escaping the block marks the graph as poisoned: its
    contents may be half-updated, so later access either becomes a no-op (when the caller is
    itself tearing down after a failure) or raises :class:`PoisonedGraphError`.
    """

    def __init__(self, graph: Optional[nx.DiGraph] = None) -> None:
        self._graph = graph if graph is not None else nx.DiGraph(name="callgraph")
        self._lock = threading.Lock()
        self._poison_cause: Optional[BaseException] = None

    @property
    def poisoned(self) -> bool:
        return self._poison_cause is not None

    def access_state(self, *, during_unwind: bool) -> AccessState:
        if not self.poisoned:
            return AccessState.HEALTHY
        if during_unwind:
            return AccessState.POISONED_DURING_UNWIND
        return AccessState.POISONED_FATAL

    @contextmanager
    def exclusive(self, *, during_unwind: bool = False) -> Iterator[Optional[nx.DiGraph]]:
        """
        Hold the lock and yield the graph.

        Yields ``None`` instead of the graph when the graph is poisoned and ``during_unwind`` is
        set, so teardown code can skip its work without raising a second error.
        """

        with self._lock:
            state = self.access_state(during_unwind=during_unwind)
            if state is AccessState.POISONED_FATAL:
                raise PoisonedGraphError(
                    "call graph lock is poisoned: a previous holder failed while mutating it"
                ) from self._poison_cause
            if state is AccessState.POISONED_DURING_UNWIND:
                LOGGER.debug("Skipping access to poisoned call graph during unwind")
                yield None
                return
            try:
                yield self._graph
            except BaseException as exc:
                self._poison_cause = exc
                raise

    def snapshot(self) -> nx.DiGraph:
        """Return an independent copy of the graph taken under the lock."""

        with self.exclusive() as graph:
            return graph.copy()


__all__ = ["AccessState", "SharedGraph", "WEIGHT", "unwinding"]
