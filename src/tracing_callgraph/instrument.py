"""
Minimal span instrumentation that feeds span-enter events to layers.

Spans are tracked per thread and per asyncio task through a context variable, so nested
``span()`` blocks and ``@instrument``-ed functions report their nearest enclosing span as parent.
"""

from __future__ import annotations

import contextvars
import functools
import inspect
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Protocol, Tuple, TypeVar, runtime_checkable

from tracing_callgraph.errors import PoisonedGraphError

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


@runtime_checkable
class Layer(Protocol):
    """Receiver of span-enter notifications."""

    def on_enter(self, span_name: str, parent_name: Optional[str]) -> None:
        ...


class Dispatcher:
    """Tracks the active span stack and notifies registered layers when a span is entered."""

    def __init__(self, *layers: Layer) -> None:
        self._layers: List[Layer] = list(layers)
        self._layers_lock = threading.Lock()
        self._stack: contextvars.ContextVar[Tuple[str, ...]] = contextvars.ContextVar(
            f"tracing_callgraph_stack_{id(self)}", default=()
        )

    def add_layer(self, layer: Layer) -> None:
        with self._layers_lock:
            self._layers.append(layer)

    def remove_layer(self, layer: Layer) -> None:
        with self._layers_lock:
            self._layers.remove(layer)

    @property
    def layers(self) -> Tuple[Layer, ...]:
        with self._layers_lock:
            return tuple(self._layers)

    def current_span(self) -> Optional[str]:
        stack = self._stack.get()
        return stack[-1] if stack else None

    def _notify(self, span_name: str, parent_name: Optional[str]) -> None:
        for layer in self.layers:
            try:
                layer.on_enter(span_name, parent_name)
            except PoisonedGraphError:
                raise
            except Exception:
                LOGGER.exception("Layer %r failed while recording span %r", layer, span_name)

    @contextmanager
    def span(self, name: str) -> Iterator[str]:
        """Enter the span ``name`` for the duration of the block."""

        parent = self.current_span()
        token = self._stack.set(self._stack.get() + (name,))
        try:
            self._notify(name, parent)
            yield name
        finally:
            self._stack.reset(token)

    def instrument(self, func: Optional[F] = None, *, name: Optional[str] = None):
        """
        Decorate ``func`` so every call runs inside a span.

        The span name defaults to the function's ``__qualname__``. Works with and without
        arguments (``@instrument`` or ``@instrument(name="load")``) and on coroutine functions.
        """

        def decorator(target: F) -> F:
            span_name = name or target.__qualname__

            if inspect.iscoroutinefunction(target):

                @functools.wraps(target)
                async def async_wrapper(*args, **kwargs):
                    with self.span(span_name):
                        return await target(*args, **kwargs)

                return async_wrapper  # type: ignore[return-value]

            @functools.wraps(target)
            def wrapper(*args, **kwargs):
                with self.span(span_name):
                    return target(*args, **kwargs)

            return wrapper  # type: ignore[return-value]

        if func is not None:
            return decorator(func)
        return decorator


_default_dispatcher = Dispatcher()


def get_dispatcher() -> Dispatcher:
    return _default_dispatcher


def set_global_layer(layer: Layer) -> None:
    """Register ``layer`` with the process-wide dispatcher."""

    _default_dispatcher.add_layer(layer)


def span(name: str):
    return _default_dispatcher.span(name)


def instrument(func: Optional[F] = None, *, name: Optional[str] = None):
    return _default_dispatcher.instrument(func, name=name)


def current_span() -> Optional[str]:
    return _default_dispatcher.current_span()


__all__ = [
    "Dispatcher",
    "Layer",
    "current_span",
    "get_dispatcher",
    "instrument",
    "set_global_layer",
    "span",
]
