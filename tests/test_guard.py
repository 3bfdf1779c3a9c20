"""Tests for flushing the call graph through a guard."""

from __future__ import annotations

import gc
import io
import logging
import sys
import threading
from pathlib import Path

import pytest

from tracing_callgraph.config import CallGraphConfig
from tracing_callgraph.errors import CreateFileError, FlushFileError, GuardReleasedError, PoisonedGraphError
from tracing_callgraph.io.dot import DotConfig, read_dot
from tracing_callgraph.layer import GraphLayer, GuardState


class BrokenWriter(io.StringIO):
    def write(self, text: str) -> int:
        raise OSError("disk full")


def _example_layer() -> GraphLayer:
    layer = GraphLayer()
    layer.observe("outer_a")
    layer.observe("inner", "outer_a")
    layer.observe("inner", "outer_a")
    return layer


def _poison(layer: GraphLayer) -> None:
    with pytest.raises(TypeError):
        layer.observe({"unhashable": True})  # type: ignore[arg-type]


def test_flush_writes_graph() -> None:
    layer = _example_layer()
    writer = io.StringIO()
    guard = layer.flush_on_drop(writer)

    guard.flush()

    graph = read_dot(writer.getvalue())
    assert set(graph.nodes) == {"outer_a", "inner"}
    assert graph.edges["outer_a", "inner"]["weight"] == 2
    assert guard.state is GuardState.BOUND


def test_flush_twice_writes_identical_output() -> None:
    layer = _example_layer()
    writer = io.StringIO()
    guard = layer.flush_on_drop(writer)

    guard.flush()
    first = writer.getvalue()
    guard.flush()

    assert first
    assert writer.getvalue() == first * 2


def test_flush_sees_later_observations() -> None:
    layer = _example_layer()
    writer = io.StringIO()
    guard = layer.flush_on_drop(writer)
    guard.flush()
    layer.observe("inner", "outer_b")
    guard.flush()

    graph = read_dot(writer.getvalue())
    assert graph.edges["outer_b", "inner"]["weight"] == 1


def test_context_manager_flushes_once_on_exit() -> None:
    layer = _example_layer()
    writer = io.StringIO()

    with layer.flush_on_drop(writer) as guard:
        assert writer.getvalue() == ""

    assert guard.released
    assert writer.getvalue() == layer.render() + "\n"


def test_close_releases_guard() -> None:
    writer = io.StringIO()
    guard = _example_layer().flush_on_drop(writer)

    guard.close()

    assert guard.released
    with pytest.raises(GuardReleasedError):
        guard.flush()
    with pytest.raises(GuardReleasedError):
        guard.close()


def test_garbage_collected_guard_flushes() -> None:
    layer = _example_layer()
    writer = io.StringIO()
    guard = layer.flush_on_drop(writer)

    del guard
    gc.collect()

    assert writer.getvalue() == layer.render() + "\n"


def test_explicit_flush_raises_on_write_failure() -> None:
    guard = _example_layer().flush_on_drop(BrokenWriter())

    with pytest.raises(FlushFileError) as excinfo:
        guard.flush()
    assert isinstance(excinfo.value.__cause__, OSError)
    assert not guard.released


def test_implicit_release_logs_write_failure(caplog: pytest.LogCaptureFixture) -> None:
    guard = _example_layer().flush_on_drop(BrokenWriter())

    with caplog.at_level(logging.ERROR, logger="tracing_callgraph.errors"):
        with guard:
            pass

    assert guard.released
    assert any("disk full" in record.getMessage() for record in caplog.records)


def test_flush_on_poisoned_graph_raises() -> None:
    layer = _example_layer()
    writer = io.StringIO()
    guard = layer.flush_on_drop(writer)
    _poison(layer)

    with pytest.raises(PoisonedGraphError):
        guard.flush()
    with pytest.raises(PoisonedGraphError):
        guard.close()
    assert guard.released
    assert writer.getvalue() == ""


def test_poisoned_graph_is_skipped_while_unwinding() -> None:
    layer = _example_layer()
    writer = io.StringIO()
    _poison(layer)

    with pytest.raises(KeyError):
        with layer.flush_on_drop(writer) as guard:
            raise KeyError("original failure")

    assert guard.released
    assert writer.getvalue() == ""


def test_with_file_writes_on_close(tmp_path: Path) -> None:
    destination = tmp_path / "output.dot"
    layer, guard = GraphLayer.with_file(destination, top_node="root")
    layer.observe("outer_a")
    layer.observe("inner", "outer_a")

    guard.close()

    graph = read_dot(destination)
    assert set(graph.nodes) == {"root", "outer_a", "inner"}
    assert graph.edges["root", "outer_a"]["weight"] == 1
    assert graph.edges["outer_a", "inner"]["weight"] == 1


def test_with_file_truncates_existing_file(tmp_path: Path) -> None:
    destination = tmp_path / "output.dot"
    destination.write_text("stale contents\n", encoding="utf-8")

    layer, guard = GraphLayer.with_file(destination)
    with guard:
        layer.observe("only")

    assert "stale" not in destination.read_text(encoding="utf-8")
    assert list(read_dot(destination).nodes) == ["only"]


def test_with_file_reports_creation_failure(tmp_path: Path) -> None:
    destination = tmp_path / "missing" / "output.dot"

    with pytest.raises(CreateFileError) as excinfo:
        GraphLayer.with_file(destination)
    assert excinfo.value.path == destination
    assert isinstance(excinfo.value.source, OSError)


def test_from_config_uses_dot_settings(tmp_path: Path) -> None:
    config = CallGraphConfig(
        output=tmp_path / "configured.dot",
        top_node="main",
        dot=DotConfig(graph_name="service"),
    )
    layer, guard = GraphLayer.from_config(config)
    with guard:
        layer.observe("handler")

    text = config.output.read_text(encoding="utf-8")
    assert text.startswith("digraph service")
    assert read_dot(config.output).edges["main", "handler"]["weight"] == 1


def test_flush_snapshots_stay_consistent_during_observation() -> None:
    layer = GraphLayer()
    writer = io.StringIO()
    guard = layer.flush_on_drop(writer)
    threads_count, per_thread = 4, 100
    snapshots: list[str] = []
    done = threading.Event()

    def worker(index: int) -> None:
        for call in range(per_thread):
            layer.observe(f"s{index}-{call}", "p")
            layer.observe("hot", "p")

    def flusher() -> None:
        while not done.is_set():
            start = len(writer.getvalue())
            guard.flush()
            snapshots.append(writer.getvalue()[start:])

    flushing = threading.Thread(target=flusher)
    workers = [threading.Thread(target=worker, args=(index,)) for index in range(threads_count)]
    flushing.start()
    for thread in workers:
        thread.start()
    for thread in workers:
        thread.join()
    done.set()
    flushing.join()

    start = len(writer.getvalue())
    guard.close()
    snapshots.append(writer.getvalue()[start:])

    step = max(1, len(snapshots) // 20)
    for text in snapshots[::step] + snapshots[-1:]:
        graph = read_dot(text)
        distinct = [callee for _, callee in graph.out_edges("p") if callee != "hot"] if "p" in graph else []
        hot = graph.edges["p", "hot"]["weight"] if graph.has_edge("p", "hot") else 0
        assert all(graph.edges["p", callee]["weight"] == 1 for callee in distinct)
        assert all(graph.has_edge("p", node) for node in graph.nodes if node != "p")
        assert 0 <= len(distinct) - hot <= threads_count

    final = read_dot(snapshots[-1])
    assert final.edges["p", "hot"]["weight"] == threads_count * per_thread
    assert final.number_of_edges() == threads_count * per_thread + 1


def test_collected_guard_skips_poisoned_graph(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    layer = _example_layer()
    writer = io.StringIO()
    unraisable: list[object] = []
    monkeypatch.setattr(sys, "unraisablehook", unraisable.append)

    def record_then_fail() -> None:
        guard = layer.flush_on_drop(writer)  # noqa: F841
        layer.observe(["unhashable"])  # type: ignore[arg-type]

    with caplog.at_level(logging.ERROR, logger="tracing_callgraph.layer"):
        try:
            record_then_fail()
        except TypeError:
            pass
        gc.collect()

    assert unraisable == []
    assert writer.getvalue() == ""
    assert any("poisoned" in record.getMessage() for record in caplog.records)
