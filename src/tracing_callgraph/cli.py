"""Command line entry points for the project."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from tracing_callgraph import __version__
from tracing_callgraph.analysis.graph_queries import callees_of, callers_of, heaviest_edges, summarize
from tracing_callgraph.errors import CallGraphError
from tracing_callgraph.instrument import Dispatcher
from tracing_callgraph.io.dot import DotConfig, read_dot
from tracing_callgraph.layer import GraphLayer

app = typer.Typer(help="Record and inspect call graphs built from span-enter events.")


def run_demo(layer: GraphLayer) -> None:
    """Drive ``layer`` with two callers that both enter the same inner span."""

    dispatcher = Dispatcher(layer)

    @dispatcher.instrument(name="inner")
    def inner() -> None:
        pass

    @dispatcher.instrument(name="outer_a")
    def outer_a() -> None:
        inner()

    @dispatcher.instrument(name="outer_b")
    def outer_b() -> None:
        inner()

    outer_a()
    outer_b()


def _load_graph(path: Path):
    path = path.expanduser()
    if not path.exists():
        raise typer.BadParameter(f"Dot file not found: {path}")
    try:
        return read_dot(path)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.callback(invoke_without_command=True)
def main(
    display_version: bool = typer.Option(False, "--version", "-V", help="Show version and exit."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)."),
) -> None:
    """Print the package version when requested and configure logging."""

    if display_version:
        typer.echo(__version__)
        raise typer.Exit()
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}", param_hint="--log-level")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@app.command("demo")
def demo(
    output: Path = typer.Option(Path("output.dot"), "--output", "-o", help="Destination dot file."),
    top_node: Optional[str] = typer.Option(None, help="Name of a synthetic root for parentless spans."),
    graph_name: str = typer.Option("callgraph", help="Name of the emitted digraph."),
    edge_labels: bool = typer.Option(True, help="Label edges with their call counts."),
) -> None:
    """Record the outer_a/outer_b/inner example and write it as a dot file."""

    dot = DotConfig(graph_name=graph_name, edge_labels=edge_labels)
    try:
        layer, guard = GraphLayer.with_file(output.expanduser(), top_node=top_node, dot=dot)
    except CallGraphError as exc:
        raise typer.BadParameter(str(exc)) from exc

    with guard:
        run_demo(layer)

    typer.secho(f"Call graph written to {output}", fg=typer.colors.GREEN)


@app.command("inspect")
def inspect_graph(
    path: Path = typer.Argument(..., help="Dot file written by a flush guard."),
    top: int = typer.Option(10, help="Number of heaviest edges to print."),
    span: Optional[str] = typer.Option(None, help="Also list the callers and callees of this span."),
) -> None:
    """Summarise a recorded call graph."""

    graph = _load_graph(path)
    summary = summarize(graph)

    typer.echo(f"Spans: {summary.node_count}")
    typer.echo(f"Call edges: {summary.edge_count}")
    typer.echo(f"Observed calls: {summary.total_calls}")
    typer.echo(f"Roots: {', '.join(summary.roots) or '-'}")
    if summary.self_loops:
        typer.echo(f"Recursive spans: {', '.join(summary.self_loops)}")

    edges = heaviest_edges(graph, limit=top)
    if edges:
        typer.echo("Heaviest edges:")
        for edge in edges:
            typer.echo(f"  {edge.caller} -> {edge.callee} ({edge.weight})")

    if span is not None:
        try:
            callers = callers_of(graph, span)
            callees = callees_of(graph, span)
        except KeyError as exc:
            raise typer.BadParameter(f"Span not found: {span}") from exc
        typer.echo(f"Callers of {span}:")
        for name, weight in callers:
            typer.echo(f"  {name} ({weight})")
        typer.echo(f"Callees of {span}:")
        for name, weight in callees:
            typer.echo(f"  {name} ({weight})")


@app.command("plot")
def plot(
    path: Path = typer.Argument(..., help="Dot file written by a flush guard."),
    output: Path = typer.Option(Path("callgraph.png"), "--output", "-o", help="Destination image."),
    layout: str = typer.Option("spring", help="Layout algorithm: spring, shell or kamada-kawai."),
    show_weights: bool = typer.Option(True, help="Draw call counts on edges."),
) -> None:
    """Render a recorded call graph to an image."""

    from tracing_callgraph.analysis.visualization import plot_call_graph

    graph = _load_graph(path)
    try:
        written = plot_call_graph(graph, output.expanduser(), layout=layout, show_weights=show_weights)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.secho(f"Plot written to {written}", fg=typer.colors.GREEN)


if __name__ == "__main__":  # pragma: no cover
    app()
