"""CLI interface for flowrag.

Typer-based command-line host with Rich output formatting. Pipelines are
read from a TOML definition (see :func:`flowrag.graph.load_graph`) into
an in-memory graph and run by a :class:`~flowrag.runtime.PipelineRuntime`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from flowrag import __version__
from flowrag.bus import Topic
from flowrag.config import default_config, load_config, save_config
from flowrag.exceptions import FlowragError, GraphError
from flowrag.graph import load_graph
from flowrag.runtime import PipelineRuntime
from flowrag.stages import Queryable

if TYPE_CHECKING:
    from flowrag.bus import Signal
    from flowrag.config import FlowragConfig
    from flowrag.graph import GraphStore
    from flowrag.types import ConversationTurn

__all__ = ["app"]

DEFAULT_CONFIG_PATH = Path("flowrag.toml")

app = typer.Typer(
    name="flowrag",
    help="flowrag — run retrieval-augmented generation pipelines built from stage graphs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

_STATUS_STYLES = {
    "succeeded": "green",
    "failed": "red",
    "waiting": "yellow",
    "cancelled": "yellow",
    "running": "cyan",
}


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(path: Path | None) -> FlowragConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _root_stages(graph: GraphStore) -> list[str]:
    """Stages with no inbound edge: where a full run starts."""
    targets = {e.target for e in graph.list_edges()}
    return [n.id for n in graph.list_nodes() if n.id not in targets]


def _status_table(graph: GraphStore) -> Table:
    table = Table(title="Stages", padding=(0, 2))
    table.add_column("stage", style="bold")
    table.add_column("kind", style="dim")
    table.add_column("status")
    table.add_column("detail", overflow="fold")
    for node in graph.list_nodes():
        status = str(node.data.get("status", "idle"))
        style = _STATUS_STYLES.get(status, "dim")
        detail = str(node.data.get("error") or "")
        if not detail:
            counts = [
                f"{key.split('_')[0]}={node.data[key]}"
                for key in ("file_count", "chunk_count", "corpus_chunks")
                if key in node.data
            ]
            detail = ", ".join(counts)
        table.add_row(node.id, node.kind, f"[{style}]{status}[/{style}]", detail)
    return table


async def _run_pipeline(runtime: PipelineRuntime, stages: list[str]) -> None:
    def report(signal: Signal) -> None:
        console.print(f"  [green]✓[/green] {signal.target_id}")

    runtime.bus.subscribe(Topic.RUN_COMPLETED, report)
    for stage_id in stages:
        await runtime.run(stage_id)
    await runtime.wait_idle()


@app.command()
def version() -> None:
    """Show flowrag version."""
    console.print(f"flowrag {__version__}")


@app.command(name="init-config")
def init_config(
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Where to write the config file"),
    ] = DEFAULT_CONFIG_PATH,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing file"),
    ] = False,
) -> None:
    """Write a config file with every default value."""
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(code=1)
    try:
        save_config(default_config(), path)
    except FlowragError as e:
        console.print(f"[red]Failed to write config:[/red] {e}")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Wrote default config[/green] to {path}")


@app.command()
def run(
    pipeline: Annotated[Path, typer.Argument(help="Pipeline definition (TOML)")],
    stage: Annotated[
        list[str] | None,
        typer.Option("--stage", "-s", help="Stage(s) to start from (default: all root stages)"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file (default: ./flowrag.toml)"),
    ] = None,
) -> None:
    """Run a pipeline and report the status of every stage."""
    try:
        config = _load_config(config_path)
        graph = load_graph(pipeline)
    except FlowragError as e:
        console.print(f"[red]Failed to load pipeline:[/red] {e}")
        raise typer.Exit(code=1) from e

    start = stage or _root_stages(graph)
    if not start:
        console.print("[yellow]Pipeline has no stage to start from.[/yellow]")
        raise typer.Exit(code=1)

    async def go() -> None:
        async with PipelineRuntime(graph, config) as runtime:
            await _run_pipeline(runtime, start)

    console.print(f"Running [bold]{pipeline.name}[/bold] from {', '.join(start)} ...")
    try:
        asyncio.run(go())
    except GraphError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(_status_table(graph))
    if any(n.data.get("status") == "failed" for n in graph.list_nodes()):
        raise typer.Exit(code=1)


@app.command()
def ask(
    pipeline: Annotated[Path, typer.Argument(help="Pipeline definition (TOML)")],
    query: Annotated[str, typer.Argument(help="Question to ask")],
    chat_stage: Annotated[
        str | None,
        typer.Option("--chat-stage", "-s", help="Chat stage id (default: the only chat stage)"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file (default: ./flowrag.toml)"),
    ] = None,
) -> None:
    """Run a pipeline, then ask its chat stage a question."""
    try:
        config = _load_config(config_path)
        graph = load_graph(pipeline)
    except FlowragError as e:
        console.print(f"[red]Failed to load pipeline:[/red] {e}")
        raise typer.Exit(code=1) from e

    if chat_stage is None:
        chats = [n.id for n in graph.list_nodes() if n.kind == "chat"]
        if len(chats) != 1:
            console.print(
                f"[yellow]Pipeline has {len(chats)} chat stages.[/yellow] "
                "Pick one with --chat-stage."
            )
            raise typer.Exit(code=1)
        chat_stage = chats[0]

    async def go() -> ConversationTurn:
        async with PipelineRuntime(graph, config) as runtime:
            target = runtime.stage(chat_stage)
            if not isinstance(target, Queryable):
                raise GraphError(f"Stage {chat_stage!r} cannot answer questions")
            await _run_pipeline(runtime, _root_stages(graph))
            return await target.ask(query)

    try:
        turn = asyncio.run(go())
    except FlowragError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    if turn.is_error:
        console.print(f"[red]{turn.content}[/red]")
        raise typer.Exit(code=1)

    console.print()
    console.print(turn.content)
    if turn.relevant_chunks:
        console.print("\n[dim]Sources:[/dim]")
        for result in turn.relevant_chunks:
            console.print(f"  [dim]{result.source_file} ({result.similarity:.2f})[/dim]")
