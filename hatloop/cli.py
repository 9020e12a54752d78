"""
HATLOOP CLI — The Interface

  hatloop run --repo <path> --prompt "..."     (run the hat loop)
  hatloop emit <topic> [message] --repo <path> (inject an event)
  hatloop events --repo <path>                 (list recorded events)
  hatloop route <topic> --repo <path>          (which hat would respond?)
  hatloop status --repo <path>                 (sandboxes + hats)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.table import Table

from hatloop.backends import BackendSelector
from hatloop.config_loader import REPO_CONFIG_DIR, HatloopConfig, load_config
from hatloop.errors import HatloopError
from hatloop.events import Event, EventBus, append_jsonl, load_jsonl, parse_payload
from hatloop.hats import HatRegistry
from hatloop.identity import BANNER, __codename__, __tagline__, __version__
from hatloop.loop import LoopEngine
from hatloop.sandbox import AdapterType, SandboxFactory, create_adapter

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".hatloop" / ".env")

app = typer.Typer(
    name="hatloop",
    help=f"{__codename__} — {__tagline__}\nEvent-routed hats for coding agents.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Task prompt"),
    prompt_file: Optional[Path] = typer.Option(None, "--prompt-file", "-f", help="Read the task prompt from a file"),
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations", "-n", help="Override loop.max_iterations"),
    no_sandbox: bool = typer.Option(False, "--no-sandbox", help="Run the agent CLI directly, without a sandbox"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run the hat loop on a task."""
    _print_banner()
    _configure_logging(verbose)

    repo = _resolve_repo(repo)
    config = _load(repo)

    if prompt_file:
        if not prompt_file.exists():
            console.print(f"[red]Prompt file not found: {prompt_file}[/]")
            raise typer.Exit(1)
        prompt = prompt_file.read_text()
    if not prompt or not prompt.strip():
        console.print("[red]Specify --prompt or --prompt-file[/]")
        raise typer.Exit(1)

    registry = HatRegistry()
    registry.register_from_config(config.hats)

    try:
        sandbox = None if no_sandbox else SandboxFactory.create(config.sandbox)
    except HatloopError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    engine = LoopEngine(
        registry=registry,
        backends=BackendSelector(
            config.backend,
            workdir=str(repo),
            on_output=lambda line: console.print(f"[dim]{line.rstrip()}[/]", highlight=False),
        ),
        bus=EventBus(),
        sandbox=sandbox,
        max_iterations=max_iterations or config.loop.max_iterations,
        completion_promise=config.loop.completion_promise,
        start_topic=config.loop.start_topic,
        events_path=_events_path(repo),
    )

    try:
        result = engine.run(prompt)
    except HatloopError as e:
        console.print(f"\n[bold red]Status: failed — {e}[/]")
        raise typer.Exit(1)

    status_color = "green" if result.success else "yellow"
    status = "complete" if result.success else ("aborted" if result.aborted else "incomplete")
    console.print(f"\n[bold {status_color}]Status: {status} after {result.iterations} iteration(s)[/]")


@app.command()
def emit(
    topic: str = typer.Argument(..., help="Event topic, e.g. build.done"),
    message: Optional[str] = typer.Argument(None, help="Event payload"),
    repo: Path = typer.Option(Path("."), "--repo", "-r"),
    hat: Optional[str] = typer.Option(None, "--hat", help="Originating hat id"),
    as_json: bool = typer.Option(False, "--json", help="Parse the message as a JSON payload"),
):
    """Inject an event into a running (or the next) loop."""
    repo = _resolve_repo(repo)
    try:
        event = Event(topic=topic, hat_id=hat, payload=parse_payload(message, as_json))
    except HatloopError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid event: {e}[/]")
        raise typer.Exit(1)

    append_jsonl(_events_path(repo), event)
    console.print(f"[green]✓ Emitted[/] {event.topic}")


@app.command()
def events(
    repo: Path = typer.Option(Path("."), "--repo", "-r"),
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Only show this topic"),
):
    """List recorded events."""
    repo = _resolve_repo(repo)
    recorded = load_jsonl(_events_path(repo))
    if topic:
        recorded = [e for e in recorded if e.topic == topic]

    if not recorded:
        console.print("[dim]No events recorded.[/]")
        return

    table = Table(title="Events", border_style="cyan")
    table.add_column("Time")
    table.add_column("Topic")
    table.add_column("Hat")
    table.add_column("Payload")
    for e in recorded:
        payload = "" if e.payload is None else str(e.payload)
        table.add_row(e.timestamp, e.topic, e.hat_id or "—", payload[:60])
    console.print(table)


@app.command()
def route(
    topic: str = typer.Argument(..., help="Event topic to route"),
    repo: Path = typer.Option(Path("."), "--repo", "-r"),
):
    """Show which hats respond to a topic."""
    repo = _resolve_repo(repo)
    registry = HatRegistry()
    registry.register_from_config(_load(repo).hats)

    try:
        matched = registry.route(topic)
    except HatloopError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    if not matched:
        console.print(f"[yellow]No hat responds to '{topic}'[/]")
        return
    for hat in matched:
        console.print(f"[green]{topic}[/] → {hat.id} ({hat.display_name})")


@app.command()
def status(
    repo: Path = typer.Option(Path("."), "--repo", "-r"),
):
    """Check sandbox availability and the configured hats."""
    _print_banner()
    repo = _resolve_repo(repo)
    config = _load(repo)

    sandbox_table = Table(title="Sandboxes", border_style="cyan")
    sandbox_table.add_column("Type")
    sandbox_table.add_column("Role")
    sandbox_table.add_column("Status")

    for kind in AdapterType:
        role = ""
        if kind.value == config.sandbox.type:
            role = "primary"
        elif kind.value == config.sandbox.fallback:
            role = "fallback"
        available = create_adapter(kind, config.sandbox).is_available()
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Unavailable[/]"
        sandbox_table.add_row(kind.value, role, status_str)

    console.print(sandbox_table)

    _print_hats(config)

    console.print(f"\n[bold]Backend:[/] {config.backend.type}")
    console.print(f"[bold]Max iterations:[/] {config.loop.max_iterations}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve_repo(repo: Path) -> Path:
    repo = repo.resolve()
    if not repo.exists():
        console.print(f"[red]Repository not found: {repo}[/]")
        raise typer.Exit(1)
    return repo


def _load(repo: Path) -> HatloopConfig:
    try:
        return load_config(repo)
    except HatloopError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)


def _events_path(repo: Path) -> Path:
    return repo / REPO_CONFIG_DIR / "events.jsonl"


def _print_hats(config: HatloopConfig) -> None:
    if not config.hats:
        console.print("\n[dim]No hats configured (single-role loop).[/]")
        return

    table = Table(title="Hats", border_style="magenta")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Triggers")
    table.add_column("Publishes")
    for hat_id, hat in config.hats.items():
        table.add_row(hat_id, hat.name or "—", ", ".join(hat.triggers), ", ".join(hat.publishes))
    console.print(table)


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
