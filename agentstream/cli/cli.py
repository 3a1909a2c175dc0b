import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer  # type: ignore
import yaml  # type: ignore
from rich.console import Console
from rich.live import Live
from rich.table import Table

from agentstream.cli.replay import (
    DEFAULT_SESSION,
    load_records,
    render_conversation,
    replay_instant,
    replay_realtime,
)
from agentstream.config import PacingConfig, get_logging_settings
from agentstream.sinks.store import Conversation, MessageStore
from agentstream.streaming.clock import LoopClock, ManualClock
from agentstream.streaming.coordinator import SessionStreamCoordinator
from agentstream.utils.errors import ConfigError, SessionNotFoundError
from agentstream.utils.events import StoreEvent
from agentstream.utils.logs import setup_logger

app = typer.Typer(
    help="agentstream - paced reveal of streamed agent output.\n"
    "Replay recorded event logs through the reveal engine or inspect its configuration."
)
console = Console()
logger = logging.getLogger(__name__)


def _load_pacing(config_path: Optional[Path]) -> PacingConfig:
    try:
        return PacingConfig.load(config_path)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1)


def _init_logging(verbose: bool) -> None:
    settings = get_logging_settings()
    level = logging.DEBUG if verbose else settings["level"]
    setup_logger("agentstream_cli.log", log_level=level, console=settings["console"])


@app.command()
def replay(
    events_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSONL event log"),
    session: Optional[str] = typer.Option(
        None, "--session", "-s", help="Session to display (default: first in the log)"
    ),
    instant: bool = typer.Option(
        False, "--instant", help="Use virtual time instead of sleeping between events"
    ),
    speed: float = typer.Option(1.0, "--speed", help="Real-time playback speed multiplier"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Pacing config file (default: layered resolution)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Replay a recorded event log and render the conversation as it is revealed."""
    _init_logging(verbose)
    pacing = _load_pacing(config_path)
    records = load_records(events_file)
    if not records:
        console.print(f"[yellow]No events found in {events_file}[/yellow]")
        raise typer.Exit(code=1)
    if speed <= 0:
        console.print("[red]--speed must be positive[/red]")
        raise typer.Exit(code=1)

    session_id = session or records[0].session_id or DEFAULT_SESSION
    store = MessageStore()

    if instant:
        clock = ManualClock()
        coordinator = SessionStreamCoordinator(store, clock=clock, config=pacing)
        handled = replay_instant(coordinator, clock, records)
        coordinator.close()
    else:
        handled = asyncio.run(_replay_live(store, pacing, records, session_id, speed))

    try:
        conversation = store.require(session_id)
    except SessionNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    if instant:
        console.print(render_conversation(conversation))
    _print_summary(conversation, handled, len(records))


async def _replay_live(store: MessageStore, pacing: PacingConfig, records, session_id: str, speed: float) -> int:
    coordinator = SessionStreamCoordinator(store, clock=LoopClock(), config=pacing)
    with Live(render_conversation(store.get(session_id)), console=console, refresh_per_second=30) as live:

        def refresh(data) -> None:
            if data and data.get("session_id") == session_id:
                live.update(render_conversation(store.get(session_id)))

        for event in (StoreEvent.MESSAGE_ADDED, StoreEvent.MESSAGE_UPDATED, StoreEvent.LOADING_CHANGED):
            store.event_bus.subscribe(event.value, refresh)
        try:
            return await replay_realtime(coordinator, records, speed=speed)
        finally:
            coordinator.close()


def _print_summary(conversation: Conversation, handled: int, total: int) -> None:
    table = Table(title="Replay summary", show_header=False)
    table.add_row("Session", conversation.id)
    table.add_row("Events handled", f"{handled}/{total}")
    table.add_row("Messages", str(len(conversation.messages)))
    table.add_row("Snapshots", str(len(conversation.snapshots)))
    table.add_row("Approval requests", str(len(conversation.approvals)))
    console.print(table)


@app.command("config")
def show_config(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Pacing config file (default: layered resolution)"
    ),
):
    """Print the effective pacing configuration."""
    pacing = _load_pacing(config_path)
    console.print(yaml.safe_dump({"pacing": pacing.to_dict()}, default_flow_style=None, sort_keys=False))


def main():
    app()


if __name__ == "__main__":
    main()
