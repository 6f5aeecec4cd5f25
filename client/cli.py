#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table
from websockets.exceptions import WebSocketException

from hyperate.events import ClipCreated, HeartbeatReceived, SessionEvent
from hyperate.session import HypeRateSession
from shared.config import ConfigError, load_settings
from shared.log import configure_root_logging, get_logger
from shared.utils import extract_device_id, is_valid_device_id

app = typer.Typer(help="HypeRate channel client CLI")
console = Console()
logger = get_logger(__name__)


def _resolve_device(raw: str) -> str:
    """Turn a device ID or share link into a validated device ID, or exit."""
    device_id = extract_device_id(raw)
    if device_id is None or not is_valid_device_id(device_id):
        console.print(f"[red]Not a valid device ID:[/] {raw}")
        raise typer.Exit(code=2)
    return device_id


@app.command()
def watch(
    devices: List[str] = typer.Argument(..., help="Device IDs or share links to follow"),
    token: Optional[str] = typer.Option(None, help="API token (overrides config and HYPERATE_API_TOKEN)"),
    clips: bool = typer.Option(False, "--clips/--no-clips", help="Also follow clip creation"),
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
    duration: Optional[float] = typer.Option(None, help="Stop after this many seconds"),
):
    """Connect, join the devices' channels and print what arrives until interrupted."""
    try:
        settings = load_settings(config)
    except ConfigError as e:
        console.print(f"[red]Config error[/]: {e}")
        raise typer.Exit(code=1)
    if token:
        settings = replace(settings, api_token=token.strip())
    if not settings.api_token:
        console.print("[red]No API token.[/] Pass --token or set HYPERATE_API_TOKEN")
        raise typer.Exit(code=1)

    device_ids = [_resolve_device(d) for d in devices]
    configure_root_logging(settings.log_level)

    last_bpm: Dict[str, int] = {}
    last_clip: Dict[str, str] = {}

    def on_heartbeat(event: HeartbeatReceived) -> None:
        last_bpm[event.device] = event.heartbeat
        console.print(f"[bold red]♥[/] {event.device}: {event.heartbeat} bpm")

    def on_clip(event: ClipCreated) -> None:
        last_clip[event.device] = event.twitch_slug
        console.print(f"[bold magenta]Clip[/] from {event.device}: {event.twitch_slug}")

    async def main_loop() -> None:
        session = HypeRateSession.from_settings(settings)
        session.on(SessionEvent.CONNECTED, lambda: console.print("[bold green]Connected[/]"))
        session.on(SessionEvent.DISCONNECTED, lambda: console.print("[yellow]Disconnected[/]"))
        session.on(SessionEvent.CHANNEL_JOINED, lambda name: console.print(f"[dim]joined {name}[/]"))
        session.on(SessionEvent.CHANNEL_LEFT, lambda name: console.print(f"[dim]left {name}[/]"))
        session.on(SessionEvent.HEARTBEAT_RECEIVED, on_heartbeat)
        session.on(SessionEvent.CLIP_CREATED, on_clip)

        async with session:
            await session.connect()
            for device_id in device_ids:
                await session.join_heartbeat_channel(device_id)
                if clips:
                    await session.join_clips_channel(device_id)
            if duration is not None:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        pass
    except (OSError, WebSocketException) as e:
        console.print(f"[red]Connection failed[/]: {e}")
        raise typer.Exit(code=1)
    finally:
        _print_summary(device_ids, last_bpm, last_clip)


def _print_summary(device_ids: List[str], last_bpm: Dict[str, int], last_clip: Dict[str, str]) -> None:
    table = Table(title="Last readings")
    table.add_column("Device")
    table.add_column("BPM", justify="right")
    table.add_column("Last clip")
    for device_id in device_ids:
        bpm = last_bpm.get(device_id)
        table.add_row(device_id, "-" if bpm is None else str(bpm), last_clip.get(device_id, "-"))
    console.print(table)


@app.command()
def device(value: str = typer.Argument(..., help="Device ID or share link")):
    """Extract and validate a device ID."""
    device_id = extract_device_id(value)
    if device_id is None:
        console.print(f"[red]No device ID found in[/] {value}")
        raise typer.Exit(code=1)
    if not is_valid_device_id(device_id):
        console.print(f"[red]Invalid device ID[/] {device_id}")
        raise typer.Exit(code=1)
    console.print(device_id)


@app.command("channel-type")
def channel_type(name: str = typer.Argument(..., help="Channel name, e.g. hr:abc123")):
    """Print the type of a channel name."""
    console.print(HypeRateSession.determine_channel_type(name).value)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
