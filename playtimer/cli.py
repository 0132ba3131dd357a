"""Command line helpers for PlayTimer operators."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .app import open_storage
from .config import PlayTimerConfig
from .loaders import load_config_from_json
from .validators import validate_config

console = Console()


def run_validate() -> None:
    parser = argparse.ArgumentParser(description="PlayTimer configuration validator")
    parser.add_argument("--config", required=True, help="Path to JSON configuration file")
    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    path = Path(args.config)
    if not path.exists():
        console.print(f"[red]Config file {path} does not exist.[/red]")
        sys.exit(1)
    config = load_config_from_json(path)
    issues = validate_config(config)
    if issues:
        console.print("[bold red]Configuration problems:[/bold red]")
        for issue in issues:
            console.print(f"- {issue}")
        sys.exit(1)
    console.print("[bold green]Configuration is valid.[/bold green]")


def run_report() -> None:
    parser = argparse.ArgumentParser(description="Show accumulated playtime per player")
    parser.add_argument("--config", help="Path to JSON configuration file (defaults to env)")
    parser.add_argument("--limit", type=int, default=20, help="Number of players to show")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    config = load_config_from_json(args.config) if args.config else PlayTimerConfig.from_env()
    table = asyncio.run(build_report(config, limit=args.limit))
    console.print(table)


async def build_report(config: PlayTimerConfig, *, limit: int = 20) -> Table:
    storage = await open_storage(config)
    try:
        totals = await storage.play_time_store().load_all()
    finally:
        await storage.close()

    table = Table(title=f"Accumulated playtime ({storage.name} storage)")
    table.add_column("Player UUID")
    table.add_column("Seconds", justify="right")
    table.add_column("Hours", justify="right")
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    for player_id, seconds in ranked[: max(0, limit)]:
        table.add_row(str(player_id), str(seconds), f"{seconds / 3600:.1f}")
    return table
