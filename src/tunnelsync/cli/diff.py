"""CLI command: tunnelsync diff OLD NEW — compare two settings snapshots."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console

from tunnelsync.tunnel.snapshot import SettingsSnapshot, equivalent, needs_interface_rebind

console = Console()


def _load(path: str) -> SettingsSnapshot:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return SettingsSnapshot.from_dict(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise click.BadParameter(f"{path}: {exc}") from exc


@click.command()
@click.argument("old", type=click.Path(exists=True, dir_okay=False))
@click.argument("new", type=click.Path(exists=True, dir_okay=False))
def diff(old: str, new: str) -> None:
    """Compare two snapshots: would the new one be applied, and rebind the tunnel?"""
    before = _load(old)
    after = _load(new)

    if equivalent(before, after):
        console.print("[green]Equivalent[/green] — apply would be skipped")
        return

    console.print("[yellow]Changed[/yellow] — settings would be applied")
    for field in ("ipv4", "ipv6", "dns", "mtu"):
        if getattr(before, field) != getattr(after, field):
            console.print(f"  [dim]changed:[/dim] {field}")

    if needs_interface_rebind(before, after):
        console.print("  [red]Rebind required[/red] (address changed)")
        sys.exit(1)
    console.print("  No rebind needed")
