"""CLI command: tunnelsync last-error — show errors reported by the tunnel."""

from __future__ import annotations

import threading

import click
from rich.console import Console

from tunnelsync.config import TunnelSyncConfig
from tunnelsync.notify import ERROR_NOTIFICATION, NotificationObserver, read_last_error

console = Console()


@click.command("last-error")
@click.option("--watch", is_flag=True, help="Keep printing errors as they are reported.")
def last_error(watch: bool) -> None:
    """Print the last error the tunnel reported to the host."""
    config = TunnelSyncConfig.load()
    shared_dir = config.shared_dir

    message = read_last_error(shared_dir)
    if message:
        console.print(f"[red]Last error:[/red] {message}")
    else:
        console.print("[dim]No error recorded[/dim]")

    if not watch:
        return

    def on_error() -> None:
        console.print(f"[red]Tunnel error:[/red] {read_last_error(shared_dir)}")

    observer = NotificationObserver(shared_dir, ERROR_NOTIFICATION, on_error)
    console.print("  Watching for errors. Press Ctrl+C to stop.\n")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        observer.close()
