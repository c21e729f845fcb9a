"""CLI command: tunnelsync run PROFILE — run a tunnel session."""

from __future__ import annotations

import signal
import sys
import threading

import click
from rich.console import Console

from tunnelsync.cli.plan import resolve_profile
from tunnelsync.config import TunnelSyncConfig
from tunnelsync.engine.file import FileMeshEngine
from tunnelsync.errors import TunnelSyncError
from tunnelsync.logs import setup_logging
from tunnelsync.notify import ErrorGateway
from tunnelsync.platform.linux import LinuxBackend
from tunnelsync.tunnel.options import load_options
from tunnelsync.tunnel.provider import TunnelProvider

console = Console(stderr=True)


@click.command()
@click.argument("profile")
@click.option(
    "--facts",
    type=click.Path(dir_okay=False),
    required=True,
    help="Running info JSON file maintained by the routing engine.",
)
@click.option("--ifname", default="tunnelsync0", help="TUN interface name.")
@click.option("--no-server", is_flag=True, help="Do not start the control API.")
@click.pass_context
def run(ctx: click.Context, profile: str, facts: str, ifname: str, no_server: bool) -> None:
    """Run a tunnel and keep its network settings in sync with the mesh."""
    config = TunnelSyncConfig.load()
    options = load_options(resolve_profile(profile))
    setup_logging(
        verbose=ctx.obj.get("verbose", False),
        log_file=config.log_file,
        file_level=options.log_level.logging_level,
    )

    backend = LinuxBackend(ifname=ifname)
    try:
        backend.open()
    except OSError as exc:
        console.print(f"[red]Cannot open TUN device:[/red] {exc} (run as root?)")
        sys.exit(1)

    stopped = threading.Event()

    def on_cancel(message: str) -> None:
        console.print(f"[red]Tunnel cancelled:[/red] {message}")
        stopped.set()

    provider = TunnelProvider(
        engine=FileMeshEngine(facts, poll_interval=config.facts_poll_interval),
        backend=backend,
        gateway=ErrorGateway(config.shared_dir),
        log_file=config.log_file,
        debounce=config.debounce,
        on_cancel=on_cancel,
    )

    console.print(
        f"[bold]TunnelSync[/bold] running profile [cyan]{options.name}[/cyan] "
        f"on [cyan]{backend.ifname}[/cyan]"
    )
    try:
        result = provider.start(options)
    except TunnelSyncError as exc:
        console.print(f"[red]Start failed:[/red] {exc}")
        provider.stop()
        backend.close()
        sys.exit(1)
    console.print(f"  First apply: {result.outcome.value}")

    if not no_server:
        _start_server(provider, config)

    def _signal_handler(signum: int, frame: object) -> None:
        console.print("\n[dim]Stopping...[/dim]")
        stopped.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)
    console.print("  Press Ctrl+C to stop.\n")

    try:
        stopped.wait()
    except KeyboardInterrupt:
        pass
    finally:
        provider.stop()
        backend.close()


def _start_server(provider: TunnelProvider, config: TunnelSyncConfig) -> None:
    try:
        import uvicorn
    except ImportError:
        console.print(
            "[yellow]Web dependencies not installed, control API disabled.[/yellow]\n"
            "Install with: pip install tunnelsync[web]"
        )
        return

    from tunnelsync.web.app import create_app

    server_config = uvicorn.Config(
        create_app(provider, config),
        host=config.control_host,
        port=config.control_port,
        log_level="warning",
    )
    server = uvicorn.Server(server_config)
    threading.Thread(target=server.run, name="tunnelsync-control", daemon=True).start()
    console.print(
        f"  Control API on [cyan]http://{config.control_host}:{config.control_port}[/cyan]"
    )
