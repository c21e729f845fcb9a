"""CLI commands: tunnelsync plan / init — build settings from a profile."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from tunnelsync.config import TunnelSyncConfig
from tunnelsync.errors import NotReady
from tunnelsync.tunnel.builder import build_settings
from tunnelsync.tunnel.facts import parse_running_info
from tunnelsync.tunnel.models import DesiredSettings, TunnelOptions
from tunnelsync.tunnel.options import dump_options, load_options

console = Console()


def resolve_profile(profile: str) -> Path:
    """Accept a profile path or the name of a profile in the config dir."""
    path = Path(profile)
    if path.is_file():
        return path
    named = TunnelSyncConfig.load().profile_path(profile)
    if named.is_file():
        return named
    raise click.BadParameter(f"No profile file or named profile '{profile}'")


@click.command()
@click.argument("profile")
@click.option(
    "--facts",
    type=click.Path(exists=True, dir_okay=False),
    help="Running info JSON reported by the routing engine.",
)
def plan(profile: str, facts: str | None) -> None:
    """Show the tunnel settings a profile would install (dry run)."""
    options = load_options(resolve_profile(profile))
    info = None
    if facts:
        info = parse_running_info(Path(facts).read_text(encoding="utf-8"))

    try:
        settings = build_settings(info, options)
    except NotReady as exc:
        console.print(f"[yellow]Not ready:[/yellow] {exc}")
        sys.exit(2)

    print_settings(settings, title=f"Profile [cyan]{options.name}[/cyan]")


def print_settings(settings: DesiredSettings, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()

    table.add_row("IPv4", f"{settings.ipv4.address} / {settings.ipv4.subnet_mask}")
    if settings.ipv6 is not None:
        table.add_row("IPv6", f"{settings.ipv6.address}/{settings.ipv6.prefix_length}")
    routes = settings.ipv4.included_routes
    table.add_row(
        "Routes",
        "\n".join(f"{r.destination} / {r.subnet_mask}" for r in routes) or "[dim]none[/dim]",
    )
    if settings.dns is not None:
        table.add_row("DNS servers", ", ".join(settings.dns.servers))
        if settings.dns.match_domains is not None:
            table.add_row(
                "Match domains",
                ", ".join(d or "<all>" for d in settings.dns.match_domains),
            )
        if settings.dns.search_domains is not None:
            table.add_row("Search domains", ", ".join(settings.dns.search_domains))
    else:
        table.add_row("DNS", "[dim]system default[/dim]")
    table.add_row("MTU", str(settings.mtu))
    console.print(table)


@click.command()
@click.argument("name")
@click.option("--config-file", type=click.Path(exists=True, dir_okay=False), required=True,
              help="Routing engine config to embed in the profile.")
@click.option("--ipv4", default=None, help="Static IPv4 address/prefix.")
@click.option("--ipv6", default=None, help="Static IPv6 address/prefix.")
@click.option("--route", "routes", multiple=True, help="Manual route (repeatable).")
@click.option("--dns", "dns", multiple=True, help="Override DNS server (repeatable).")
@click.option("--magic-dns", is_flag=True, help="Enable the internal DNS resolver.")
@click.option("--mtu", type=int, default=None, help="MTU override.")
@click.option("--force", is_flag=True, help="Overwrite an existing profile.")
def init(
    name: str,
    config_file: str,
    ipv4: str | None,
    ipv6: str | None,
    routes: tuple[str, ...],
    dns: tuple[str, ...],
    magic_dns: bool,
    mtu: int | None,
    force: bool,
) -> None:
    """Create a named profile in the config directory."""
    path = TunnelSyncConfig.load().profile_path(name)
    if path.exists() and not force:
        console.print(f"[red]Profile already exists:[/red] {path}")
        sys.exit(1)

    options = TunnelOptions(
        name=name,
        config=Path(config_file).read_text(encoding="utf-8"),
        ipv4=ipv4,
        ipv6=ipv6,
        mtu=mtu,
        routes=routes,
        magic_dns=magic_dns,
        dns=dns,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_options(options), encoding="utf-8")
    console.print(f"Profile written to [cyan]{path}[/cyan]")
