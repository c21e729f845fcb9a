"""CLI entry point — Click group with global options."""

from __future__ import annotations

import click

from tunnelsync import __version__
from tunnelsync.logs import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="tunnelsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """TunnelSync — keeps a mesh VPN tunnel's network settings in sync."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose=verbose)


def _register_commands() -> None:
    from tunnelsync.cli.diff import diff  # noqa: F811
    from tunnelsync.cli.last_error import last_error  # noqa: F811
    from tunnelsync.cli.plan import init, plan  # noqa: F811
    from tunnelsync.cli.run import run  # noqa: F811

    main.add_command(plan)
    main.add_command(init)
    main.add_command(diff)
    main.add_command(run)
    main.add_command(last_error)


_register_commands()
