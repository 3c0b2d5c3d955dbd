"""
subtunnel CLI entry point.

Usage:
    subtunnel [OPTIONS] COMMAND [ARGS]...

Commands:
    add      Open a tunnel to a local port
    remove   Close the tunnel to a local port
    start    Start the relay server
    version  Show version information

Options:
    -l, --list         List registered tunnels
    -c, --config_path  Show the path of the tunnel registry file
"""

from typing import Annotated

import typer

from subtunnel.cli.output import (
    console,
    print_error,
    print_plain,
    print_success,
    print_warning,
)
from subtunnel.config import config
from subtunnel.errors import BindError, TunnelError
from subtunnel.models.enums import LogLevel
from subtunnel.registry.store import TunnelRegistry
from subtunnel.utils.logger import configure_logging
from subtunnel.utils.public_ip import get_public_ip

app = typer.Typer(
    name="subtunnel",
    help="Expose local HTTP services under random subpaths of one public port",
    no_args_is_help=True,
    invoke_without_command=True,
    rich_markup_mode="rich",
)

PortArg = Annotated[
    int, typer.Argument(help="Local destination port", min=1, max=65535)
]


def _get_registry() -> TunnelRegistry:
    return TunnelRegistry(config.REGISTRY_FILE)


def _list_tunnels() -> None:
    entries = _get_registry().load()
    if not entries:
        console.print("[dim]No tunnels registered.[/dim]")
        return
    for entry in entries:
        print_plain(f"[{entry.port}] {entry.token}")


# =============================================================================
# Global Options
# =============================================================================


@app.callback()
def main(
    ctx: typer.Context,
    list_: Annotated[
        bool,
        typer.Option("--list", "-l", help="List registered tunnels"),
    ] = False,
    config_path: Annotated[
        bool,
        typer.Option("--config_path", "-c", help="Show the path to the tunnels file"),
    ] = False,
):
    """
    subtunnel: a single-port reverse tunnel relay.

    Each tunnel maps a random 10-letter path token to a local port.
    """
    # Keep CLI output clean; the relay reconfigures logging on start
    configure_logging(LogLevel.WARNING)

    try:
        if list_:
            _list_tunnels()
    except TunnelError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if config_path:
        print_plain(config.get_registry_path())


# =============================================================================
# Tunnel Commands
# =============================================================================


@app.command("add")
def add_tunnel(
    port: PortArg,
    public_port: Annotated[
        int,
        typer.Option("--port", "-p", help="Public relay port used in the URL"),
    ] = config.PORT,
):
    """Open a tunnel to the specified port."""
    try:
        entry = _get_registry().open_tunnel(port)
    except TunnelError as e:
        print_error(str(e))
        raise typer.Exit(1)

    ip = get_public_ip()
    if ip is None:
        print_warning(
            f"Could not determine the public IP, using {config.PUBLIC_IP_FALLBACK}"
        )
        ip = config.PUBLIC_IP_FALLBACK

    print_success(f"http://{ip}:{public_port}/{entry.token}/")


@app.command("remove")
def remove_tunnel(port: PortArg):
    """Close the tunnel to the specified port."""
    try:
        removed = _get_registry().remove(port)
    except TunnelError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if removed:
        print_success(f"Closed tunnel to port {port}")
    else:
        console.print(f"[dim]No tunnel to port {port}.[/dim]")


@app.command("start")
def start_server(
    port: Annotated[
        int,
        typer.Argument(help="Public port to listen on", min=1, max=65535),
    ] = config.PORT,
    bind: Annotated[
        str,
        typer.Option("--bind", "-b", help="Address to bind to"),
    ] = config.BIND_IP,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", help="Logging verbosity"),
    ] = config.LOG_LEVEL,
):
    """Start the tunneling server."""
    from subtunnel.relay.app import run as run_relay

    try:
        # Refuse to relay to ourselves
        entry = _get_registry().find_by_port(port)
    except TunnelError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if entry is not None:
        print_error(
            f"Port {port} is the destination of tunnel '{entry.token}'. "
            f"Remove it first or pick another port."
        )
        raise typer.Exit(1)

    config.PORT = port
    config.BIND_IP = bind
    config.LOG_LEVEL = log_level

    try:
        run_relay(config)
    except BindError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command("version")
def version():
    """Show version information."""
    from subtunnel import __version__

    console.print(f"subtunnel v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
