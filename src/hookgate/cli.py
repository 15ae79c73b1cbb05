"""Hookgate CLI - Command line interface."""

from __future__ import annotations

import asyncio
import logging
import sys
import time

import click
import structlog
from rich.console import Console

console = Console()

BANNER = """
 _                 _                _
| |__   ___   ___ | | ____ _  __ _| |_ ___
| '_ \\ / _ \\ / _ \\| |/ / _` |/ _` | __/ _ \\
| | | | (_) | (_) |   < (_| | (_| | ||  __/
|_| |_|\\___/ \\___/|_|\\_\\__, |\\__,_|\\__\\___|
                       |___/
        Verified webhooks, signed installs
"""


def _configure_logging(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
    )


@click.group()
def main():
    """Hookgate - webhook verification and install flow gateway."""


@main.command()
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)
@click.option(
    "--members",
    "members_file",
    type=click.Path(exists=True),
    help="YAML or TOML file mapping user ids to organization and role",
)
@click.option("--host", default=None, help="Bind address (default: 0.0.0.0)")
@click.option("--port", "-p", type=int, default=None, help="Bind port (default: 8080)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: info)",
)
def serve(
    config_file: str | None,
    members_file: str | None,
    host: str | None,
    port: int | None,
    verbose: bool,
    log_level: str | None,
):
    """Run the gateway HTTP server.

    Examples:

        HOOKGATE_SIGNING_SECRET=... hookgate serve --port 8080

        hookgate serve --config hookgate.yaml --members members.yaml
    """
    from hookgate.core.config import HookgateConfig, flatten_config, load_config_from_file
    from hookgate.security.oauth.collaborators import InMemoryPermissionStore

    file_config: dict = {}
    if config_file:
        try:
            file_config = flatten_config(load_config_from_file(config_file))
            console.print(f"Loaded config from {config_file}", style="dim")
        except (OSError, ValueError) as e:
            console.print(f"[red]Failed to load config: {e}[/red]")
            sys.exit(1)

    overrides = {
        key: value
        for key, value in {"host": host, "port": port, "log_level": log_level}.items()
        if value is not None
    }
    if verbose:
        overrides["log_level"] = "debug"

    try:
        config = HookgateConfig(**{**file_config, **overrides})
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        sys.exit(1)

    _configure_logging(config.log_level)

    permissions = InMemoryPermissionStore()
    if members_file:
        try:
            members = load_config_from_file(members_file)
            for user_id, entry in members.items():
                permissions.add(str(user_id), str(entry["organization_id"]), entry["role"])
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            console.print(f"[red]Failed to load members: {e}[/red]")
            sys.exit(1)

    console.print(BANNER, style="cyan")
    console.print(f"Listening on {config.host}:{config.port}", style="yellow")
    console.print(f"Signature headers: {config.timestamp_header}, {config.signature_header}", style="dim")
    if config.oauth_enabled and config.trust_session_header:
        console.print(f"Install flow: enabled (client: {config.oauth_client_id})", style="green")
        console.print(
            f"Trusting {config.session_header} as the signed-in user; run behind an authenticating proxy",
            style="bold red",
        )
    elif config.oauth_enabled:
        console.print(
            "Install flow: disabled (no session store; set trust_session_header behind an authenticating proxy)",
            style="yellow",
        )
    else:
        console.print(
            "Install flow: disabled (set oauth_client_id, oauth_redirect_uri and state_secret to enable)",
            style="dim",
        )

    try:
        asyncio.run(run_server(config, permissions))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


async def run_server(config, permissions) -> None:
    """Run the gateway until interrupted."""
    from hookgate.server.gateway import GatewayServer

    server = GatewayServer(config, permissions=permissions)

    try:
        await server.start()
        console.print("Server started, press Ctrl+C to stop", style="green")

        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\nShutting down...", style="yellow")
    finally:
        await server.stop()


@main.command()
@click.argument("body_file", type=click.File("rb"), default="-")
@click.option(
    "--secret",
    envvar="HOOKGATE_SIGNING_SECRET",
    required=True,
    help="Signing secret (default: $HOOKGATE_SIGNING_SECRET)",
)
@click.option("--timestamp", type=int, default=None, help="Unix timestamp (default: now)")
@click.option("--curl", "as_curl", is_flag=True, help="Print as curl -H arguments")
def sign(body_file, secret: str, timestamp: int | None, as_curl: bool):
    """Print signature headers for a request body.

    Reads the body from BODY_FILE, or stdin when omitted. The body is signed
    byte for byte; send it unchanged.

    Examples:

        hookgate sign payload.json

        echo '{"type": "block_actions"}' | hookgate sign --curl
    """
    from hookgate.webhooks.verifier import SignatureVerifier

    body = body_file.read()
    verifier = SignatureVerifier(secret=secret)
    headers = verifier.headers_for(body, timestamp if timestamp is not None else int(time.time()))

    for name, value in headers.items():
        if as_curl:
            click.echo(f"-H '{name}: {value}'")
        else:
            click.echo(f"{name}: {value}")


@main.command()
def version():
    """Show version information."""
    from hookgate import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
