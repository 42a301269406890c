"""CLI commands for wabridge."""

import asyncio
import platform
import signal
from urllib.parse import quote

import httpx
import typer
from rich.console import Console
from rich.table import Table

from wabridge import __version__, __logo__

# Windows needs SelectorEventLoop for aiohttp compatibility
if platform.system() == "Windows":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

app = typer.Typer(
    name="wabridge",
    help=f"{__logo__} wabridge - WhatsApp pairing gateway",
    no_args_is_help=True,
)

console = Console()

STATUS_STYLES = {
    "online": "green",
    "offline": "yellow",
    "pending": "cyan",
    "expired": "red",
}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} wabridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """wabridge - WhatsApp pairing gateway."""
    pass


# ============================================================================
# Setup Commands
# ============================================================================


@app.command()
def onboard(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
):
    """Write a default configuration file."""
    from wabridge.config.loader import get_config_path, save_config
    from wabridge.config.schema import Config

    config_path = get_config_path()
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        console.print("Use --force to overwrite it.")
        raise typer.Exit(1)

    save_config(Config(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")


# ============================================================================
# Gateway
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option("", "--host", help="Host to bind to (default from config)"),
    port: int = typer.Option(0, "--port", "-p", help="Gateway port (default from config)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Start the pairing gateway."""
    from loguru import logger

    from wabridge.config.loader import load_config
    from wabridge.gateway.server import GatewayServer
    from wabridge.utils.logging import setup_logging

    config = load_config()
    if host:
        config.gateway.host = host
    if port:
        config.gateway.port = port

    setup_logging(config.logging.level, config.logging.file or None, verbose=verbose)

    server = GatewayServer.from_config(config)
    console.print(f"{__logo__} Starting gateway on port {config.gateway.port}...")
    if config.pairing.mode == "manual":
        console.print("[dim]Pairing: manual (POST /numbers/{id}/link to confirm)[/dim]")
    else:
        console.print(f"[dim]Pairing: timer ({config.pairing.link_delay_seconds:g}s)[/dim]")

    async def run():
        shutdown_event = asyncio.Event()

        def signal_handler():
            console.print("\n[yellow]Shutting down...[/yellow]")
            shutdown_event.set()

        if platform.system() == "Windows":
            # Windows asyncio doesn't support loop.add_signal_handler
            signal.signal(signal.SIGINT, lambda s, f: signal_handler())
            signal.signal(signal.SIGTERM, lambda s, f: signal_handler())
        else:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, signal_handler)

        try:
            await server.start()
            await shutdown_event.wait()
        except OSError as e:
            logger.error(f"Gateway failed: {e}")
            console.print(f"[red]Could not start gateway: {e}[/red]")
            raise typer.Exit(1)
        finally:
            console.print("[dim]Cleaning up...[/dim]")
            await server.stop()
            console.print("[green]✓[/green] Shutdown complete")

    asyncio.run(run())


# ============================================================================
# Number Commands
# ============================================================================

numbers_app = typer.Typer(help="Manage paired numbers on a running gateway")
app.add_typer(numbers_app, name="numbers")

URL_OPTION_HELP = "Gateway URL (default from config)"


def _base_url(url: str) -> str:
    if url:
        return url.rstrip("/")
    from wabridge.config.loader import load_config
    return load_config().base_url


def _request(method: str, url: str, **kwargs) -> httpx.Response:
    """Call the gateway, exiting with a message on connection errors or non-2xx."""
    try:
        response = httpx.request(method, url, timeout=10.0, **kwargs)
    except httpx.HTTPError as e:
        console.print(f"[red]Failed to reach gateway: {e}[/red]")
        raise typer.Exit(1)

    if response.status_code >= 400:
        try:
            body = response.json()
        except ValueError:
            body = None
        message = body.get("error", response.text) if isinstance(body, dict) else response.text
        console.print(f"[red]Error ({response.status_code}): {message}[/red]")
        raise typer.Exit(1)
    return response


def _number_url(base: str, number: str, suffix: str = "") -> str:
    return f"{base}/numbers/{quote(number, safe='+')}{suffix}"


@numbers_app.command("list")
def numbers_list(
    url: str = typer.Option("", "--url", "-u", help=URL_OPTION_HELP),
):
    """List registered numbers."""
    numbers = _request("GET", f"{_base_url(url)}/numbers").json()

    if not numbers:
        console.print("No numbers registered.")
        return

    table = Table(title="WhatsApp Numbers")
    table.add_column("Number", style="cyan")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Last Paired", style="dim")
    table.add_column("Paired By")

    for n in numbers:
        status = n.get("status", "")
        style = STATUS_STYLES.get(status, "white")
        table.add_row(
            n.get("id", ""),
            n.get("name", ""),
            f"[{style}]{status}[/{style}]",
            n.get("lastPairedAt") or "-",
            n.get("pairedBy") or "-",
        )

    console.print(table)


@numbers_app.command("qr")
def numbers_qr(
    number: str = typer.Argument(..., help="Phone number"),
    url: str = typer.Option("", "--url", "-u", help=URL_OPTION_HELP),
):
    """Show the pairing QR reference for a number."""
    data = _request("GET", _number_url(_base_url(url), number, "/qr")).json()
    console.print(data["qr"])


@numbers_app.command("set-status")
def numbers_set_status(
    number: str = typer.Argument(..., help="Phone number"),
    status: str = typer.Argument(..., help="online, offline, expired or pending"),
    url: str = typer.Option("", "--url", "-u", help=URL_OPTION_HELP),
):
    """Change a number's status."""
    data = _request(
        "PUT",
        _number_url(_base_url(url), number, "/status"),
        json={"status": status},
    ).json()
    console.print(f"[green]✓[/green] {data['message']}")


@numbers_app.command("delete")
def numbers_delete(
    number: str = typer.Argument(..., help="Phone number"),
    url: str = typer.Option("", "--url", "-u", help=URL_OPTION_HELP),
):
    """Delete a number."""
    data = _request("DELETE", _number_url(_base_url(url), number)).json()
    console.print(f"[green]✓[/green] {data['message']}")


@numbers_app.command("link")
def numbers_link(
    number: str = typer.Argument(..., help="Phone number"),
    url: str = typer.Option("", "--url", "-u", help=URL_OPTION_HELP),
):
    """Confirm a pending link (manual pairing mode)."""
    data = _request("POST", _number_url(_base_url(url), number, "/link")).json()
    console.print(f"[green]✓[/green] {data['message']}")
