"""CLI entry point for the storefront client.

This module is the composition root of the application.  It is the only
place that wires concrete implementations (file-backed credential store,
the requests-based executor) together.  All other layers depend on the
abstractions they are handed.
"""

import json
import logging
import sys
from datetime import datetime
from enum import Enum

# Ensure UTF-8 output on Windows where stdout may default to cp1252.
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
if hasattr(sys.stderr, "reconfigure"):
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from storefront.client.authenticated import AuthenticatedClient
from storefront.config import load_settings
from storefront.core.exceptions import (
    ApiError,
    ConfigurationError,
    SessionExpiredError,
    StorageError,
)
from storefront.core.models import SessionState
from storefront.core.outcomes import Success
from storefront.services.account_service import AccountService

app = typer.Typer()
auth_app = typer.Typer(help="Manage the storefront session.")

app.add_typer(auth_app, name="auth")

console = Console(legacy_windows=False)
err_console = Console(stderr=True, legacy_windows=False)


# ---------------------------------------------------------------------------
# Output format
# ---------------------------------------------------------------------------


class OutputFormat(str, Enum):
    """Supported output formats for the request command."""

    table = "table"
    json = "json"


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _on_forced_logout() -> None:
    err_console.print(
        "[red]Your session has expired.[/red] "
        "Run [bold]storefront auth login[/bold] to sign in again."
    )


def _get_service() -> AccountService:
    """Build an AccountService backed by the file credential store.

    Returns:
        A :class:`~storefront.services.account_service.AccountService`.
    """
    try:
        settings = load_settings()
    except ConfigurationError as e:
        err_console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(2)
    client = AuthenticatedClient.from_settings(settings)
    client.events.subscribe(_on_forced_logout)
    return AccountService(client)


def _fmt_expiry(expires_at: float | None) -> str:
    """Format an expiry timestamp, or ``"-"`` when unknown."""
    if expires_at is None:
        return "-"
    return datetime.fromtimestamp(expires_at).strftime("%Y-%m-%d %H:%M:%S")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log request and refresh activity."
    ),
):
    """Storefront API client."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )
        logging.getLogger("urllib3").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# auth commands
# ---------------------------------------------------------------------------


@auth_app.command()
def login(
    email: str = typer.Option(..., prompt=True, help="Account email."),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Account password."
    ),
):
    """Sign in and store the session credentials locally."""
    service = _get_service()
    try:
        profile = service.login(email, password)
    except ApiError as e:
        console.print(f"[red]Login failed:[/red] {e}")
        raise typer.Exit(1)
    except StorageError as e:
        console.print(f"[red]Could not save the session:[/red] {e}")
        raise typer.Exit(1)
    console.print(
        f"[green]✓ Logged in as[/green] {profile.name or profile.email} "
        f"[dim]({profile.id})[/dim]"
    )


@auth_app.command()
def status():
    """Show the state of the stored session."""
    service = _get_service()
    client = service.client
    pair = client.coordinator.current_pair()
    if pair is None:
        console.print("[yellow]Not logged in.[/yellow]")
        console.print("Run [bold]storefront auth login[/bold] to sign in.")
        raise typer.Exit(1)

    profile = service.current_profile()
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("State", client.session_state.value)
    if profile is not None:
        table.add_row("Customer", profile.name or "-")
        table.add_row("Email", profile.email or "-")
        table.add_row("Id", profile.id)
    expired = pair.is_expired(client.settings.expiry_buffer_seconds)
    state = "[red]expired[/red]" if expired else "[green]valid[/green]"
    table.add_row("Expires", f"{_fmt_expiry(pair.expires_at)} ({state})")
    console.print(table)


@auth_app.command()
def logout():
    """Remove the locally stored session."""
    service = _get_service()
    had_session = service.client.coordinator.current_pair() is not None
    service.logout()
    if had_session:
        console.print("[green]✓ Logged out.[/green]")
    else:
        console.print("[yellow]No saved session found.[/yellow]")


# ---------------------------------------------------------------------------
# request command
# ---------------------------------------------------------------------------


@app.command()
def request(
    method: Method,
    path: str,
    data: str = typer.Option(None, "--data", "-d", help="JSON request body."),
    output: OutputFormat = typer.Option(
        OutputFormat.json, "--output", "-o", help="Output format."
    ),
):
    """Send an authenticated request and print the response body."""
    body = None
    if data is not None:
        try:
            body = json.loads(data)
        except json.JSONDecodeError as e:
            console.print(f"[red]--data is not valid JSON:[/red] {e}")
            raise typer.Exit(2)

    service = _get_service()
    try:
        outcome = service.client.request(method.value, path, body)
    except SessionExpiredError as e:
        # A failed refresh has already been reported by _on_forced_logout.
        if service.client.session_state is not SessionState.EXPIRED:
            err_console.print(f"[red]{e}[/red] Run [bold]storefront auth login[/bold].")
        raise typer.Exit(1)

    if not isinstance(outcome, Success):
        try:
            outcome.unwrap()
        except ApiError as e:
            label = f"HTTP {e.status}" if e.status else "Network error"
            console.print(f"[red]{label}:[/red] {e}")
        raise typer.Exit(1)

    if output == OutputFormat.json or not isinstance(outcome.body, dict):
        print(json.dumps(outcome.body, indent=2))
        return

    table = Table(title=f"{method.value} {path}")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in outcome.body.items():
        rendered = value if isinstance(value, str) else json.dumps(value)
        table.add_row(key, rendered)
    console.print(table)
