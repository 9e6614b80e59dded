"""CLI commands for authentication management."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from clinic_api.client import ApiClient
from clinic_api.commands.common import run, session_ended
from clinic_api.config import get_config
from clinic_api.credentials import store_from_config
from clinic_api.models.auth import RegisterRequest, UserRole
from clinic_api.services.auth import AuthService
from clinic_api.utils.errors import handle_error
from clinic_api.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="auth", help="Manage the login session.")


def _build_client(verbose: bool = False) -> tuple[ApiClient, AuthService]:
    client = ApiClient(get_config(), on_session_end=session_ended, verbose=verbose)
    return client, AuthService(client)


@app.command()
def login(
    email: Annotated[str, typer.Option("--email", "-e", help="Account email")],
    password: Annotated[str, typer.Option("--password", "-p", prompt=True, hide_input=True, help="Account password")],
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")] = False,
) -> None:
    """Log in and store the session credentials."""
    client, service = _build_client(verbose)

    try:
        console.print(f"Logging in as [bold]{email}[/bold]...", style="yellow")
        auth = run(client, service.login(email, password))
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)

    result = {
        "status": "authenticated",
        "user": auth.user.email,
        "role": auth.user.normalized_role.value,
        "expires_at": str(auth.tokens.access_token.expires_at),
    }
    print_output(result, output, title="Authentication")


@app.command()
def register(
    email: Annotated[str, typer.Option("--email", "-e", help="Account email")],
    first_name: Annotated[str, typer.Option("--first-name", help="First name")],
    last_name: Annotated[str, typer.Option("--last-name", help="Last name")],
    password: Annotated[str, typer.Option("--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True)],
    role: Annotated[UserRole | None, typer.Option("--role", help="DOCTOR or ML_ENGINEER")] = None,
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Register a new account and store its session credentials."""
    client, service = _build_client()
    data = RegisterRequest(
        email=email, password=password, first_name=first_name, last_name=last_name, role=role
    )

    try:
        auth = run(client, service.register(data))
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)

    result = {
        "status": "registered",
        "user": auth.user.email,
        "name": auth.user.full_name,
        "role": auth.user.normalized_role.value,
    }
    print_output(result, output, title="Registration")


@app.command()
def logout() -> None:
    """Log out and clear the stored credentials."""
    client, service = _build_client()

    try:
        run(client, service.logout())
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)
    console.print("[green]Logged out.[/green]")


@app.command()
def status(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Show the stored credential status."""
    try:
        credential_status = store_from_config(get_config()).status()
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)

    result = {
        "has_access_token": credential_status.has_access_token,
        "has_refresh_token": credential_status.has_refresh_token,
        "is_expired": credential_status.is_expired,
        "expires_at": str(credential_status.expires_at) if credential_status.expires_at else "N/A",
        "seconds_remaining": credential_status.seconds_remaining or 0,
    }
    print_output(result, output, title="Credential Status")


@app.command()
def refresh(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")] = False,
) -> None:
    """Force a refresh of the access token."""
    client, service = _build_client(verbose)

    try:
        console.print("Refreshing credentials...", style="yellow")
        tokens = run(client, service.refresh())
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)

    result = {
        "status": "refreshed",
        "expires_at": str(tokens.access_token.expires_at),
    }
    print_output(result, output, title="Credentials Refreshed")


@app.command()
def me(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")] = False,
) -> None:
    """Show the currently authenticated user."""
    client, service = _build_client(verbose)

    try:
        user = run(client, service.me())
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)

    print_output(
        user,
        output,
        columns=["id", "email", "first_name", "last_name", "role"],
        title="Current User",
    )
