"""Clinic API CLI: entry point.

Operator CLI for the clinical dashboard backend: manage the login session
and call any endpoint through the authenticated client.
"""

from __future__ import annotations

import logging

import typer

from clinic_api.commands.api_cmd import app as api_app
from clinic_api.commands.auth_cmd import app as auth_app

app = typer.Typer(
    name="clinic-api",
    help="CLI client for the clinical dashboard API with automatic session refresh.",
    no_args_is_help=True,
)

# Register command groups
app.add_typer(auth_app, name="auth")
app.add_typer(api_app, name="api")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Clinic API CLI: log in, inspect the session, call endpoints."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


if __name__ == "__main__":
    app()
