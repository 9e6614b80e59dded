"""CLI commands for raw authenticated API calls."""

from __future__ import annotations

import json
from typing import Annotated, Any

import typer
from rich.console import Console

from clinic_api.client import ApiClient
from clinic_api.commands.common import run, session_ended
from clinic_api.config import get_config
from clinic_api.utils.errors import handle_error
from clinic_api.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="api", help="Call any backend endpoint with the stored session.")

BodyOption = Annotated[str | None, typer.Option("--body", "-b", help="JSON request body")]
ParamOption = Annotated[list[str] | None, typer.Option("--param", "-q", help="Query parameter as key=value (repeatable)")]
OutputOption = Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show request details")]


def _parse_body(body: str | None) -> Any:
    if body is None:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--body is not valid JSON: {e}")


def _parse_params(params: list[str] | None) -> dict[str, str] | None:
    if not params:
        return None
    parsed: dict[str, str] = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{item}'")
        parsed[key] = value
    return parsed


def _call(
    method: str,
    path: str,
    body: str | None,
    params: list[str] | None,
    output: OutputFormat,
    verbose: bool,
) -> None:
    """Send one request and print the envelope's value and message."""
    payload = _parse_body(body)
    query = _parse_params(params)
    client = ApiClient(get_config(), on_session_end=session_ended, verbose=verbose)

    try:
        envelope = run(client, client.request(method, path, body=payload, params=query))
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)

    if envelope.message:
        console.print(f"[dim]{envelope.message}[/dim]")
    print_output(envelope.value, output, title=f"{method} {path}")


@app.command("get")
def get(path: str, param: ParamOption = None, output: OutputOption = OutputFormat.TABLE, verbose: VerboseOption = False) -> None:
    """GET an endpoint."""
    _call("GET", path, None, param, output, verbose)


@app.command("post")
def post(
    path: str,
    body: BodyOption = None,
    param: ParamOption = None,
    output: OutputOption = OutputFormat.TABLE,
    verbose: VerboseOption = False,
) -> None:
    """POST a JSON body to an endpoint."""
    _call("POST", path, body, param, output, verbose)


@app.command("put")
def put(
    path: str,
    body: BodyOption = None,
    param: ParamOption = None,
    output: OutputOption = OutputFormat.TABLE,
    verbose: VerboseOption = False,
) -> None:
    """PUT a JSON body to an endpoint."""
    _call("PUT", path, body, param, output, verbose)


@app.command("patch")
def patch(
    path: str,
    body: BodyOption = None,
    param: ParamOption = None,
    output: OutputOption = OutputFormat.TABLE,
    verbose: VerboseOption = False,
) -> None:
    """PATCH an endpoint with a JSON body."""
    _call("PATCH", path, body, param, output, verbose)


@app.command("delete")
def delete(path: str, param: ParamOption = None, output: OutputOption = OutputFormat.TABLE, verbose: VerboseOption = False) -> None:
    """DELETE an endpoint."""
    _call("DELETE", path, None, param, output, verbose)


@app.command("list")
def list_items(
    path: str,
    page: Annotated[int | None, typer.Option("--page", help="Page number")] = None,
    page_size: Annotated[int | None, typer.Option("--page-size", help="Items per page")] = None,
    param: ParamOption = None,
    output: OutputOption = OutputFormat.TABLE,
    verbose: VerboseOption = False,
) -> None:
    """GET a paginated list endpoint."""
    query = _parse_params(param) or {}
    if page is not None:
        query["page"] = str(page)
    if page_size is not None:
        query["page_size"] = str(page_size)
    client = ApiClient(get_config(), on_session_end=session_ended, verbose=verbose)

    try:
        result = run(client, client.get_paginated(path, params=query or None))
    except Exception as e:
        handle_error(e)
        raise typer.Exit(1)

    print_output(result.items, output, title=f"GET {path}", pagination=result.pagination)
