"""Structured error output for the CLI."""

from __future__ import annotations

import json
import sys

from rich.console import Console

from clinic_api.errors import ApiError

console = Console(stderr=True)

# Actionable hints keyed by normalized error code
_CODE_HINTS: dict[str, str] = {
    "NETWORK_ERROR": "Cannot reach the API: check connectivity and CLINIC_API_BASE_URL",
    "REQUEST_FAILED": "The server returned an unexpected response: try again later",
    "NO_REFRESH_TOKEN": "Session expired: run `clinic-api auth login`",
    "REFRESH_FAILED": "Session expired: run `clinic-api auth login`",
}

# Fallback hints keyed by HTTP status
_STATUS_HINTS: dict[int, str] = {
    401: "Not authenticated: run `clinic-api auth login`",
    403: "Your role is not allowed to perform this action",
    404: "The requested resource does not exist: verify the ID",
    422: "Validation failed: check the field errors",
}


def _get_hint(error: Exception) -> str | None:
    """Match an error to an actionable hint."""
    if not isinstance(error, ApiError):
        return None
    if error.code and error.code in _CODE_HINTS:
        return _CODE_HINTS[error.code]
    if error.has_field_errors:
        return _STATUS_HINTS[422]
    return _STATUS_HINTS.get(error.status)


def error_payload(error: Exception) -> dict[str, object]:
    """Build the JSON error object printed for agents."""
    if isinstance(error, ApiError):
        payload: dict[str, object] = {
            "error": True,
            "code": error.code or "API_ERROR",
            "status": error.status,
            "message": error.message,
            "details": list(error.details),
            "field_errors": {field: list(errs) for field, errs in error.field_errors.items()},
        }
    else:
        payload = {"error": True, "code": "RUNTIME_ERROR", "message": str(error)}

    hint = _get_hint(error)
    if hint:
        payload["hint"] = hint
    return payload


def handle_error(error: Exception) -> None:
    """Handle an error with structured output to stdout and human-readable output to stderr.

    Outputs a JSON error object to stdout for agent consumption:
    {"error": true, "code": "NETWORK_ERROR", "status": 0, "message": "...", "hint": "..."}

    Also prints a human-readable error, including field errors, to stderr.
    """
    payload = error_payload(error)
    json.dump(payload, sys.stdout)
    sys.stdout.write("\n")

    message = error.full_message if isinstance(error, ApiError) else str(error)
    console.print(f"[red]Error:[/red] {message}")
    if "hint" in payload:
        console.print(f"[dim]Hint: {payload['hint']}[/dim]")
