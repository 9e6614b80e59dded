"""Output formatting for CLI results."""

from __future__ import annotations

import csv
import json
import sys
from enum import Enum
from typing import Any

from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from clinic_api.models.envelope import Pagination

console = Console(stderr=True)


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"
    CSV = "csv"


def to_rows(data: Any) -> list[dict[str, Any]]:
    """Coerce an API value (model, dict, list, scalar) into table rows."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        rows = []
        for item in data:
            if isinstance(item, BaseModel):
                item = item.model_dump(mode="json")
            rows.append(item if isinstance(item, dict) else {"value": item})
        return rows
    return [{"value": data}]


def _cell(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return "" if value is None else str(value)


def print_output(
    data: Any,
    fmt: OutputFormat = OutputFormat.TABLE,
    columns: list[str] | None = None,
    title: str | None = None,
    pagination: Pagination | None = None,
) -> None:
    """Print data in the requested format.

    Args:
        data: The value to display (model, dict, list of dicts or scalar).
        fmt: Output format (table, json, csv).
        columns: Which columns to show in table/csv mode. None = all.
        title: Optional title for table output.
        pagination: Page metadata, shown under tables and included in JSON.
    """
    if fmt == OutputFormat.JSON:
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        if pagination is not None:
            data = {"items": data, "pagination": pagination.model_dump()}
        print_json(data)
    elif fmt == OutputFormat.CSV:
        print_csv(to_rows(data), columns)
    else:
        print_table(to_rows(data), columns, title)
        if pagination is not None:
            console.print(
                f"[dim]Page {pagination.page}/{pagination.total_pages} "
                f"({pagination.total} total, {pagination.page_size} per page)[/dim]"
            )


def print_json(data: Any) -> None:
    """Print data as formatted JSON to stdout."""
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def print_table(
    rows: list[dict[str, Any]],
    columns: list[str] | None = None,
    title: str | None = None,
) -> None:
    """Print rows as a Rich table."""
    if not rows:
        console.print("[dim]No results.[/dim]")
        return

    if columns is None:
        columns = list(rows[0].keys())

    table = Table(title=title, show_lines=False)
    for col in columns:
        table.add_column(col, overflow="fold")

    for row in rows:
        table.add_row(*[_cell(row.get(col)) for col in columns])

    console.print(table)


def print_csv(rows: list[dict[str, Any]], columns: list[str] | None = None) -> None:
    """Print rows as CSV to stdout."""
    if not rows:
        return

    if columns is None:
        columns = list(rows[0].keys())

    writer = csv.DictWriter(sys.stdout, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: _cell(row.get(k)) for k in columns})
