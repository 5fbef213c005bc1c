from __future__ import annotations

"""
Unitable CLI: query a file through the virtualization engine.

Thin layer: parse args → infer table → QueryEngine → print.
"""

import json
import re
from pathlib import Path
from typing import Any, List, Optional, Tuple

import duckdb
import typer
import yaml
from rich.console import Console
from rich.table import Table as RichTable

from unitable.adapters.descriptor import FileSource, UrlSource
from unitable.config.models import (
    OrderBy,
    QueryFilter,
    QueryFilterOperator,
    SortDirection,
    Table,
    TableQueryOptions,
)
from unitable.config.settings import load_settings
from unitable.engine.duckdb_session import create_duckdb_connection
from unitable.engine.ingest import describe_source, reader_sql
from unitable.engine.query import QueryEngine
from unitable.adapters.registry import AdapterRegistry
from unitable.errors import (
    ConfigurationError,
    DataSourceError,
    InvalidQueryError,
    UnitableError,
    format_error,
)
from unitable.inference import table_from_columns
from unitable.logging import configure_cli_logging
from unitable.version import VERSION

app = typer.Typer(help="Unitable CLI: one table model over files, stores and APIs")
console = Console()

# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_USAGE_ERROR = 2

FORMATS = ("auto", "csv", "json", "ndjson", "parquet")

# Longest operators first so ">=" is not read as ">".
_FILTER_RE = re.compile(r"^\s*(?P<field>[^<>=!~]+?)\s*(?P<op>>=|<=|!=|=|>|<|~)\s*(?P<value>.*)$")
_OPS = {
    "=": QueryFilterOperator.EQ,
    "!=": QueryFilterOperator.NE,
    ">": QueryFilterOperator.GT,
    ">=": QueryFilterOperator.GTE,
    "<": QueryFilterOperator.LT,
    "<=": QueryFilterOperator.LTE,
    "~": QueryFilterOperator.CONTAINS,
}


# ---- Argument parsing ----


def parse_scalar(raw: str) -> Any:
    """'28' → 28, '2.5' → 2.5, 'true' → True, quoted or anything else → str."""
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered == "null":
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def parse_filter(expr: str) -> QueryFilter:
    m = _FILTER_RE.match(expr)
    if not m:
        raise typer.BadParameter(
            f"Cannot parse filter {expr!r}; expected FIELD OP VALUE with OP in = != > >= < <= ~"
        )
    return QueryFilter(
        field=m.group("field"),
        operator=_OPS[m.group("op")],
        value=parse_scalar(m.group("value")),
    )


def parse_order(expr: Optional[str]) -> Optional[OrderBy]:
    if not expr:
        return None
    col, _, direction = expr.partition(":")
    direction = (direction or "asc").lower()
    if direction not in ("asc", "desc"):
        raise typer.BadParameter(f"Sort direction must be 'asc' or 'desc', got {direction!r}")
    return OrderBy(field=col, direction=SortDirection(direction))


def _source_for(path: str, fmt: str):
    if fmt not in FORMATS:
        raise typer.BadParameter(f"--format must be one of {', '.join(FORMATS)}")
    if "://" in path and not path.startswith("file://"):
        return UrlSource(url=path, format=fmt)
    return FileSource(path=path.removeprefix("file://"), format=fmt)


def infer_file_table(path: str, fmt: str = "auto") -> Tuple[Table, Any]:
    """Describe the file with DuckDB and turn its columns into a table."""
    source = _source_for(path, fmt)
    location = source.url if isinstance(source, UrlSource) else source.path
    con = create_duckdb_connection(source)
    try:
        columns = describe_source(con, reader_sql(location, fmt))
    except duckdb.Error as e:
        raise DataSourceError(f"Cannot read {location}: {e}") from e
    finally:
        con.close()
    name = Path(location).stem or "data"
    return table_from_columns(name, [location], columns, source_id="cli"), source


# ---- Rendering ----


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def render_rows(table: Table, rows: List[dict]) -> None:
    out = RichTable(title=f"{table.name} ({len(rows)} row{'s' if len(rows) != 1 else ''})")
    for f in table.fields:
        out.add_column(f.id, style="cyan" if f.is_key else None, justify="right" if f.type == "number" else "left")
    for row in rows:
        out.add_row(*(_cell(row.get(f.id)) for f in table.fields))
    console.print(out)


# ---- Commands ----


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG to stderr."),
) -> None:
    configure_cli_logging(verbose)


@app.command("query")
def query(
    path: str = typer.Argument(..., help="Local path or http(s) URL of a csv/json/ndjson/parquet file."),
    filters: Optional[List[str]] = typer.Option(
        None, "--filter", "-f", help="Filter like 'age>28' or 'name~ali'. Repeatable; combined with AND."
    ),
    order_by: Optional[str] = typer.Option(None, "--order-by", "-s", help="Column to sort by, optionally ':desc'."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=0, help="Maximum rows to return."),
    offset: Optional[int] = typer.Option(None, "--offset", min=0, help="Rows to skip."),
    fmt: str = typer.Option("auto", "--format", help="Input format (default: from extension)."),
    as_json: bool = typer.Option(False, "--json", help="Print rows as JSON instead of a table."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds before the query is interrupted."),
    config: Optional[str] = typer.Option(None, "--config", help="Path to unitable.yml."),
) -> None:
    """Filter, sort and paginate a file with the same engine used for every source."""
    try:
        settings = load_settings(config)
        table, source = infer_file_table(path, fmt)
        options = TableQueryOptions(
            filters=[parse_filter(f) for f in filters or []],
            order_by=parse_order(order_by),
            limit=limit,
            offset=offset,
        )
        engine = QueryEngine(
            AdapterRegistry(),
            default_timeout=settings.query_timeout_seconds,
            threads=settings.duckdb_threads,
        )
        rows = engine.run(table, source, options, timeout=timeout)
    except (ConfigurationError, InvalidQueryError) as e:
        typer.secho(f"Error: {format_error(e)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_USAGE_ERROR)
    except UnitableError as e:
        typer.secho(f"Error: {format_error(e)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_RUNTIME_ERROR)

    if as_json:
        typer.echo(json.dumps(rows, default=str, indent=2))
    else:
        render_rows(table, rows)


@app.command("infer")
def infer(
    path: str = typer.Argument(..., help="Local path or http(s) URL of a data file."),
    fmt: str = typer.Option("auto", "--format", help="Input format (default: from extension)."),
) -> None:
    """Print the table definition inferred from a file, as YAML."""
    try:
        table, _ = infer_file_table(path, fmt)
    except UnitableError as e:
        typer.secho(f"Error: {format_error(e)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_RUNTIME_ERROR)
    typer.echo(yaml.safe_dump(table.to_document(), sort_keys=False))


@app.command("version")
def version() -> None:
    """Show the Unitable version."""
    typer.echo(f"unitable {VERSION}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
