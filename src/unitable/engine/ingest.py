# src/unitable/engine/ingest.py
"""
Materialize a data source descriptor into a temporary DuckDB table.

The temp table always has exactly one column per table field, typed by
`duckdb_type`. Fields that can hold numbers also get a VARCHAR "exact"
column carrying integers beyond ±(2**53-1) as JSON, since DOUBLE would round
them. In-memory rows (inline or streamed) are normalized per field
and appended in polars batches; files, URLs and attached databases are read
by DuckDB itself and projected onto the field list.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from itertools import islice
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, Iterator, List, Optional
from urllib.parse import urlparse

import duckdb
import polars as pl

from unitable.adapters.descriptor import (
    ConnectionSource,
    DataSourceDescriptor,
    FileSource,
    InlineSource,
    StreamSource,
    UrlSource,
)
from unitable.config.models import MAX_FIELD_DEPTH, Field, FieldType, Table
from unitable.engine.duckdb_session import attach_source
from unitable.engine.sql_utils import esc_ident, lit_str, validate_path_or_url
from unitable.errors import DataSourceError, SchemaInvariantError
from unitable.logging import get_logger
from unitable.validation.compiler import parse_datetime

_logger = get_logger(__name__)

BATCH_SIZE = 2048
MAX_SAFE_INTEGER = 2**53 - 1

_TEXT_TYPES = (FieldType.TEXT, FieldType.EMAIL, FieldType.DROPDOWN, FieldType.REFERENCE)

_INTEGER_SOURCE_TYPES = (
    "TINYINT", "SMALLINT", "INTEGER", "BIGINT", "HUGEINT",
    "UTINYINT", "USMALLINT", "UINTEGER", "UBIGINT", "VARCHAR",
)

_EXTENSION_FORMATS = {
    ".parquet": "parquet",
    ".pq": "parquet",
    ".csv": "csv",
    ".tsv": "csv",
    ".json": "json",
    ".ndjson": "ndjson",
    ".jsonl": "ndjson",
}


def _guard(field: Field, depth: int) -> None:
    if depth > MAX_FIELD_DEPTH:
        raise SchemaInvariantError(
            f"Field '{field.id}' nests deeper than {MAX_FIELD_DEPTH} levels"
        )


# =============================================================================
# Type mapping
# =============================================================================


def duckdb_type(field: Field, depth: int = 0) -> str:
    """DuckDB column type for a field; opaque fields are VARCHAR."""
    _guard(field, depth)
    if field.is_opaque:
        return "VARCHAR"
    kind = field.kind
    if kind == "struct":
        members = ", ".join(
            f"{esc_ident(f.id)} {duckdb_type(f, depth + 1)}" for f in field.fields or []
        )
        return f"STRUCT({members})"
    if kind == "list":
        return f"{duckdb_type(field.child, depth + 1)}[]"
    if field.type == FieldType.NUMBER:
        return "DOUBLE"
    if field.type == FieldType.BOOLEAN:
        return "BOOLEAN"
    if field.type == FieldType.DATE:
        return "TIMESTAMP"
    return "VARCHAR"


def polars_dtype(field: Field, depth: int = 0) -> pl.DataType:
    """Polars dtype matching `duckdb_type` for the batch frames."""
    _guard(field, depth)
    if field.is_opaque:
        return pl.Utf8()
    kind = field.kind
    if kind == "struct":
        return pl.Struct([pl.Field(f.id, polars_dtype(f, depth + 1)) for f in field.fields or []])
    if kind == "list":
        return pl.List(polars_dtype(field.child, depth + 1))
    if field.type == FieldType.NUMBER:
        return pl.Float64()
    if field.type == FieldType.BOOLEAN:
        return pl.Boolean()
    if field.type == FieldType.DATE:
        return pl.Datetime("us")
    return pl.Utf8()


def _holds_numbers(field: Field, depth: int = 0) -> bool:
    if field.is_opaque or depth > MAX_FIELD_DEPTH:
        return False
    kind = field.kind
    if kind == "struct":
        return any(_holds_numbers(f, depth + 1) for f in field.fields or [])
    if kind == "list":
        return _holds_numbers(field.child, depth + 1)
    return field.type == FieldType.NUMBER


def exact_columns(table: Table) -> Dict[str, str]:
    """Field id → name of its exact-value column, for fields that can hold numbers."""
    return {
        f.id: f"_ut_exact_{i}"
        for i, f in enumerate(table.fields)
        if _holds_numbers(f)
    }


# =============================================================================
# Value preparation
# =============================================================================


def _to_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _to_exact_number(value: Any) -> Any:
    """Integers (and integer strings) stay exact; everything else as `_to_number`."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    return _to_number(value)


def has_unsafe_int(value: Any) -> bool:
    """True when `value` is, or nests, an integer beyond ±(2**53-1)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return abs(value) > MAX_SAFE_INTEGER
    if isinstance(value, dict):
        return any(has_unsafe_int(v) for v in value.values())
    if isinstance(value, list):
        return any(has_unsafe_int(v) for v in value)
    return False


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def exact_value(field: Field, value: Any) -> Optional[str]:
    """
    JSON for the exact-value column, or None when DOUBLE holds `value` as is.

    Only values containing an integer beyond ±(2**53-1) need it.
    """
    prepared = prepare_value(field, value, exact=True)
    if not has_unsafe_int(prepared):
        return None
    return json.dumps(prepared, default=_json_default)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y", "t")
    return bool(value)


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return from_epoch_ms(value)
    return parse_datetime(value)


def from_epoch_ms(value: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


def _maybe_json(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def prepare_value(field: Field, value: Any, depth: int = 0, exact: bool = False) -> Any:
    """
    Normalize one source value to the Python shape of its column type.

    Values that cannot be represented become None (NULL). With `exact`,
    integral numbers are kept as Python ints instead of floats.
    """
    if value is None:
        return None
    _guard(field, depth)

    if field.is_opaque:
        if field.encrypted and isinstance(value, str):
            return value
        return json.dumps(value, default=str)

    kind = field.kind
    if kind == "struct":
        value = _maybe_json(value)
        if not isinstance(value, dict):
            return None
        return {f.id: prepare_value(f, value.get(f.id), depth + 1, exact) for f in field.fields or []}
    if kind == "list":
        value = _maybe_json(value)
        if not isinstance(value, (list, tuple)):
            return None
        return [prepare_value(field.child, item, depth + 1, exact) for item in value]

    if field.type in _TEXT_TYPES:
        return str(value)
    if field.type == FieldType.NUMBER:
        return _to_exact_number(value) if exact else _to_number(value)
    if field.type == FieldType.BOOLEAN:
        return _to_bool(value)
    if field.type == FieldType.DATE:
        return _to_datetime(value)
    return str(value)


# =============================================================================
# Temp table + batches
# =============================================================================


def temp_table_name(table: Table) -> str:
    stem = "".join(ch if ch.isalnum() else "_" for ch in table.id)[:48]
    return f"_ut_{stem}_{uuid.uuid4().hex}"


def create_temp_table(con: duckdb.DuckDBPyConnection, table: Table, name: str) -> None:
    if not table.fields:
        raise DataSourceError("Table has no fields to materialize", table.id)
    cols = [f"{esc_ident(f.id)} {duckdb_type(f)}" for f in table.fields]
    cols += [f"{esc_ident(c)} VARCHAR" for c in exact_columns(table).values()]
    con.execute(f"CREATE TABLE {esc_ident(name)} ({', '.join(cols)})")


def _column_names(table: Table) -> List[str]:
    return [f.id for f in table.fields] + list(exact_columns(table).values())


def _batches(rows: Iterable[Dict[str, Any]], size: int) -> Iterator[List[Dict[str, Any]]]:
    it = iter(rows)
    while batch := list(islice(it, size)):
        yield batch


def rows_to_frame(rows: List[Dict[str, Any]], table: Table) -> pl.DataFrame:
    columns = []
    for f in table.fields:
        values = [prepare_value(f, r.get(f.id)) if isinstance(r, dict) else None for r in rows]
        columns.append(pl.Series(f.id, values, dtype=polars_dtype(f)))
    for fid, col in exact_columns(table).items():
        f = table.get_field(fid)
        values = [exact_value(f, r.get(fid)) if isinstance(r, dict) else None for r in rows]
        columns.append(pl.Series(col, values, dtype=pl.Utf8()))
    return pl.DataFrame(columns)


def ingest_rows(
    con: duckdb.DuckDBPyConnection,
    table: Table,
    name: str,
    rows: Iterable[Dict[str, Any]],
    batch_size: int = BATCH_SIZE,
) -> int:
    """Append `rows` to the temp table in polars batches; returns the row count."""
    cols = ", ".join(esc_ident(c) for c in _column_names(table))
    total = 0
    for batch in _batches(rows, batch_size):
        frame = rows_to_frame(batch, table)
        view = f"_ut_batch_{uuid.uuid4().hex}"
        con.register(view, frame.to_arrow())
        try:
            con.execute(
                f"INSERT INTO {esc_ident(name)} ({cols}) SELECT {cols} FROM {esc_ident(view)}"
            )
        finally:
            con.unregister(view)
        total += len(batch)
    return total


# =============================================================================
# DuckDB-native readers
# =============================================================================


def infer_format(location: str) -> str:
    path = urlparse(location).path if "://" in location else location
    suffix = PurePosixPath(path).suffix.lower()
    fmt = _EXTENSION_FORMATS.get(suffix)
    if fmt is None:
        raise DataSourceError(
            f"Cannot infer format of '{location}'; pass an explicit format"
        )
    return fmt


def reader_sql(location: str, fmt: str = "auto") -> str:
    """The table function call that reads `location`."""
    loc = validate_path_or_url(location)
    if fmt == "auto":
        fmt = infer_format(loc)
    lit = lit_str(loc)
    if fmt == "parquet":
        return f"read_parquet({lit})"
    if fmt == "csv":
        return f"read_csv_auto({lit})"
    if fmt == "json":
        return f"read_json_auto({lit})"
    if fmt == "ndjson":
        return f"read_json_auto({lit}, format='newline_delimited')"
    raise DataSourceError(f"Unsupported format '{fmt}'")


def describe_source(con: duckdb.DuckDBPyConnection, relation: str) -> Dict[str, str]:
    """Column name → DuckDB type name of a relation or table function."""
    rows = con.execute(f"DESCRIBE SELECT * FROM {relation}").fetchall()
    return {r[0]: str(r[1]) for r in rows}


def _exact_expr(field_id: str, field: Field, source_type: Optional[str]) -> str:
    """
    Exact-value column for a source column, so DOUBLE never rounds large
    integers first. Plain integer columns are read through HUGEINT and kept
    only beyond ±(2**53-1); nested columns with 64-bit members are kept as
    JSON and checked when rows are converted.
    """
    if source_type is None:
        return "CAST(NULL AS VARCHAR)"
    t = source_type.upper()
    if field.kind in ("struct", "list"):
        if "BIGINT" in t or "HUGEINT" in t:
            return f"CAST(to_json({esc_ident(field_id)}) AS VARCHAR)"
        return "CAST(NULL AS VARCHAR)"
    if field.type != FieldType.NUMBER or t not in _INTEGER_SOURCE_TYPES:
        return "CAST(NULL AS VARCHAR)"
    wide = f"TRY_CAST({esc_ident(field_id)} AS HUGEINT)"
    return (
        f"CASE WHEN {wide} NOT BETWEEN -{MAX_SAFE_INTEGER} AND {MAX_SAFE_INTEGER} "
        f"THEN CAST({wide} AS VARCHAR) END"
    )


def projection(table: Table, source_columns: Dict[str, str]) -> str:
    """SELECT list mapping source columns onto the table's fields."""
    exprs = []
    for f in table.fields:
        c = esc_ident(f.id)
        target = duckdb_type(f)
        source_type = source_columns.get(f.id)
        if source_type is None:
            exprs.append(f"CAST(NULL AS {target}) AS {c}")
        elif f.is_opaque and source_type.upper() != "VARCHAR":
            exprs.append(f"CAST(to_json({c}) AS VARCHAR) AS {c}")
        else:
            exprs.append(f"TRY_CAST({c} AS {target}) AS {c}")
    for fid, col in exact_columns(table).items():
        exprs.append(f"{_exact_expr(fid, table.get_field(fid), source_columns.get(fid))} AS {esc_ident(col)}")
    return ", ".join(exprs)


def ingest_relation(
    con: duckdb.DuckDBPyConnection, table: Table, name: str, relation: str
) -> None:
    columns = describe_source(con, relation)
    missing = [f.id for f in table.fields if f.id not in columns]
    if missing:
        _logger.debug("Source for %s lacks columns %s; filling NULL", table.id, missing)
    cols = ", ".join(esc_ident(c) for c in _column_names(table))
    con.execute(
        f"INSERT INTO {esc_ident(name)} ({cols}) "
        f"SELECT {projection(table, columns)} FROM {relation}"
    )


def ingest_descriptor(
    con: duckdb.DuckDBPyConnection,
    table: Table,
    name: str,
    source: Optional[DataSourceDescriptor],
) -> None:
    """Create the temp table `name` and fill it from `source`."""
    create_temp_table(con, table, name)
    match source:
        case None:
            return
        case InlineSource():
            n = ingest_rows(con, table, name, source.data)
            _logger.debug("Ingested %d inline rows into %s", n, name)
        case StreamSource():
            n = ingest_rows(con, table, name, source.stream)
            _logger.debug("Ingested %d streamed rows into %s", n, name)
        case FileSource():
            ingest_relation(con, table, name, reader_sql(source.path, source.format))
        case UrlSource():
            ingest_relation(con, table, name, reader_sql(source.url, source.format))
        case ConnectionSource():
            relation = attach_source(con, source, alias=f"_ut_src_{uuid.uuid4().hex[:8]}")
            ingest_relation(con, table, name, relation)
        case _:
            raise DataSourceError(f"Unsupported data source {type(source).__name__}", table.id)
