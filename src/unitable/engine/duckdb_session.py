# src/unitable/engine/duckdb_session.py
from __future__ import annotations

import os
from typing import Any, Dict, Optional

import duckdb

from unitable.adapters.descriptor import (
    ConnectionSource,
    DataSourceDescriptor,
    UrlSource,
)
from unitable.engine.sql_utils import esc_ident, lit_str, validate_identifier
from unitable.errors import DataSourceError
from unitable.logging import get_logger

_logger = get_logger(__name__)

# --- Public API ---


def create_duckdb_connection(
    source: Optional[DataSourceDescriptor] = None,
    *,
    threads: Optional[int] = None,
) -> duckdb.DuckDBPyConnection:
    """
    Create an in-memory DuckDB connection configured for the given descriptor.

    Every query gets its own connection; nothing is shared between queries.
    Remote sources get the httpfs extension (plus a scoped secret carrying
    any HTTP headers); database sources get their scanner extension loaded.

    Args:
        source: The descriptor about to be materialized, if any.
        threads: Worker threads; falls back to DUCKDB_THREADS, then CPU count.

    Returns:
        A configured duckdb.DuckDBPyConnection.

    Raises:
        DataSourceError: an extension failed to install or load (the
            connection is closed before raising)
    """
    con = duckdb.connect(":memory:")
    try:
        _configure_threads(con, threads)

        match source:
            case UrlSource():
                _configure_http(con, source.headers)
            case ConnectionSource():
                _load_extension(con, source.module)
            case _:
                pass
    except DataSourceError:
        con.close()
        raise
    except duckdb.Error as e:
        con.close()
        raise DataSourceError(f"Cannot prepare DuckDB connection: {e}") from e

    return con


# --- Internal Helpers ---


def _safe_set(con: duckdb.DuckDBPyConnection, key: str, value: Any) -> None:
    """
    Execute a DuckDB SET, logging (not raising) when the setting is unknown
    to this DuckDB version.
    """
    try:
        con.execute(f"SET {key} = ?", [str(value)])
    except duckdb.Error as e:
        _logger.debug("Ignoring DuckDB setting %s: %s", key, e)


def _configure_threads(con: duckdb.DuckDBPyConnection, threads: Optional[int]) -> None:
    env_threads = os.getenv("DUCKDB_THREADS")
    nthreads = threads
    if nthreads is None and env_threads:
        try:
            nthreads = int(env_threads)
        except ValueError:
            _logger.debug("Ignoring non-integer DUCKDB_THREADS=%r", env_threads)
    if nthreads is None:
        nthreads = os.cpu_count() or 4
    con.execute(f"SET threads = {max(1, int(nthreads))};")


def _configure_http(con: duckdb.DuckDBPyConnection, headers: Dict[str, str]) -> None:
    """
    Install and load httpfs for http(s):// reads. Headers travel in a
    temporary secret so they never appear in the query text.
    """
    con.execute("INSTALL httpfs;")
    con.execute("LOAD httpfs;")
    _safe_set(con, "enable_object_cache", "true")
    if headers:
        entries = ", ".join(f"{lit_str(k)}: {lit_str(v)}" for k, v in headers.items())
        con.execute(
            "CREATE TEMPORARY SECRET unitable_http "
            f"(TYPE HTTP, EXTRA_HTTP_HEADERS MAP {{{entries}}});"
        )


def _load_extension(con: duckdb.DuckDBPyConnection, module: str) -> None:
    name = validate_identifier(module, "module")
    con.execute(f"INSTALL {name};")
    con.execute(f"LOAD {name};")


def attach_source(con: duckdb.DuckDBPyConnection, source: ConnectionSource, alias: str) -> str:
    """
    ATTACH the database behind `source` read-only and return the qualified
    relation name for its target table.
    """
    module = validate_identifier(source.module, "module")
    con.execute(
        f"ATTACH {lit_str(source.connection_string)} AS {esc_ident(alias)} "
        f"(TYPE {module}, READ_ONLY);"
    )
    parts = [validate_identifier(p, "target") for p in source.target.split(".")]
    return ".".join([esc_ident(alias)] + [esc_ident(p) for p in parts])
