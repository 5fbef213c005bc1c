# src/unitable/engine/query.py
"""
Query virtualization: filter, sort and paginate any source uniformly.

    adapter ──► descriptor ──► temp DuckDB table ──► SELECT … ──► rows

Every query runs in its own in-memory DuckDB connection against a freshly
named temp table, so concurrent queries never share state. The temp table
is dropped and the connection closed whether the query succeeds, fails or
times out.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import duckdb
import polars as pl

from unitable.adapters.base import SourceAdapter
from unitable.adapters.capabilities import AdapterCapabilities as AC
from unitable.adapters.descriptor import DataSourceDescriptor, StreamSource, as_descriptor
from unitable.adapters.registry import AdapterRegistry
from unitable.config.models import FieldType, QueryFilter, Table, TableQueryOptions
from unitable.engine.convert import convert_rows
from unitable.engine.duckdb_session import create_duckdb_connection
from unitable.engine.ingest import ingest_descriptor, temp_table_name
from unitable.engine.sql_utils import build_select, esc_ident, predicate
from unitable.errors import DataSourceError, InvalidQueryError, QueryTimeoutError, UnitableError
from unitable.logging import get_logger, log_exception
from unitable.validation.compiler import parse_datetime

_logger = get_logger(__name__)

RowDecoder = Callable[[Dict[str, Any]], Dict[str, Any]]


# =============================================================================
# Helpers
# =============================================================================


def resolve_descriptor(
    adapter: Optional[SourceAdapter], table: Table, secret: Optional[str]
) -> Optional[DataSourceDescriptor]:
    """
    Ask the adapter where the table's rows live.

    GET_DATA wins over GET_DATA_STREAM; an adapter with neither (or no
    adapter at all) yields no rows.
    """
    if adapter is None:
        return None
    if adapter.supports(AC.GET_DATA):
        return as_descriptor(adapter.get_data(table, secret))
    if adapter.supports(AC.GET_DATA_STREAM):
        return StreamSource(adapter.get_data_stream(table, secret))
    return None


def _filter_value(table: Table, flt: QueryFilter) -> Any:
    field = table.get_field(flt.field)
    value = flt.value
    if field is not None and field.type == FieldType.DATE and isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is None:
            raise InvalidQueryError(
                f"Filter on '{flt.field}' expects a date, got {value!r}", table.id
            )
        return parsed
    return value


def build_query(
    table: Table, relation: str, options: Optional[TableQueryOptions]
) -> Tuple[str, List[Any]]:
    """
    SQL + parameters for `options` against the materialized `relation`.

    Raises:
        InvalidQueryError: a filter or the ordering names an unknown field
    """
    options = options or TableQueryOptions()
    known = {f.id for f in table.fields}

    preds = []
    for flt in options.filters:
        if flt.field not in known:
            raise InvalidQueryError(f"Unknown filter field '{flt.field}'", table.id)
        preds.append(predicate(flt.field, flt.operator.value, _filter_value(table, flt)))

    order = None
    if options.order_by is not None:
        if options.order_by.field not in known:
            raise InvalidQueryError(f"Unknown order field '{options.order_by.field}'", table.id)
        order = (options.order_by.field, options.order_by.direction.value == "desc")

    return build_select(relation, preds, order, options.limit, options.offset)


@contextmanager
def _interrupt_after(con: duckdb.DuckDBPyConnection, timeout: Optional[float]) -> Iterator[threading.Event]:
    """Yield an event that is set if the connection had to be interrupted."""
    fired = threading.Event()
    if not timeout:
        yield fired
        return

    def _fire() -> None:
        fired.set()
        con.interrupt()

    timer = threading.Timer(timeout, _fire)
    timer.daemon = True
    timer.start()
    try:
        yield fired
    finally:
        timer.cancel()


@contextmanager
def _session(
    source: Optional[DataSourceDescriptor], table: Table, threads: Optional[int]
) -> Iterator[Tuple[duckdb.DuckDBPyConnection, str]]:
    name = temp_table_name(table)
    con = create_duckdb_connection(source, threads=threads)
    try:
        yield con, name
    finally:
        try:
            con.execute(f"DROP TABLE IF EXISTS {esc_ident(name)}")
        except duckdb.Error as e:
            log_exception(_logger, f"Failed to drop temp table {name}", e)
        finally:
            con.close()


# =============================================================================
# Engine
# =============================================================================


class QueryEngine:
    """
    Runs `TableQueryOptions` against whatever an adapter returns.

    Example:
        engine = QueryEngine(registry)
        rows = engine.query(table, options=TableQueryOptions(limit=10))
    """

    def __init__(
        self,
        adapters: AdapterRegistry,
        *,
        default_timeout: Optional[float] = None,
        threads: Optional[int] = None,
    ):
        self.adapters = adapters
        self.default_timeout = default_timeout
        self.threads = threads

    def query(
        self,
        table: Table,
        secret: Optional[str] = None,
        options: Optional[TableQueryOptions] = None,
        timeout: Optional[float] = None,
        decode: Optional[RowDecoder] = None,
    ) -> List[Dict[str, Any]]:
        adapter = self.adapters.get(table.source_id)
        if adapter is None:
            _logger.debug("No adapter '%s' for table %s", table.source_id, table.id)
        source = resolve_descriptor(adapter, table, secret)
        return self.run(table, source, options, timeout=timeout, decode=decode)

    def run(
        self,
        table: Table,
        source: Optional[DataSourceDescriptor],
        options: Optional[TableQueryOptions] = None,
        *,
        timeout: Optional[float] = None,
        decode: Optional[RowDecoder] = None,
    ) -> List[Dict[str, Any]]:
        """
        Materialize `source` and run `options` against it.

        Raises:
            InvalidQueryError: options reference unknown fields
            QueryTimeoutError: the timeout elapsed
            DataSourceError: ingest or query failed inside DuckDB
        """
        if not table.fields:
            return []
        timeout = timeout if timeout is not None else self.default_timeout

        t0 = time.perf_counter()
        with _session(source, table, self.threads) as (con, name):
            sql, params = build_query(table, esc_ident(name), options)
            with _interrupt_after(con, timeout) as fired:
                try:
                    ingest_descriptor(con, table, name, source)
                    frame = con.execute(sql, params).pl()
                except UnitableError:
                    raise
                except (duckdb.Error, pl.exceptions.PolarsError, TypeError, ValueError) as e:
                    if fired.is_set():
                        raise QueryTimeoutError(
                            f"Query exceeded {timeout}s and was interrupted", table.id
                        ) from e
                    raise DataSourceError(f"Query failed: {e}", table.id) from e
            if fired.is_set():
                raise QueryTimeoutError(f"Query exceeded {timeout}s and was interrupted", table.id)

        rows = convert_rows(frame.to_dicts(), table)
        if decode is not None:
            rows = [decode(r) for r in rows]
        _logger.debug(
            "Query on %s returned %d rows in %d ms",
            table.id,
            len(rows),
            int((time.perf_counter() - t0) * 1000),
        )
        return rows
