# src/unitable/engine/sql_utils.py
"""
SQL escaping, input checks and query building for the DuckDB engine.

Identifiers are always quoted with `esc_ident`. Values are bound parameters;
the only literals embedded in SQL text are file paths, URLs and connection
strings, which go through `lit_str` after `validate_path_or_url`.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence, Tuple

from unitable.errors import DataSourceError

# =============================================================================
# Identifier and Literal Escaping
# =============================================================================


def esc_ident(name: str) -> str:
    """Quote an identifier: "name" with embedded quotes doubled."""
    return '"' + name.replace('"', '""') + '"'


def lit_str(value: str) -> str:
    """Quote a string literal: 'value' with embedded quotes doubled."""
    return "'" + value.replace("'", "''") + "'"


# =============================================================================
# Input checks
# =============================================================================

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def validate_identifier(value: str, what: str = "identifier") -> str:
    """Bare SQL names (extension modules, schema/table parts) must be plain words."""
    if not isinstance(value, str) or not _IDENTIFIER.match(value):
        raise DataSourceError(f"Invalid {what}: {value!r}")
    return value


def validate_path_or_url(value: str) -> str:
    """
    Reject paths/URLs that could break out of a quoted literal.

    Embedded quotes and control characters are refused outright and
    backslashes are normalized to '/'. `lit_str` escaping is applied on top.
    """
    if not isinstance(value, str) or not value:
        raise DataSourceError("Empty path or URL")
    if _CONTROL_CHARS.search(value):
        raise DataSourceError("Path or URL contains control characters")
    if "'" in value or '"' in value:
        raise DataSourceError(f"Path or URL contains embedded quotes: {value!r}")
    return value.replace("\\", "/")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only ever matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# =============================================================================
# SELECT builder
# =============================================================================

_COMPARISONS = {
    "eq": "=",
    "ne": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def predicate(column: str, operator: str, value: Any) -> Tuple[str, List[Any]]:
    """One WHERE predicate and its bound parameters."""
    c = esc_ident(column)
    if operator == "contains":
        return f"CAST({c} AS VARCHAR) LIKE ? ESCAPE '\\'", [f"%{escape_like(str(value))}%"]
    if value is None:
        if operator == "eq":
            return f"{c} IS NULL", []
        if operator == "ne":
            return f"{c} IS NOT NULL", []
    op = _COMPARISONS.get(operator)
    if op is None:
        raise DataSourceError(f"Unsupported filter operator '{operator}'")
    return f"{c} {op} ?", [value]


def build_select(
    relation: str,
    predicates: Sequence[Tuple[str, List[Any]]] = (),
    order_by: Optional[Tuple[str, bool]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[str, List[Any]]:
    """
    Assemble `SELECT * FROM relation [WHERE …] [ORDER BY …] [LIMIT ?] [OFFSET ?]`.

    Args:
        relation: Already-quoted relation name.
        predicates: Output of `predicate()`, joined with AND.
        order_by: (column, descending).
    """
    sql = f"SELECT * FROM {relation}"
    params: List[Any] = []
    if predicates:
        sql += " WHERE " + " AND ".join(p for p, _ in predicates)
        for _, ps in predicates:
            params.extend(ps)
    if order_by is not None:
        col, desc = order_by
        sql += f" ORDER BY {esc_ident(col)} {'DESC' if desc else 'ASC'}"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    if offset is not None:
        sql += " OFFSET ?"
        params.append(int(offset))
    return sql, params
