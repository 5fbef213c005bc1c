# src/unitable/engine/convert.py
"""Turn DuckDB result rows back into field-model values."""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from unitable.config.models import MAX_FIELD_DEPTH, Field, FieldType, Table
from unitable.engine.ingest import MAX_SAFE_INTEGER, exact_columns, from_epoch_ms, has_unsafe_int
from unitable.validation.compiler import parse_datetime, to_naive_utc


def _loads_or_raw(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _number(value: Any) -> Any:
    # a DOUBLE past the safe range is not known to be exact; leave it a float
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) <= MAX_SAFE_INTEGER:
            return int(value)
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
            return value
        return str(value)
    return value


def _date(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return from_epoch_ms(value)
    if isinstance(value, str):
        parsed = parse_datetime(value)
        return parsed if parsed is not None else value
    return value


def convert_value(field: Field, value: Any, depth: int = 0) -> Any:
    """
    Convert one native value for `field`. None means "absent": callers drop
    the key rather than emit a null.
    """
    if value is None or depth > MAX_FIELD_DEPTH:
        return value
    if field.encrypted:
        # ciphertext; decoded later by the codec
        return value

    if field.type == FieldType.JSON:
        if not field.fields:
            return _loads_or_raw(value)
        value = _loads_or_raw(value)
        if not isinstance(value, dict):
            return value
        out: Dict[str, Any] = {}
        for sub in field.fields:
            if sub.id not in value:
                continue
            converted = convert_value(sub, value[sub.id], depth + 1)
            if converted is not None:
                out[sub.id] = converted
        # a struct with every member NULL is indistinguishable from a NULL struct
        return out or None

    if field.type == FieldType.LIST:
        value = _loads_or_raw(value)
        if not isinstance(value, (list, tuple)):
            return value
        if field.child is None:
            return list(value)
        return [convert_value(field.child, item, depth + 1) for item in value]

    if field.type == FieldType.DATE:
        return _date(value)
    if field.type == FieldType.NUMBER:
        return _number(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return _number(value)
    return value


def convert_row(
    row: Dict[str, Any], table: Table, exact: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Field values of one result row. An exact-value column wins over the
    DOUBLE-typed one when it holds an integer DOUBLE cannot represent.
    """
    exact = exact_columns(table) if exact is None else exact
    out: Dict[str, Any] = {}
    for field in table.fields:
        precise = row.get(exact[field.id]) if field.id in exact else None
        if precise is not None:
            precise = json.loads(precise)
        if has_unsafe_int(precise):
            value = convert_value(field, precise)
        elif field.id in row:
            value = convert_value(field, row[field.id])
        else:
            continue
        if value is not None:
            out[field.id] = value
    return out


def convert_rows(rows: List[Dict[str, Any]], table: Table) -> List[Dict[str, Any]]:
    exact = exact_columns(table)
    return [convert_row(r, table, exact) for r in rows]
