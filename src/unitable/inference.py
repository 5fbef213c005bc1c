# src/unitable/inference.py
"""
Derive table definitions from data or from pydantic models.

`infer_table` looks at sample rows (what a schemaless source hands back);
`table_from_model` walks a pydantic model and is how the system tables for
schemas, connections and permissions are described.
"""

from __future__ import annotations

import types
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Type, Union, get_args, get_origin

import annotated_types
from pydantic import BaseModel

from unitable.config.models import MAX_FIELD_DEPTH, Action, Field, FieldType, Table
from unitable.errors import KeyFieldRequiredError

# ---------------------------------------------------------------------------
# From rows
# ---------------------------------------------------------------------------


def _value_type(value: Any) -> FieldType:
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    if isinstance(value, (datetime, date)):
        return FieldType.DATE
    if isinstance(value, (list, tuple)):
        return FieldType.LIST
    if isinstance(value, dict):
        return FieldType.JSON
    return FieldType.TEXT


def infer_table(
    name: str,
    path: List[str],
    rows: Sequence[Dict[str, Any]],
    source_id: str,
    table_id: Optional[str] = None,
) -> Table:
    """
    One field per key seen across `rows`, typed from the non-null values.

    Keys whose values disagree on type fall back to text. The key field is
    `id` when present, else the first field.
    """
    seen: Dict[str, Optional[FieldType]] = {}
    for row in rows:
        for k in row:
            seen.setdefault(k, None)

    for key in seen:
        detected: Optional[FieldType] = None
        for row in rows:
            value = row.get(key)
            if value is None:
                continue
            t = _value_type(value)
            if detected is not None and detected != t:
                detected = FieldType.TEXT
                break
            detected = t
        seen[key] = detected

    fields = [
        Field(id=k, name=k, type=t or FieldType.TEXT, is_required=False, is_key=(k == "id"))
        for k, t in seen.items()
    ]
    if fields and not any(f.is_key for f in fields):
        fields[0].is_key = True

    return Table(
        id=table_id or str(uuid.uuid4()),
        name=name,
        source_id=source_id,
        path=list(path),
        fields=fields,
    )


_DUCKDB_NUMERIC = (
    "TINYINT", "SMALLINT", "INTEGER", "BIGINT", "HUGEINT",
    "UTINYINT", "USMALLINT", "UINTEGER", "UBIGINT", "UHUGEINT",
    "FLOAT", "DOUBLE", "REAL", "DECIMAL",
)


def field_from_duckdb_type(field_id: str, type_name: str) -> Field:
    """Map a DuckDB column type (as printed by DESCRIBE) onto a field."""
    t = type_name.strip().upper()
    f = Field(id=field_id, name=field_id)
    if t.endswith("[]"):
        f.type = FieldType.LIST
        f.child = field_from_duckdb_type("child", t[:-2])
    elif t.startswith(("STRUCT", "MAP", "JSON", "UNION")):
        f.type = FieldType.JSON
    elif t == "BOOLEAN":
        f.type = FieldType.BOOLEAN
    elif t.startswith(_DUCKDB_NUMERIC):
        f.type = FieldType.NUMBER
    elif t.startswith(("DATE", "TIMESTAMP")):
        f.type = FieldType.DATE
    else:
        f.type = FieldType.TEXT
    return f


def table_from_columns(
    name: str,
    path: List[str],
    columns: Dict[str, str],
    source_id: str,
) -> Table:
    """Table for a DESCRIBE result (column name → DuckDB type)."""
    fields = [field_from_duckdb_type(c, t) for c, t in columns.items()]
    for f in fields:
        f.is_key = f.id == "id"
    if fields and not any(f.is_key for f in fields):
        fields[0].is_key = True
    return Table(id=str(uuid.uuid4()), name=name, source_id=source_id, path=list(path), fields=fields)


# ---------------------------------------------------------------------------
# From pydantic models
# ---------------------------------------------------------------------------


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    """Strip `Optional[...]`; returns (inner, was_optional)."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
        return annotation, True
    return annotation, False


def _apply_constraints(field: Field, metadata: List[Any]) -> None:
    for m in metadata:
        if isinstance(m, annotated_types.MinLen):
            field.min_length = m.min_length
        elif isinstance(m, annotated_types.MaxLen):
            field.max_length = m.max_length
        elif isinstance(m, annotated_types.Ge):
            field.min_value = float(m.ge)
        elif isinstance(m, annotated_types.Le):
            field.max_value = float(m.le)


def _field_from_annotation(
    field_id: str,
    annotation: Any,
    required: bool,
    stack: Tuple[type, ...],
    depth: int,
) -> Field:
    inner, optional = _unwrap_optional(annotation)
    out = Field(id=field_id, name=field_id, is_required=required and not optional)
    if depth > MAX_FIELD_DEPTH:
        out.type = FieldType.JSON
        return out

    origin = get_origin(inner)
    if inner is bool:
        out.type = FieldType.BOOLEAN
    elif inner in (int, float):
        out.type = FieldType.NUMBER
    elif inner is str:
        out.type = FieldType.TEXT
    elif inner in (datetime, date):
        out.type = FieldType.DATE
    elif isinstance(inner, type) and issubclass(inner, Enum):
        out.type = FieldType.DROPDOWN
        out.options = [str(m.value) for m in inner]
    elif origin is Literal:
        out.type = FieldType.DROPDOWN
        out.options = [str(a) for a in get_args(inner)]
    elif origin in (list, List, set, frozenset):
        out.type = FieldType.LIST
        args = get_args(inner)
        if args:
            out.child = _field_from_annotation("child", args[0], True, stack, depth + 1)
    elif isinstance(inner, type) and issubclass(inner, BaseModel):
        out.type = FieldType.JSON
        # A model already being walked would recurse forever; keep it opaque.
        if inner not in stack:
            out.fields = _fields_from_model(inner, stack + (inner,), depth + 1)
    else:
        out.type = FieldType.JSON
    return out


def _fields_from_model(model: Type[BaseModel], stack: Tuple[type, ...], depth: int) -> List[Field]:
    fields: List[Field] = []
    for attr, info in model.model_fields.items():
        fid = info.alias or attr
        f = _field_from_annotation(fid, info.annotation, info.is_required(), stack, depth)
        _apply_constraints(f, list(info.metadata))
        fields.append(f)
    return fields


def table_from_model(
    model: Type[BaseModel],
    *,
    table_id: Optional[str] = None,
    name: str = "",
    source_id: str,
    path: Optional[List[str]] = None,
    connection_id: Optional[str] = None,
    primary_key: str = "id",
    actions: Optional[List[Action]] = None,
) -> Table:
    """
    Describe a pydantic model as a table whose key is `primary_key`.

    Raises:
        KeyFieldRequiredError: the model has no field called `primary_key`
    """
    fields = _fields_from_model(model, (model,), depth=0)
    key = next((f for f in fields if f.id == primary_key), None)
    if key is None:
        raise KeyFieldRequiredError(
            name or model.__name__,
            f"No field matches primary key '{primary_key}'",
        )
    key.is_key = True
    return Table(
        id=table_id or str(uuid.uuid4()),
        name=name,
        source_id=source_id,
        path=list(path or []),
        connection_id=connection_id,
        fields=fields,
        actions=list(actions or []),
    )
