# src/unitable/schema_ops.py
"""
Structural edits to a schema: add, update, delete and reorder its tables,
views, fields and actions.

The functions are pure. Each works on a deep copy and returns the new
schema; on any error the input is left exactly as it was. A table must
always keep at least one key field.

`SchemaMutator` runs an edit against a stored schema through the
DataService, which invalidates the schema and validator caches.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel

from unitable.config.models import Action, Field, Schema, Table, View
from unitable.errors import KeyFieldRequiredError, NotFoundError, SchemaInvariantError, TableNotFoundError
from unitable.logging import get_logger

if TYPE_CHECKING:
    from unitable.service import DataService

_logger = get_logger(__name__)

Part = Literal["tables", "views", "fields", "actions"]

_PART_MODELS: Dict[str, Type[BaseModel]] = {
    "tables": Table,
    "views": View,
    "fields": Field,
    "actions": Action,
}

Element = Union[Table, View, Field, Action, Dict[str, Any]]


class SchemaNotFoundError(NotFoundError):
    kind = "Schema"


# ---- Helpers ----


def _coerce(part: str, element: Element) -> Any:
    model = _PART_MODELS.get(part)
    if model is None:
        raise SchemaInvariantError(f"Unknown schema part '{part}'")
    if isinstance(element, model):
        return element.model_copy(deep=True)
    return model.model_validate(element)


def _table(schema: Schema, table_id: Optional[str]) -> Table:
    if not table_id:
        raise SchemaInvariantError("parent_id is required for fields and actions")
    table = schema.get_table(table_id)
    if table is None:
        raise TableNotFoundError(table_id)
    return table


def validate_table_keys(table: Table, detail: Optional[str] = None) -> None:
    if not any(f.is_key for f in table.fields):
        raise KeyFieldRequiredError(table.name or table.id, detail)


def reorder(items: List[Any], old_index: int, new_index: int) -> List[Any]:
    if not 0 <= old_index < len(items):
        raise SchemaInvariantError(f"Index {old_index} out of range (0..{len(items) - 1})")
    out = list(items)
    moved = out.pop(old_index)
    out.insert(min(max(new_index, 0), len(out)), moved)
    return out


def touched_tables(part: str, element_id: Optional[str], parent_id: Optional[str]) -> List[str]:
    """Table ids whose validators an edit can invalidate."""
    if part in ("fields", "actions") and parent_id:
        return [parent_id]
    if part == "tables" and element_id:
        return [element_id]
    return []


# ---- Operations ----


def add_element(
    schema: Schema, part: Part, element: Element, parent_id: Optional[str] = None
) -> Schema:
    out = schema.model_copy(deep=True)
    el = _coerce(part, element)

    if part == "tables":
        validate_table_keys(el)
        out.tables.append(el)
    elif part == "views":
        out.views.append(el)
    elif part == "fields":
        table = _table(out, parent_id)
        old_count = len(table.fields)
        for view in out.views:
            ids = view.field_ids()
            # views showing every field keep doing so
            if view.table_id == table.id and ids is not None and len(ids) == old_count:
                view.config["fields"] = ids + [el.id]
        table.fields.append(el)
    elif part == "actions":
        _table(out, parent_id).actions.append(el)
    return out


def update_element(
    schema: Schema, part: Part, element: Element, parent_id: Optional[str] = None
) -> Schema:
    out = schema.model_copy(deep=True)
    el = _coerce(part, element)

    if part == "tables":
        validate_table_keys(el)
        out.tables = [el if t.id == el.id else t for t in out.tables]
    elif part == "views":
        out.views = [el if v.id == el.id else v for v in out.views]
    elif part == "fields":
        table = _table(out, parent_id)
        table.fields = [el if f.id == el.id else f for f in table.fields]
        validate_table_keys(table)
    elif part == "actions":
        table = _table(out, parent_id)
        table.actions = [el if a.id == el.id else a for a in table.actions]
    return out


def delete_element(
    schema: Schema, part: Part, element_id: str, parent_id: Optional[str] = None
) -> Schema:
    out = schema.model_copy(deep=True)

    if part == "tables":
        out.tables = [t for t in out.tables if t.id != element_id]
    elif part == "views":
        out.views = [v for v in out.views if v.id != element_id]
    elif part == "fields":
        table = _table(out, parent_id)
        table.fields = [f for f in table.fields if f.id != element_id]
        validate_table_keys(table, "Cannot delete field")
        for view in out.views:
            ids = view.field_ids()
            if view.table_id == table.id and ids is not None:
                view.config["fields"] = [i for i in ids if i != element_id]
    elif part == "actions":
        table = _table(out, parent_id)
        table.actions = [a for a in table.actions if a.id != element_id]
    else:
        raise SchemaInvariantError(f"Unknown schema part '{part}'")
    return out


def reorder_element(
    schema: Schema,
    part: Part,
    old_index: int,
    new_index: int,
    parent_id: Optional[str] = None,
) -> Schema:
    out = schema.model_copy(deep=True)

    if part == "tables":
        out.tables = reorder(out.tables, old_index, new_index)
    elif part == "views":
        out.views = reorder(out.views, old_index, new_index)
    elif part == "fields":
        table = _table(out, parent_id)
        table.fields = reorder(table.fields, old_index, new_index)
    elif part == "actions":
        table = _table(out, parent_id)
        table.actions = reorder(table.actions, old_index, new_index)
    else:
        raise SchemaInvariantError(f"Unknown schema part '{part}'")
    return out


# ---- Service-backed mutator ----


class SchemaMutator:
    """
    Load → edit → save against the DataService.

    Example:
        mutator = SchemaMutator(service)
        schema = mutator.delete("app-1", "fields", "email", parent_id="users")
    """

    def __init__(self, service: "DataService"):
        self.service = service

    def _load(self, schema_id: str) -> Schema:
        schema = self.service.get_schema(schema_id)
        if schema is None:
            raise SchemaNotFoundError(schema_id)
        return schema

    def _save(self, schema: Schema, tables: List[str]) -> Schema:
        for table_id in tables:
            self.service.compiler.invalidate(table_id)
        self.service.set_schema(schema)
        return schema

    def add(self, schema_id: str, part: Part, element: Element, parent_id: Optional[str] = None) -> Schema:
        el = _coerce(part, element)
        new = add_element(self._load(schema_id), part, el, parent_id)
        return self._save(new, touched_tables(part, getattr(el, "id", None), parent_id))

    def update(self, schema_id: str, part: Part, element: Element, parent_id: Optional[str] = None) -> Schema:
        el = _coerce(part, element)
        new = update_element(self._load(schema_id), part, el, parent_id)
        return self._save(new, touched_tables(part, getattr(el, "id", None), parent_id))

    def delete(self, schema_id: str, part: Part, element_id: str, parent_id: Optional[str] = None) -> Schema:
        new = delete_element(self._load(schema_id), part, element_id, parent_id)
        return self._save(new, touched_tables(part, element_id, parent_id))

    def reorder(
        self,
        schema_id: str,
        part: Part,
        old_index: int,
        new_index: int,
        parent_id: Optional[str] = None,
    ) -> Schema:
        new = reorder_element(self._load(schema_id), part, old_index, new_index, parent_id)
        _logger.debug("Reordered %s of %s: %d → %d", part, schema_id, old_index, new_index)
        return self._save(new, touched_tables(part, None, parent_id))
