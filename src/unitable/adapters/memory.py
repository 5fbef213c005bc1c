# src/unitable/adapters/memory.py
from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional

from unitable.adapters.base import SourceAdapter, TableEntry, row_matches
from unitable.adapters.capabilities import AdapterCapabilities as AC
from unitable.adapters.descriptor import InlineSource
from unitable.adapters.registry import register_adapter
from unitable.config.models import Schema, Table
from unitable.inference import infer_table


def table_key(table: Table) -> str:
    """Storage key for a table's rows: the first path segment, else the table id."""
    return table.path[0] if table.path else table.id


@register_adapter("memory")
class MemoryAdapter(SourceAdapter):
    """
    Rows and schema documents held in process memory.

    Tables are addressed by the first element of `table.path`. Updates merge
    the new values into the first matching row; deletes remove the first
    matching row. Rows are copied on the way in and out.
    """

    name = "Memory"
    capabilities = (
        AC.LIST_TABLES
        | AC.GET_TABLE
        | AC.GET_DATA
        | AC.ROW_WRITES
        | AC.SCHEMA_STORE
    )

    def __init__(
        self,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        *,
        adapter_id: Optional[str] = None,
    ):
        if adapter_id:
            self.adapter_id = adapter_id
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.schemas: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    # ---- Discovery ----

    def list_tables(self, path: List[str], secret: Optional[str] = None) -> List[TableEntry]:
        if path:
            return []
        return [TableEntry(name=t, path=[t]) for t in self.tables]

    def get_table(self, path: List[str], secret: Optional[str] = None) -> Table:
        name = path[0]
        return infer_table(name, path, self.tables.get(name, []), self.adapter_id)

    # ---- Reads ----

    def get_data(self, table: Table, secret: Optional[str] = None) -> InlineSource:
        with self._lock:
            rows = copy.deepcopy(self.tables.get(table_key(table), []))
        return InlineSource(rows)

    # ---- Writes ----

    def add_row(self, table: Table, secret: Optional[str], row: Dict[str, Any]) -> None:
        with self._lock:
            self.tables.setdefault(table_key(table), []).append(copy.deepcopy(row))

    def update_row(
        self,
        table: Table,
        secret: Optional[str],
        key: Dict[str, Any],
        row: Dict[str, Any],
    ) -> None:
        with self._lock:
            for existing in self.tables.get(table_key(table), []):
                if row_matches(existing, key):
                    existing.update(copy.deepcopy(row))
                    return

    def delete_row(self, table: Table, secret: Optional[str], key: Dict[str, Any]) -> None:
        with self._lock:
            rows = self.tables.get(table_key(table), [])
            for i, existing in enumerate(rows):
                if row_matches(existing, key):
                    del rows[i]
                    return

    # ---- Schema documents ----

    def get_schema(self, schema_id: str) -> Optional[Schema]:
        doc = self.schemas.get(schema_id)
        return Schema.model_validate(doc) if doc is not None else None

    def save_schema(self, schema: Schema) -> None:
        self.schemas[schema.id] = schema.to_document()

    def delete_schema(self, schema_id: str) -> None:
        self.schemas.pop(schema_id, None)
