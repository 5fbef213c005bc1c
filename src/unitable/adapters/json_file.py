# src/unitable/adapters/json_file.py
"""
JsonFileAdapter: one JSON document on disk holding every table and schema.

    {
      "schemas": {"<schema id>": {...}},
      "tables":  {"<table name>": [{...row...}, ...]}
    }

A missing file reads as empty; the file is created on the first write.
Writes go to a temporary sibling and are renamed into place.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from unitable.adapters.base import SourceAdapter, TableEntry, row_matches
from unitable.adapters.capabilities import AdapterCapabilities as AC
from unitable.adapters.descriptor import InlineSource
from unitable.adapters.memory import table_key
from unitable.adapters.registry import register_adapter
from unitable.config.models import Schema, Table
from unitable.inference import infer_table
from unitable.logging import get_logger

_logger = get_logger(__name__)


@register_adapter("json-file")
class JsonFileAdapter(SourceAdapter):
    name = "JSON file"
    capabilities = (
        AC.LIST_TABLES
        | AC.GET_TABLE
        | AC.GET_DATA
        | AC.ROW_WRITES
        | AC.SCHEMA_STORE
    )

    def __init__(self, path: Union[str, Path], *, adapter_id: Optional[str] = None):
        if adapter_id:
            self.adapter_id = adapter_id
        self.path = Path(path)
        self._lock = threading.Lock()

    # ---- Storage ----

    def _read(self) -> Dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {"schemas": {}, "tables": {}}
        db = json.loads(raw) if raw.strip() else {}
        db.setdefault("schemas", {})
        db.setdefault("tables", {})
        return db

    def _write(self, db: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".unitable-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(db, fh, indent=4, default=str)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        _logger.debug("Wrote %s", self.path)

    # ---- Discovery ----

    def list_tables(self, path: List[str], secret: Optional[str] = None) -> List[TableEntry]:
        if path:
            return []
        return [TableEntry(name=t, path=[t]) for t in self._read()["tables"]]

    def get_table(self, path: List[str], secret: Optional[str] = None) -> Table:
        name = path[0]
        return infer_table(name, path, self._read()["tables"].get(name, []), self.adapter_id)

    # ---- Reads ----

    def get_data(self, table: Table, secret: Optional[str] = None) -> InlineSource:
        return InlineSource(list(self._read()["tables"].get(table_key(table), [])))

    # ---- Writes ----

    def add_row(self, table: Table, secret: Optional[str], row: Dict[str, Any]) -> None:
        with self._lock:
            db = self._read()
            db["tables"].setdefault(table_key(table), []).append(row)
            self._write(db)

    def update_row(
        self,
        table: Table,
        secret: Optional[str],
        key: Dict[str, Any],
        row: Dict[str, Any],
    ) -> None:
        with self._lock:
            db = self._read()
            for existing in db["tables"].get(table_key(table), []):
                if row_matches(existing, key):
                    existing.update(row)
                    self._write(db)
                    return

    def delete_row(self, table: Table, secret: Optional[str], key: Dict[str, Any]) -> None:
        with self._lock:
            db = self._read()
            rows = db["tables"].get(table_key(table), [])
            for i, existing in enumerate(rows):
                if row_matches(existing, key):
                    del rows[i]
                    self._write(db)
                    return

    # ---- Schema documents ----

    def get_schema(self, schema_id: str) -> Optional[Schema]:
        doc = self._read()["schemas"].get(schema_id)
        return Schema.model_validate(doc) if doc is not None else None

    def save_schema(self, schema: Schema) -> None:
        with self._lock:
            db = self._read()
            db["schemas"][schema.id] = schema.to_document()
            self._write(db)

    def delete_schema(self, schema_id: str) -> None:
        with self._lock:
            db = self._read()
            if db["schemas"].pop(schema_id, None) is not None:
                self._write(db)
