# src/unitable/adapters/base.py
"""
SourceAdapter contract.

An adapter bridges one kind of external system (a file, an in-memory store,
an API, a warehouse) to the uniform table/row model. Every method beyond
`adapter_id` and `capabilities` is optional; the bitmask says which ones are
implemented and callers check `supports()` first.

The `secret` argument is the decrypted content of the table's connection
(for example an API token), or None when the table has no connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from unitable.adapters.capabilities import AdapterCapabilities, QueryCapabilities

if TYPE_CHECKING:
    from unitable.adapters.descriptor import DataSourceDescriptor
    from unitable.config.models import Schema, Table


@dataclass(frozen=True)
class AuthResult:
    name: str
    content: str
    email: Optional[str] = None


@dataclass(frozen=True)
class TableEntry:
    """One entry when browsing a source: a table, or a folder holding more."""
    name: str
    path: List[str]
    is_table: bool = True


class SourceAdapter:
    adapter_id: str = ""
    name: str = ""
    capabilities: AdapterCapabilities = AdapterCapabilities.NONE

    def supports(self, cap: AdapterCapabilities) -> bool:
        return (self.capabilities & cap) == cap

    def _unsupported(self, what: str) -> NotImplementedError:
        return NotImplementedError(f"Adapter '{self.adapter_id}' does not implement {what}")

    # ---- Discovery ----

    def list_tables(self, path: List[str], secret: Optional[str] = None) -> List[TableEntry]:
        raise self._unsupported("list_tables")

    def get_table(self, path: List[str], secret: Optional[str] = None) -> "Table":
        raise self._unsupported("get_table")

    def get_query_capabilities(self, table: "Table") -> QueryCapabilities:
        return QueryCapabilities()

    # ---- Reads ----

    def get_data(self, table: "Table", secret: Optional[str] = None) -> "DataSourceDescriptor":
        raise self._unsupported("get_data")

    def get_data_stream(
        self, table: "Table", secret: Optional[str] = None
    ) -> Iterable[Dict[str, Any]]:
        raise self._unsupported("get_data_stream")

    # ---- Writes ----

    def add_row(self, table: "Table", secret: Optional[str], row: Dict[str, Any]) -> None:
        raise self._unsupported("add_row")

    def update_row(
        self,
        table: "Table",
        secret: Optional[str],
        key: Dict[str, Any],
        row: Dict[str, Any],
    ) -> None:
        raise self._unsupported("update_row")

    def delete_row(self, table: "Table", secret: Optional[str], key: Dict[str, Any]) -> None:
        raise self._unsupported("delete_row")

    # ---- Auth ----

    def authorize(self, params: Dict[str, Any]) -> AuthResult:
        raise self._unsupported("authorize")

    def get_auth_url(self) -> str:
        raise self._unsupported("get_auth_url")

    # ---- Schema documents ----

    def get_schema(self, schema_id: str) -> Optional["Schema"]:
        raise self._unsupported("get_schema")

    def save_schema(self, schema: "Schema") -> None:
        raise self._unsupported("save_schema")

    def delete_schema(self, schema_id: str) -> None:
        raise self._unsupported("delete_schema")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(adapter_id={self.adapter_id!r})"


def row_matches(row: Dict[str, Any], key: Dict[str, Any]) -> bool:
    """True when every key column in `key` equals the row's value."""
    return all(row.get(k) == v for k, v in key.items())
