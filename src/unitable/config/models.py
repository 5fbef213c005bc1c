# src/unitable/config/models.py
"""
Declarative table model: fields, tables, actions, views, schemas,
connections and permissions.

Documents are exchanged in camelCase (`isRequired`, `sourceId`, `targetType`)
and accepted in either spelling; Python code uses snake_case attributes.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field as PydField
from pydantic.alias_generators import to_camel

# Every walker over nested json/list fields stops here.
MAX_FIELD_DEPTH = 32


class _Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_document(self) -> Dict[str, Any]:
        """JSON-safe dict with camelCase keys, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    EMAIL = "email"
    DROPDOWN = "dropdown"
    BOOLEAN = "boolean"
    REFERENCE = "reference"
    JSON = "json"
    LIST = "list"

    def __str__(self) -> str:
        return self.value


FieldKind = Literal["scalar", "struct", "list"]


class Field(_Document):
    """
    One column of a table.

    `json` fields may declare sub-fields; `list` fields may declare the type of
    their elements through `child`. Without those the value is unstructured
    and stored as an opaque JSON string.
    """

    id: str
    name: str
    type: FieldType = FieldType.TEXT
    is_required: bool = False
    is_key: bool = False
    encrypted: bool = False

    # text
    min_length: Optional[int] = PydField(default=None, ge=0)
    max_length: Optional[int] = PydField(default=None, ge=0)
    # number
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    # date
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    # dropdown
    options: Optional[List[str]] = None
    # reference
    reference_to: Optional[str] = None

    fields: Optional[List["Field"]] = None
    child: Optional["Field"] = None

    @property
    def kind(self) -> FieldKind:
        if self.type == FieldType.JSON and self.fields:
            return "struct"
        if self.type == FieldType.LIST and self.child is not None:
            return "list"
        return "scalar"

    @property
    def is_opaque(self) -> bool:
        """Stored as a plain string column (ciphertext or serialized JSON)."""
        if self.encrypted:
            return True
        if self.type == FieldType.JSON and not self.fields:
            return True
        if self.type == FieldType.LIST and self.child is None:
            return True
        return False


class ActionType(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    PROCESS = "process"

    def __str__(self) -> str:
        return self.value


class Action(_Document):
    """
    A named operation on a table.

    `process` actions list the ids of the actions they run, in order, under
    `config["actions"]`.
    """

    id: str
    name: str = ""
    type: ActionType
    config: Dict[str, Any] = PydField(default_factory=dict)

    def sub_action_ids(self) -> List[str]:
        ids = self.config.get("actions") or []
        return [str(i) for i in ids]


# ---------------------------------------------------------------------------
# Tables, views, schemas
# ---------------------------------------------------------------------------


class Table(_Document):
    id: str
    name: str
    source_id: str
    connection_id: Optional[str] = None
    path: List[str] = PydField(default_factory=list)
    fields: List[Field] = PydField(default_factory=list)
    actions: List[Action] = PydField(default_factory=list)

    def key_fields(self) -> List[Field]:
        return [f for f in self.fields if f.is_key]

    def get_field(self, field_id: str) -> Optional[Field]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def get_action(self, action_id: str) -> Optional[Action]:
        for a in self.actions:
            if a.id == action_id:
                return a
        return None

    def fields_fingerprint(self) -> str:
        """Stable hash of the field list; changes whenever any field changes."""
        payload = json.dumps(
            [f.to_document() for f in self.fields],
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


class ViewType(str, Enum):
    TABLE = "table"
    FORM = "form"


class View(_Document):
    id: str
    name: str
    table_id: str
    type: ViewType = ViewType.TABLE
    config: Dict[str, Any] = PydField(default_factory=dict)

    def field_ids(self) -> Optional[List[str]]:
        ids = self.config.get("fields")
        return list(ids) if isinstance(ids, list) else None


class Schema(_Document):
    id: str
    name: str
    tables: List[Table] = PydField(default_factory=list)
    views: List[View] = PydField(default_factory=list)

    def get_table(self, table_id: str) -> Optional[Table]:
        for t in self.tables:
            if t.id == table_id:
                return t
        return None


# ---------------------------------------------------------------------------
# Connections and permissions
# ---------------------------------------------------------------------------


class Connection(_Document):
    id: str
    source_id: str
    name: str = ""
    content: Optional[str] = None


class PermissionTargetType(str, Enum):
    APP = "app"
    CONNECTION = "connection"

    def __str__(self) -> str:
        return self.value


class PermissionLevel(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def satisfies(self, required: "PermissionLevel") -> bool:
        """True when this level is at least `required`."""
        return self.rank >= PermissionLevel(required).rank


_LEVEL_RANK = {
    PermissionLevel.READ: 1,
    PermissionLevel.WRITE: 2,
    PermissionLevel.ADMIN: 3,
}


class Permission(_Document):
    id: str
    target_type: PermissionTargetType
    target_id: str
    email: str
    level: PermissionLevel


class PermissionTarget(_Document):
    target_type: PermissionTargetType
    target_id: str


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class QueryFilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"

    def __str__(self) -> str:
        return self.value


class QueryFilter(_Document):
    field: str
    operator: QueryFilterOperator = QueryFilterOperator.EQ
    value: Any = None


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class OrderBy(_Document):
    field: str
    direction: SortDirection = SortDirection.ASC


class TableQueryOptions(_Document):
    filters: List[QueryFilter] = PydField(default_factory=list)
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = PydField(default=None, ge=0)
    offset: Optional[int] = PydField(default=None, ge=0)


Field.model_rebuild()
