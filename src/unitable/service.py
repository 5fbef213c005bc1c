# src/unitable/service.py
"""
DataService: the facade callers talk to.

It owns the three caches (schemas, connections, compiled validators), the
action executor and the query engine, and keeps schemas, connections and
permissions in "system tables" served by ordinary adapters.

Cache discipline on every write path:

  1. drop the cached entry
  2. write through the adapter
  3. cache the value just written

so a reader never observes the pre-write value once the write has begun.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, Union

from pydantic import BaseModel

from unitable.adapters.base import SourceAdapter
from unitable.adapters.registry import AdapterRegistry
from unitable.cache import TTLCache
from unitable.codec import decode_row
from unitable.config.models import (
    Action,
    ActionType,
    Connection,
    Permission,
    PermissionLevel,
    PermissionTarget,
    PermissionTargetType,
    QueryFilter,
    QueryFilterOperator,
    Schema,
    Table,
    TableQueryOptions,
)
from unitable.config.settings import CacheSettings, UnitableSettings
from unitable.engine.actions import ActionExecutor, ActionResult
from unitable.engine.query import QueryEngine
from unitable.inference import table_from_model
from unitable.logging import get_logger
from unitable.validation.compiler import ValidatorCompiler

_logger = get_logger(__name__)

# distinguishes a cache miss from a cached None
_MISSING: Any = object()


@dataclass(frozen=True)
class SystemTableOptions:
    """
    Where a system table lives.

    Args:
        source_id: Adapter id holding the rows.
        path: Path handed to the adapter (first element names the table).
        connection_id: Connection whose content is the adapter secret
            (schema table only).
        secret: Adapter secret used as-is; takes precedence over connection_id.
    """
    source_id: str
    path: Sequence[str] = ()
    connection_id: Optional[str] = None
    secret: Optional[str] = None


_CRUD_ACTIONS = [
    Action(id="add", type=ActionType.ADD),
    Action(id="update", type=ActionType.UPDATE),
    Action(id="delete", type=ActionType.DELETE),
]


def _cache(settings: CacheSettings, name: str) -> TTLCache:
    return TTLCache(settings.max_size, settings.ttl_seconds, name=name)


def _eq(field: str, value: Any) -> QueryFilter:
    return QueryFilter(field=field, operator=QueryFilterOperator.EQ, value=value)


class DataService:
    def __init__(
        self,
        schema_store: SystemTableOptions,
        connections_store: SystemTableOptions,
        permissions_store: SystemTableOptions,
        adapters: Union[AdapterRegistry, Iterable[SourceAdapter]],
        settings: Optional[UnitableSettings] = None,
        *,
        schema_cache: Optional[TTLCache] = None,
        connection_cache: Optional[TTLCache] = None,
        validator_cache: Optional[TTLCache] = None,
    ):
        self.settings = settings or UnitableSettings()
        self.adapters = adapters if isinstance(adapters, AdapterRegistry) else AdapterRegistry(list(adapters))

        self.schema_cache = schema_cache or _cache(self.settings.schema_cache, "schemas")
        self.connection_cache = connection_cache or _cache(self.settings.connection_cache, "connections")
        self.compiler = ValidatorCompiler(
            validator_cache or _cache(self.settings.validator_cache, "validators")
        )

        self.executor = ActionExecutor(
            self.adapters,
            self.compiler,
            encryption_secret=self.settings.encryption_secret,
            max_recursive_depth=self.settings.max_recursive_depth,
        )
        self.engine = QueryEngine(
            self.adapters,
            default_timeout=self.settings.query_timeout_seconds,
            threads=self.settings.duckdb_threads,
        )

        self.schema_store = schema_store
        self.connections_store = connections_store
        self.permissions_store = permissions_store

        self.schema_table = self._system_table(Schema, "schemas", schema_store)
        self.connections_table = self._system_table(Connection, "connections", connections_store)
        content = self.connections_table.get_field("content")
        if content is not None:
            content.encrypted = True
        self.permissions_table = self._system_table(Permission, "permissions", permissions_store)

    @staticmethod
    def _system_table(model: Type[BaseModel], name: str, opts: SystemTableOptions) -> Table:
        return table_from_model(
            model,
            table_id=f"_system_{name}",
            name=name,
            source_id=opts.source_id,
            path=list(opts.path) or [name],
            connection_id=opts.connection_id,
            primary_key="id",
            actions=[a.model_copy() for a in _CRUD_ACTIONS],
        )

    @property
    def encryption_secret(self) -> Optional[str]:
        return self.settings.encryption_secret

    # ========================================================================
    # Data
    # ========================================================================

    def _secret_for(self, table: Table, store: Optional[SystemTableOptions] = None) -> Optional[str]:
        if store is not None and store.secret is not None:
            return store.secret
        if table is self.connections_table:
            return None
        connection = self.get_connection(table.connection_id)
        return connection.content if connection else None

    def _query(
        self,
        table: Table,
        secret: Optional[str],
        options: Optional[TableQueryOptions] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        enc = self.encryption_secret
        decode = (lambda r: decode_row(r, table, enc)) if enc else None
        return self.engine.query(table, secret, options, timeout=timeout, decode=decode)

    def get_data(
        self,
        table: Table,
        options: Optional[TableQueryOptions] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Rows of `table` after filtering, ordering and pagination."""
        return self._query(table, self._secret_for(table), options, timeout)

    def execute_action(
        self,
        table: Table,
        action_id: str,
        rows: Iterable[Dict[str, Any]],
    ) -> ActionResult:
        return self.executor.execute(table, action_id, rows, secret=self._secret_for(table))

    def _write(self, table: Table, store: SystemTableOptions, action_id: str, doc: Dict[str, Any]) -> None:
        self.executor.execute(table, action_id, [doc], secret=self._secret_for(table, store))

    # ========================================================================
    # Schemas
    # ========================================================================

    def get_schema(self, schema_id: str) -> Optional[Schema]:
        cached = self.schema_cache.get(schema_id, _MISSING)
        if cached is not _MISSING:
            return cached

        rows = self._query(
            self.schema_table,
            self._secret_for(self.schema_table, self.schema_store),
            TableQueryOptions(filters=[_eq("id", schema_id)], limit=1),
        )
        schema = Schema.model_validate(rows[0]) if rows else None
        self.schema_cache.set(schema_id, schema)
        return schema

    def set_schema(self, schema: Schema, owner: Optional[str] = None) -> Schema:
        existing = self.get_schema(schema.id)
        self.schema_cache.delete(schema.id)
        self._invalidate_validators(existing, schema)

        self._write(
            self.schema_table,
            self.schema_store,
            "update" if existing else "add",
            schema.to_document(),
        )
        self.schema_cache.set(schema.id, schema)

        if existing is None and owner:
            self.set_permission(
                Permission(
                    id=str(uuid.uuid4()),
                    target_type=PermissionTargetType.APP,
                    target_id=schema.id,
                    email=owner,
                    level=PermissionLevel.ADMIN,
                )
            )
        return schema

    def delete_schema(self, schema_id: str) -> bool:
        schema = self.get_schema(schema_id)
        self.schema_cache.delete(schema_id)
        if schema is None:
            return False
        self._invalidate_validators(schema, None)
        self._write(self.schema_table, self.schema_store, "delete", {"id": schema_id})
        return True

    def _invalidate_validators(self, old: Optional[Schema], new: Optional[Schema]) -> None:
        if old is None:
            return
        for table in old.tables:
            current = new.get_table(table.id) if new is not None else None
            if current is None or current.fields_fingerprint() != table.fields_fingerprint():
                self.compiler.invalidate(table.id)

    # ========================================================================
    # Connections
    # ========================================================================

    def get_connection(self, connection_id: Optional[str]) -> Optional[Connection]:
        if not connection_id:
            return None
        cached = self.connection_cache.get(connection_id, _MISSING)
        if cached is not _MISSING:
            return cached

        rows = self._query(
            self.connections_table,
            self._secret_for(self.connections_table, self.connections_store),
            TableQueryOptions(filters=[_eq("id", connection_id)], limit=1),
        )
        connection = Connection.model_validate(rows[0]) if rows else None
        self.connection_cache.set(connection_id, connection)
        return connection

    def get_connections(self) -> List[Connection]:
        rows = self._query(
            self.connections_table,
            self._secret_for(self.connections_table, self.connections_store),
        )
        return [Connection.model_validate(r) for r in rows]

    def set_connection(self, connection: Connection, owner: Optional[str] = None) -> Connection:
        existing = self.get_connection(connection.id)
        self.connection_cache.delete(connection.id)

        self._write(
            self.connections_table,
            self.connections_store,
            "update" if existing else "add",
            connection.to_document(),
        )
        self.connection_cache.set(connection.id, connection)

        if existing is None and owner:
            self.set_permission(
                Permission(
                    id=str(uuid.uuid4()),
                    target_type=PermissionTargetType.CONNECTION,
                    target_id=connection.id,
                    email=owner,
                    level=PermissionLevel.ADMIN,
                )
            )
        return connection

    def delete_connection(self, connection_id: str) -> bool:
        connection = self.get_connection(connection_id)
        self.connection_cache.delete(connection_id)
        if connection is None:
            return False
        self._write(self.connections_table, self.connections_store, "delete", {"id": connection_id})
        return True

    # ========================================================================
    # Permissions
    # ========================================================================

    def _permissions(self, filters: List[QueryFilter], limit: Optional[int] = None) -> List[Permission]:
        rows = self._query(
            self.permissions_table,
            self._secret_for(self.permissions_table, self.permissions_store),
            TableQueryOptions(filters=filters, limit=limit),
        )
        return [Permission.model_validate(r) for r in rows]

    def get_permissions(self, target: PermissionTarget) -> List[Permission]:
        return self._permissions(
            [
                _eq("targetType", PermissionTargetType(target.target_type).value),
                _eq("targetId", target.target_id),
            ]
        )

    def get_permission(self, permission_id: str) -> Optional[Permission]:
        found = self._permissions([_eq("id", permission_id)], limit=1)
        return found[0] if found else None

    def get_user_permission(self, target: PermissionTarget, email: str) -> Optional[Permission]:
        wanted = email.lower()
        for p in self.get_permissions(target):
            if p.email.lower() == wanted:
                return p
        return None

    def get_permissions_by_user(
        self, email: str, target_type: Optional[PermissionTargetType] = None
    ) -> List[Permission]:
        filters = [_eq("email", email.lower())]
        if target_type is not None:
            filters.append(_eq("targetType", PermissionTargetType(target_type).value))
        return self._permissions(filters)

    def has_permission(
        self, target: PermissionTarget, email: str, required_level: PermissionLevel
    ) -> bool:
        permission = self.get_user_permission(target, email)
        if permission is None:
            return False
        return permission.level.satisfies(required_level)

    def set_permission(self, permission: Permission) -> Permission:
        permission = permission.model_copy(update={"email": permission.email.lower()})
        existing = self.get_permission(permission.id)
        self._write(
            self.permissions_table,
            self.permissions_store,
            "update" if existing else "add",
            permission.to_document(),
        )
        return permission

    def delete_permission(self, permission_id: str) -> bool:
        permission = self.get_permission(permission_id)
        if permission is None:
            return False
        self._write(self.permissions_table, self.permissions_store, "delete", {"id": permission_id})
        return True

    def delete_permissions(self, target: PermissionTarget) -> int:
        permissions = self.get_permissions(target)
        for p in permissions:
            self._write(self.permissions_table, self.permissions_store, "delete", {"id": p.id})
        return len(permissions)
