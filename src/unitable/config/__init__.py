from unitable.config.models import (
    Action,
    ActionType,
    Connection,
    Field,
    FieldType,
    OrderBy,
    Permission,
    PermissionLevel,
    PermissionTarget,
    PermissionTargetType,
    QueryFilter,
    QueryFilterOperator,
    Schema,
    SortDirection,
    Table,
    TableQueryOptions,
    View,
    ViewType,
)
from unitable.config.settings import CacheSettings, UnitableSettings, load_settings

__all__ = [
    "Action",
    "ActionType",
    "CacheSettings",
    "Connection",
    "Field",
    "FieldType",
    "OrderBy",
    "Permission",
    "PermissionLevel",
    "PermissionTarget",
    "PermissionTargetType",
    "QueryFilter",
    "QueryFilterOperator",
    "Schema",
    "SortDirection",
    "Table",
    "TableQueryOptions",
    "UnitableSettings",
    "View",
    "ViewType",
    "load_settings",
]
