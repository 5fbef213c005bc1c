# src/unitable/__init__.py
"""
Unitable - one table model over files, stores and APIs

Usage:
    # CLI
    $ unitable query users.csv --filter "age>28" --order-by age:desc --limit 10
    $ unitable infer users.parquet

    # Python API
    import unitable
    from unitable import DataService, MemoryAdapter, SystemTableOptions

    store = MemoryAdapter(adapter_id="store")
    service = DataService(
        SystemTableOptions(source_id="store"),
        SystemTableOptions(source_id="store"),
        SystemTableOptions(source_id="store"),
        [store],
        unitable.load_settings(),
    )
    rows = service.get_data(table, TableQueryOptions(limit=10))
"""

from unitable.version import VERSION as __version__

# Declarative model
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
from unitable.config.settings import UnitableSettings, load_settings

# Adapters
from unitable.adapters import (
    AdapterCapabilities,
    AdapterRegistry,
    JsonFileAdapter,
    MemoryAdapter,
    SourceAdapter,
    register_adapter,
)

# Engine
from unitable.engine import ActionExecutor, ActionResult, QueryEngine
from unitable.validation import ValidatorCompiler
from unitable.inference import infer_table, table_from_model
from unitable.schema_ops import SchemaMutator
from unitable.service import DataService, SystemTableOptions

# Errors
from unitable.errors import (
    ActionNotFoundError,
    ConfigurationError,
    DataSourceError,
    InvalidQueryError,
    KeyFieldRequiredError,
    NotFoundError,
    QueryTimeoutError,
    RecursionLimitError,
    SchemaInvariantError,
    UnitableError,
    ValidationError,
)

# Logging
from unitable.logging import get_logger

__all__ = [
    "__version__",
    # model
    "Action",
    "ActionType",
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
    "View",
    "ViewType",
    # settings
    "UnitableSettings",
    "load_settings",
    # adapters
    "AdapterCapabilities",
    "AdapterRegistry",
    "JsonFileAdapter",
    "MemoryAdapter",
    "SourceAdapter",
    "register_adapter",
    # engine
    "ActionExecutor",
    "ActionResult",
    "DataService",
    "QueryEngine",
    "SchemaMutator",
    "SystemTableOptions",
    "ValidatorCompiler",
    "infer_table",
    "table_from_model",
    # errors
    "ActionNotFoundError",
    "ConfigurationError",
    "DataSourceError",
    "InvalidQueryError",
    "KeyFieldRequiredError",
    "NotFoundError",
    "QueryTimeoutError",
    "RecursionLimitError",
    "SchemaInvariantError",
    "UnitableError",
    "ValidationError",
    # logging
    "get_logger",
]
