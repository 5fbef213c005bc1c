from unitable.adapters.base import AuthResult, SourceAdapter, TableEntry
from unitable.adapters.capabilities import AdapterCapabilities, QueryCapabilities
from unitable.adapters.descriptor import (
    ConnectionSource,
    DataSourceDescriptor,
    FileSource,
    InlineSource,
    StreamSource,
    UrlSource,
    as_descriptor,
)
from unitable.adapters.registry import AdapterRegistry, create_adapter, register_adapter

# Built-in adapters register themselves on import.
from unitable.adapters.memory import MemoryAdapter  # noqa: E402
from unitable.adapters.json_file import JsonFileAdapter  # noqa: E402

__all__ = [
    "AdapterCapabilities",
    "AdapterRegistry",
    "AuthResult",
    "ConnectionSource",
    "DataSourceDescriptor",
    "FileSource",
    "InlineSource",
    "JsonFileAdapter",
    "MemoryAdapter",
    "QueryCapabilities",
    "SourceAdapter",
    "StreamSource",
    "TableEntry",
    "UrlSource",
    "as_descriptor",
    "create_adapter",
    "register_adapter",
]
