# src/unitable/adapters/descriptor.py
"""
Data source descriptors: what an adapter hands the query engine.

An adapter never returns query results itself. It describes where its rows
live and the engine materializes them:

  - InlineSource:     rows already in memory
  - FileSource:       a local file DuckDB can read
  - UrlSource:        a remote file, optionally with HTTP headers
  - StreamSource:     an iterable of rows, consumed once
  - ConnectionSource: a database DuckDB can ATTACH (module + connection string)

Descriptors are immutable value objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from collections.abc import Iterable
from typing import Any, Dict, List, Literal, Optional, Union

SourceFormat = Literal["json", "csv", "parquet", "ndjson", "auto"]

FORMATS = ("json", "csv", "parquet", "ndjson", "auto")


def _check_format(fmt: str) -> None:
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported source format '{fmt}' (expected one of {FORMATS})")


@dataclass(frozen=True)
class InlineSource:
    data: List[Dict[str, Any]]


@dataclass(frozen=True)
class FileSource:
    path: str
    format: SourceFormat = "auto"

    def __post_init__(self) -> None:
        _check_format(self.format)


@dataclass(frozen=True)
class UrlSource:
    url: str
    format: SourceFormat = "auto"
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_format(self.format)


@dataclass(frozen=True)
class StreamSource:
    stream: Iterable[Dict[str, Any]]


@dataclass(frozen=True)
class ConnectionSource:
    """
    A database reachable through a DuckDB extension.

    Example:
        ConnectionSource(module="postgres",
                         connection_string="host=db dbname=app",
                         target="public.users")
    """
    module: str
    connection_string: str
    target: str


DataSourceDescriptor = Union[InlineSource, FileSource, UrlSource, StreamSource, ConnectionSource]


def as_descriptor(value: Any) -> Optional[DataSourceDescriptor]:
    """Normalize what an adapter returned: bare lists and iterators are wrapped."""
    if value is None:
        return None
    if isinstance(value, (InlineSource, FileSource, UrlSource, StreamSource, ConnectionSource)):
        return value
    if isinstance(value, list):
        return InlineSource(value)
    if isinstance(value, Iterable) and not isinstance(value, (str, bytes, dict)):
        return StreamSource(value)
    raise TypeError(f"Adapter returned an unsupported data source: {type(value).__name__}")
