# src/unitable/errors.py
"""
Error taxonomy for Unitable.

    UnitableError
    ├── ValidationError            row rejected by a compiled validator
    ├── NotFoundError
    │   ├── ActionNotFoundError
    │   ├── TableNotFoundError
    │   └── AdapterNotFoundError
    ├── RecursionLimitError        runaway `process` action chains
    ├── SchemaInvariantError       structural rule broken by a schema mutation
    │   └── KeyFieldRequiredError
    ├── DataSourceError            ingest / query engine failures
    │   ├── InvalidQueryError
    │   └── QueryTimeoutError
    ├── ConfigurationError
    └── DuplicateAdapterError

Decryption failures are deliberately absent: the codec reports them as an
unavailable value (None) plus a log record.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class UnitableError(Exception):
    """Base class for all Unitable errors."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(UnitableError):
    """
    A row failed its table's compiled validator.

    Attributes:
        table_id: Table whose validator rejected the row.
        issues: One entry per problem: {"path", "message", "code"}, where
            `path` is the dotted field path ("address.zip", "tags.2").
    """

    def __init__(self, table_id: str, issues: List[Dict[str, str]]):
        self.table_id = table_id
        self.issues = issues
        if issues:
            first = issues[0]
            summary = f"{first['path'] or '<row>'}: {first['message']}"
            if len(issues) > 1:
                summary += f" (+{len(issues) - 1} more)"
        else:
            summary = "invalid row"
        super().__init__(f"Invalid row for table '{table_id}': {summary}")

    @property
    def paths(self) -> List[str]:
        return [issue["path"] for issue in self.issues]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "Validation Error",
            "message": str(self),
            "details": list(self.issues),
        }


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(UnitableError):
    """Something addressed by id does not exist."""

    kind = "Entity"

    def __init__(self, identifier: str, detail: Optional[str] = None):
        self.identifier = identifier
        msg = f"{self.kind} '{identifier}' not found"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ActionNotFoundError(NotFoundError):
    kind = "Action"


class TableNotFoundError(NotFoundError):
    kind = "Table"


class AdapterNotFoundError(NotFoundError):
    kind = "Adapter"


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class RecursionLimitError(UnitableError):
    """A `process` action chain went deeper than the configured maximum."""

    def __init__(self, depth: int, max_depth: int, action_id: Optional[str] = None):
        self.depth = depth
        self.max_depth = max_depth
        self.action_id = action_id
        where = f" at action '{action_id}'" if action_id else ""
        super().__init__(
            f"Max recursion depth exceeded{where}: depth {depth} > {max_depth}"
        )


class SchemaInvariantError(UnitableError):
    """A schema mutation would leave a table in an invalid structural state."""


class KeyFieldRequiredError(SchemaInvariantError):
    def __init__(self, table_name: str, detail: Optional[str] = None):
        self.table_name = table_name
        msg = f"Table '{table_name}' must have at least one key field"
        if detail:
            msg = f"{detail}. {msg}"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Data layer
# ---------------------------------------------------------------------------


class DataSourceError(UnitableError):
    """Ingesting or querying source data failed."""

    def __init__(self, message: str, table_id: Optional[str] = None):
        self.table_id = table_id
        if table_id:
            message = f"[{table_id}] {message}"
        super().__init__(message)


class InvalidQueryError(DataSourceError):
    """The query options reference unknown fields or invalid values."""


class QueryTimeoutError(DataSourceError):
    """The query was interrupted after exceeding its timeout."""


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


class ConfigurationError(UnitableError):
    """Invalid or missing configuration."""


class DuplicateAdapterError(UnitableError):
    def __init__(self, adapter_id: str):
        self.adapter_id = adapter_id
        super().__init__(f'Duplicated adapter "{adapter_id}".')


def format_error(exc: BaseException) -> str:
    """One-line rendering for CLI output."""
    if isinstance(exc, ValidationError):
        lines = [str(exc)]
        for issue in exc.issues:
            lines.append(f"  - {issue['path'] or '<row>'}: {issue['message']} [{issue['code']}]")
        return "\n".join(lines)
    if isinstance(exc, UnitableError):
        return str(exc)
    return f"{type(exc).__name__}: {exc}"
