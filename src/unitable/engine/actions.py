# src/unitable/engine/actions.py
"""
Action execution: add / update / delete rows, and `process` chains.

Rows are applied strictly in input order and each row is validated in full
before anything reaches the adapter. `process` actions name other actions on
the same table; they are looked up by id at every step (so a cycle is
possible) and the depth counter bounds how far a chain may go.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from unitable.adapters.base import SourceAdapter
from unitable.adapters.capabilities import AdapterCapabilities as AC
from unitable.adapters.registry import AdapterRegistry
from unitable.codec import encode_row
from unitable.config.models import ActionType, Table
from unitable.errors import ActionNotFoundError, RecursionLimitError
from unitable.logging import get_logger
from unitable.validation.compiler import ValidatorCompiler

_logger = get_logger(__name__)


@dataclass
class ActionResult:
    """Rows applied / skipped per action id, across a whole execution."""
    applied: Counter = field(default_factory=Counter)
    skipped: Counter = field(default_factory=Counter)

    @property
    def total_applied(self) -> int:
        return sum(self.applied.values())

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {"applied": dict(self.applied), "skipped": dict(self.skipped)}


def extract_key(row: Dict[str, Any], table: Table) -> Dict[str, Any]:
    """Subset of `row` made of the key fields it actually carries."""
    return {f.id: row[f.id] for f in table.key_fields() if f.id in row}


class ActionExecutor:
    def __init__(
        self,
        adapters: AdapterRegistry,
        compiler: Optional[ValidatorCompiler] = None,
        *,
        encryption_secret: Optional[str] = None,
        max_recursive_depth: int = 100,
    ):
        self.adapters = adapters
        self.compiler = compiler or ValidatorCompiler()
        self.encryption_secret = encryption_secret
        self.max_recursive_depth = max_recursive_depth

    def execute(
        self,
        table: Table,
        action_id: str,
        rows: Iterable[Dict[str, Any]],
        secret: Optional[str] = None,
        depth: int = 0,
        result: Optional[ActionResult] = None,
    ) -> ActionResult:
        """
        Run action `action_id` of `table` over `rows`.

        Args:
            table: Table owning the action.
            action_id: Id of an action in `table.actions`.
            rows: Input rows, applied in order.
            secret: Connection secret passed through to the adapter.
            depth: Nesting level of `process` chains (0 for a direct call).

        Returns:
            ActionResult accumulated over this call and any sub-actions.

        Raises:
            RecursionLimitError: depth exceeded the configured maximum
            ActionNotFoundError: the table has no action `action_id`
            ValidationError: a row failed the table's validator
        """
        result = result if result is not None else ActionResult()
        if depth > self.max_recursive_depth:
            raise RecursionLimitError(depth, self.max_recursive_depth, action_id)

        action = table.get_action(action_id)
        if action is None:
            raise ActionNotFoundError(action_id, f"table '{table.id}'")

        rows = list(rows)

        if action.type == ActionType.PROCESS:
            for sub_id in action.sub_action_ids():
                self.execute(table, sub_id, rows, secret, depth + 1, result)
            return result

        adapter = self.adapters.get(table.source_id)
        if adapter is None:
            _logger.debug("No adapter '%s' for table %s; skipping %s", table.source_id, table.id, action_id)
            result.skipped[action_id] += len(rows)
            return result

        if action.type == ActionType.ADD:
            self._add(adapter, table, action_id, rows, secret, result)
        elif action.type == ActionType.UPDATE:
            self._update(adapter, table, action_id, rows, secret, result)
        elif action.type == ActionType.DELETE:
            self._delete(adapter, table, action_id, rows, secret, result)
        return result

    # ---- Handlers ----

    def _missing(self, adapter: SourceAdapter, cap: AC, table: Table, n: int) -> bool:
        if adapter.supports(cap):
            return False
        _logger.debug(
            "Adapter '%s' lacks %s; %d row(s) of %s ignored",
            adapter.adapter_id,
            cap.name,
            n,
            table.id,
        )
        return True

    def _prepare(self, table: Table, row: Dict[str, Any]) -> Dict[str, Any]:
        validated = self.compiler.validate(table, row)
        return encode_row(validated, table, self.encryption_secret)

    def _add(self, adapter, table, action_id, rows, secret, result) -> None:
        if self._missing(adapter, AC.ADD_ROW, table, len(rows)):
            result.skipped[action_id] += len(rows)
            return
        for row in rows:
            adapter.add_row(table, secret, self._prepare(table, row))
            result.applied[action_id] += 1

    def _update(self, adapter, table, action_id, rows, secret, result) -> None:
        if self._missing(adapter, AC.UPDATE_ROW, table, len(rows)):
            result.skipped[action_id] += len(rows)
            return
        for row in rows:
            key = extract_key(row, table)
            if not key:
                result.skipped[action_id] += 1
                continue
            adapter.update_row(table, secret, key, self._prepare(table, row))
            result.applied[action_id] += 1

    def _delete(self, adapter, table, action_id, rows, secret, result) -> None:
        if self._missing(adapter, AC.DELETE_ROW, table, len(rows)):
            result.skipped[action_id] += len(rows)
            return
        for row in rows:
            key = extract_key(row, table)
            if not key:
                result.skipped[action_id] += 1
                continue
            adapter.delete_row(table, secret, key)
            result.applied[action_id] += 1
