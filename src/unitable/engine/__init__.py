from unitable.engine.actions import ActionExecutor, ActionResult, extract_key
from unitable.engine.query import QueryEngine, build_query, resolve_descriptor

__all__ = [
    "ActionExecutor",
    "ActionResult",
    "QueryEngine",
    "build_query",
    "extract_key",
    "resolve_descriptor",
]
