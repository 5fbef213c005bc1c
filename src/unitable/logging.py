# src/unitable/logging.py
"""
Logging helpers for Unitable.

Every module asks for its logger through `get_logger(__name__)` so all output
lands under the `unitable` namespace. The package logger carries a
NullHandler; applications (or the CLI) decide where records go.

Environment:
    UNITABLE_LOG_LEVEL   DEBUG | INFO | WARNING | ERROR (default: WARNING)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "unitable"

_root = logging.getLogger(ROOT_LOGGER_NAME)
_root.addHandler(logging.NullHandler())

_env_level = os.getenv("UNITABLE_LOG_LEVEL")
if _env_level:
    _root.setLevel(_env_level.upper())


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return a logger under the `unitable` namespace.

    Module names that already start with `unitable` are used as-is; anything
    else is nested below the package logger.
    """
    if not name or name == ROOT_LOGGER_NAME:
        return _root
    if name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_exception(logger: logging.Logger, message: str, exc: BaseException) -> None:
    """
    Log a recovered exception at WARNING.

    The traceback is only attached when DEBUG is enabled, so expected
    failures (bad ciphertext, missing optional files) stay one line.
    """
    logger.warning(
        "%s: %s: %s",
        message,
        type(exc).__name__,
        exc,
        exc_info=logger.isEnabledFor(logging.DEBUG),
    )


def configure_cli_logging(verbose: bool = False) -> None:
    """Attach a Rich stderr handler for command-line runs (replacing any earlier one)."""
    level = logging.DEBUG if verbose else logging.WARNING
    for h in list(_root.handlers):
        if getattr(h, "_unitable_cli", False):
            _root.removeHandler(h)
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    handler._unitable_cli = True  # type: ignore[attr-defined]
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    _root.addHandler(handler)
    _root.setLevel(level)
