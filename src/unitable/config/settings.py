# src/unitable/config/settings.py
"""
Runtime configuration.

Precedence (lowest → highest):
  1) Built-in defaults
  2) YAML file: explicit path, else ./unitable.yml, else ./.unitable/config.yml
  3) Environment variables

Example unitable.yml:

    max_recursive_depth: 50
    query_timeout_seconds: 30
    schema_cache:
      max_size: 200
      ttl_seconds: 600
    validator_cache:
      max_size: 1000

Environment:
    UNITABLE_SECRET               encryption secret for `encrypted` fields
    UNITABLE_MAX_RECURSIVE_DEPTH  process-action depth limit
    UNITABLE_QUERY_TIMEOUT        default query timeout (seconds)
    DUCKDB_THREADS                DuckDB worker threads per query connection
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from unitable.errors import ConfigurationError

DEFAULT_CONFIG_FILES = ("unitable.yml", ".unitable/config.yml")


class CacheSettings(BaseModel):
    max_size: int = Field(default=100, ge=1)
    ttl_seconds: float = Field(default=300.0, gt=0)


class UnitableSettings(BaseModel):
    max_recursive_depth: int = Field(default=100, ge=0)
    encryption_secret: Optional[str] = Field(default=None, repr=False)
    query_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    duckdb_threads: Optional[int] = Field(default=None, ge=1)

    schema_cache: CacheSettings = Field(default_factory=CacheSettings)
    connection_cache: CacheSettings = Field(default_factory=CacheSettings)
    validator_cache: CacheSettings = Field(
        default_factory=lambda: CacheSettings(max_size=500, ttl_seconds=3600.0)
    )


def find_config_file(start: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Return the first default config file found under `start` (cwd by default)."""
    base = Path(start) if start else Path.cwd()
    for rel in DEFAULT_CONFIG_FILES:
        candidate = base / rel
        if candidate.is_file():
            return candidate
    return None


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return raw


def _env_overrides(env: Dict[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if secret := env.get("UNITABLE_SECRET"):
        out["encryption_secret"] = secret
    if depth := env.get("UNITABLE_MAX_RECURSIVE_DEPTH"):
        out["max_recursive_depth"] = depth
    if timeout := env.get("UNITABLE_QUERY_TIMEOUT"):
        out["query_timeout_seconds"] = timeout
    if threads := env.get("DUCKDB_THREADS"):
        out["duckdb_threads"] = threads
    return out


def load_settings(
    path: Optional[Union[str, Path]] = None,
    *,
    env: Optional[Dict[str, str]] = None,
    **overrides: Any,
) -> UnitableSettings:
    """
    Build settings from defaults, a YAML file, the environment and keyword
    overrides (highest precedence).

    Raises:
        ConfigurationError: unreadable file or values that fail validation
    """
    data: Dict[str, Any] = {}

    cfg_path = Path(path) if path else find_config_file()
    if path and not cfg_path.is_file():
        raise ConfigurationError(f"Config file not found: {cfg_path}")
    if cfg_path is not None:
        data.update(_read_yaml(cfg_path))

    data.update(_env_overrides(dict(os.environ) if env is None else env))
    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return UnitableSettings.model_validate(data)
    except PydanticValidationError as e:
        problems: List[str] = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems)) from e
