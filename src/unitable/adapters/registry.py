# src/unitable/adapters/registry.py
from __future__ import annotations

from typing import Callable, Dict, Iterator, List, Optional, Type

from unitable.adapters.base import SourceAdapter
from unitable.errors import AdapterNotFoundError, DuplicateAdapterError

# Built-in adapter classes by id; instances are created per registry.
_ADAPTER_TYPES: Dict[str, Callable[..., SourceAdapter]] = {}


def register_adapter(adapter_id: str):
    """
    Decorator to register an adapter class under a stable id.
    The class must subclass SourceAdapter.
    """

    def deco(cls: Type[SourceAdapter]) -> Type[SourceAdapter]:
        if adapter_id in _ADAPTER_TYPES:
            raise DuplicateAdapterError(adapter_id)
        _ADAPTER_TYPES[adapter_id] = cls
        cls.adapter_id = adapter_id
        return cls

    return deco


def adapter_types() -> List[str]:
    return sorted(_ADAPTER_TYPES)


def create_adapter(adapter_id: str, **kwargs) -> SourceAdapter:
    ctor = _ADAPTER_TYPES.get(adapter_id)
    if ctor is None:
        raise AdapterNotFoundError(adapter_id)
    return ctor(**kwargs)


class AdapterRegistry:
    """Adapter instances addressable by the `source_id` stored on tables."""

    def __init__(self, adapters: Optional[List[SourceAdapter]] = None):
        self._adapters: Dict[str, SourceAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: SourceAdapter, adapter_id: Optional[str] = None) -> SourceAdapter:
        key = adapter_id or adapter.adapter_id
        if not key:
            raise ValueError(f"{adapter!r} has no adapter_id")
        if key in self._adapters:
            raise DuplicateAdapterError(key)
        self._adapters[key] = adapter
        return adapter

    def get(self, adapter_id: str) -> Optional[SourceAdapter]:
        return self._adapters.get(adapter_id)

    def require(self, adapter_id: str) -> SourceAdapter:
        adapter = self._adapters.get(adapter_id)
        if adapter is None:
            raise AdapterNotFoundError(adapter_id)
        return adapter

    def __contains__(self, adapter_id: str) -> bool:
        return adapter_id in self._adapters

    def __iter__(self) -> Iterator[SourceAdapter]:
        return iter(self._adapters.values())

    def __len__(self) -> int:
        return len(self._adapters)

    def ids(self) -> List[str]:
        return list(self._adapters)
