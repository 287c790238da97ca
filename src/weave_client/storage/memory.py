# src/weave_client/storage/memory.py

from typing import Dict, Iterable, Optional


class MemoryStorage:
    """Session scope: values live only as long as the process (or this object)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._items.keys())

    def __repr__(self) -> str:
        return f"MemoryStorage(keys={sorted(self._items)})"
