# src/weave_client/storage/json_file.py

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..utils.resilient_io import safe_read_json, safe_write_json

lib_logger = logging.getLogger("weave_client")


class JsonFileStorage:
    """
    Persistent scope backed by a single JSON object on disk.

    The file is re-read on every access so that several clients sharing the
    same file observe each other's writes. Writes are atomic and owner-only.
    Non-string values found in the file are ignored.
    """

    def __init__(self, path: Union[Path, str]) -> None:
        self._path = Path(path)

    def _load(self) -> Dict[str, str]:
        data = safe_read_json(self._path, lib_logger) or {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: Dict[str, str]) -> None:
        if not safe_write_json(self._path, items, lib_logger):
            lib_logger.warning(
                f"Persistent credential scope '{self._path.name}' could not be written."
            )

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        if items.get(key) == value:
            return
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key not in items:
            return
        del items[key]
        self._save(items)

    def keys(self) -> Iterable[str]:
        return list(self._load().keys())

    def __repr__(self) -> str:
        return f"JsonFileStorage(path={str(self._path)!r})"
