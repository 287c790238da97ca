# src/weave_client/storage/__init__.py

from .base import KeyValueStorage
from .json_file import JsonFileStorage
from .memory import MemoryStorage

__all__ = ["KeyValueStorage", "JsonFileStorage", "MemoryStorage"]
