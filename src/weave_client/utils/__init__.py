# src/weave_client/utils/__init__.py

from .paths import get_default_root, get_data_file
from .resilient_io import safe_read_json, safe_write_json

__all__ = [
    "get_default_root",
    "get_data_file",
    "safe_read_json",
    "safe_write_json",
]
