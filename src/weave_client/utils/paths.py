# src/weave_client/utils/paths.py
"""
Path management for files the client keeps on disk.

Data files live in the current working directory unless a root is given.
"""

from pathlib import Path
from typing import Optional, Union


def get_default_root() -> Path:
    return Path.cwd()


def get_data_file(filename: str, root: Optional[Union[Path, str]] = None) -> Path:
    """
    Get the path to a data file in the root directory.

    Args:
        filename: Name of the file (e.g., ".weave_tokens.json")
        root: Optional root directory. If None, uses get_default_root().

    Returns:
        Path to the file (does not create the file)
    """
    base = Path(root) if root else get_default_root()
    return base / filename
