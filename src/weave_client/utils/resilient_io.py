# src/weave_client/utils/resilient_io.py
"""
Resilient I/O utilities for the persistent credential scope.

- safe_write_json: atomic write (tempfile + move) with owner-only
  permissions. Never raises; returns False on failure.
- safe_read_json: tolerant read that treats a missing, unreadable or corrupt
  file as absent.
"""

import json
import os
import shutil
import tempfile
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union


def safe_read_json(
    path: Union[str, Path],
    logger: logging.Logger,
) -> Optional[Dict[str, Any]]:
    """
    Read a JSON object from disk.

    Returns:
        The parsed mapping, or None if the file is missing, unreadable,
        or does not hold a JSON object.
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read JSON from {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: expected a JSON object")
        return None
    return data


def safe_write_json(
    path: Union[str, Path],
    data: Dict[str, Any],
    logger: logging.Logger,
) -> bool:
    """
    Atomically replace ``path`` with ``data`` as JSON, readable by the owner only.

    The content goes to a sibling temp file first, which is then moved over
    the target, so readers never observe a half-written file.

    Returns:
        True on success, False on failure (never raises)
    """
    path = Path(path)
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=2)

        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=path.parent, prefix=".tmp_", suffix=".json", text=True
        )
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            f.write(content)
        try:
            os.chmod(tmp_path, 0o600)
        except OSError:
            # Windows may not support chmod
            pass

        shutil.move(tmp_path, path)
        tmp_path = None
        return True

    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Failed to write JSON to {path}: {e}")
        return False

    finally:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
