# src/weave_client/config.py
"""
Centralized configuration for the API client.

All values can be overridden via environment variables:
    WEAVE_API_BASE_URL - API origin; "/api" is appended if missing (default: http://localhost:4000)
    WEAVE_TOKEN_REFRESH_SKEW_SECONDS - Lead time before access token expiry (default: 30s)
    WEAVE_GET_CACHE_TTL_SECONDS - Lifetime of cached GET results (default: 5s)
    WEAVE_GET_CACHE_MAX_ITEMS - Maximum cached GET results (default: 500)
    WEAVE_TOKEN_FILE - Persistent credential file (default: ./.weave_tokens.json)
    TIMEOUT_CONNECT / TIMEOUT_READ / TIMEOUT_WRITE / TIMEOUT_POOL - httpx timeouts
"""

import os
import logging
from pathlib import Path

import httpx

from .utils.paths import get_data_file

lib_logger = logging.getLogger("weave_client")

API_PATH_SEGMENT = "/api"


def normalize_api_base(url: str) -> str:
    """Strip trailing slashes and make sure the base ends with the API segment."""
    base = (url or "").strip().rstrip("/")
    if not base.endswith(API_PATH_SEGMENT):
        base = f"{base}{API_PATH_SEGMENT}"
    return base


def is_absolute_url(path: str) -> bool:
    lowered = path.lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def build_url(base: str, path: str) -> str:
    """Join ``path`` onto ``base``; absolute URLs pass through unchanged."""
    if is_absolute_url(path):
        return path
    if not path:
        return base
    return f"{base}/{path.lstrip('/')}"


class ClientConfig:
    """
    Environment-backed settings. Malformed values are logged and replaced
    by the defaults.
    """

    _BASE_URL = "http://localhost:4000"
    _REFRESH_SKEW = 30.0
    _CACHE_TTL = 5.0
    _CACHE_MAX_ITEMS = 500
    _TOKEN_FILE = ".weave_tokens.json"

    _CONNECT = 10.0
    _READ = 30.0
    _WRITE = 30.0
    _POOL = 30.0

    @classmethod
    def _get_env_float(cls, key: str, default: float) -> float:
        """Get a non-negative float from the environment, or return default."""
        value = os.environ.get(key)
        if value is not None:
            try:
                parsed = float(value)
                if parsed >= 0:
                    return parsed
            except ValueError:
                pass
            lib_logger.warning(
                f"Invalid value for {key}: {value}. Using default: {default}"
            )
        return default

    @classmethod
    def _get_env_int(cls, key: str, default: int) -> int:
        """Get a positive int from the environment, or return default."""
        value = os.environ.get(key)
        if value is not None:
            try:
                parsed = int(value)
                if parsed > 0:
                    return parsed
            except ValueError:
                pass
            lib_logger.warning(
                f"Invalid value for {key}: {value}. Using default: {default}"
            )
        return default

    @classmethod
    def base_url(cls) -> str:
        return normalize_api_base(os.environ.get("WEAVE_API_BASE_URL") or cls._BASE_URL)

    @classmethod
    def refresh_skew_seconds(cls) -> float:
        return cls._get_env_float("WEAVE_TOKEN_REFRESH_SKEW_SECONDS", cls._REFRESH_SKEW)

    @classmethod
    def cache_ttl_seconds(cls) -> float:
        return cls._get_env_float("WEAVE_GET_CACHE_TTL_SECONDS", cls._CACHE_TTL)

    @classmethod
    def cache_max_items(cls) -> int:
        return cls._get_env_int("WEAVE_GET_CACHE_MAX_ITEMS", cls._CACHE_MAX_ITEMS)

    @classmethod
    def token_file(cls) -> Path:
        value = os.environ.get("WEAVE_TOKEN_FILE")
        if value:
            return Path(value).expanduser()
        return get_data_file(cls._TOKEN_FILE)

    @classmethod
    def timeout(cls) -> httpx.Timeout:
        """Timeout configuration for API requests."""
        return httpx.Timeout(
            connect=cls._get_env_float("TIMEOUT_CONNECT", cls._CONNECT),
            read=cls._get_env_float("TIMEOUT_READ", cls._READ),
            write=cls._get_env_float("TIMEOUT_WRITE", cls._WRITE),
            pool=cls._get_env_float("TIMEOUT_POOL", cls._POOL),
        )
