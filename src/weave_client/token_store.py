# src/weave_client/token_store.py
"""
Credential store for the access/refresh token pair.

Two storage scopes are kept: a persistent one (survives restarts) and a
session one (lives with the process). A mode marker, kept in the persistent
scope, records which scope is authoritative. Reads check the authoritative
scope first, then the other scope, then a list of legacy key names. A legacy
hit is migrated to the canonical key in the authoritative scope and the legacy
key is erased.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple

from .error_handler import mask_credential
from .storage.base import KeyValueStorage
from .token_inspector import is_expired

lib_logger = logging.getLogger("weave_client")

ACCESS_TOKEN_KEY = "weavecarbon_access_token"
REFRESH_TOKEN_KEY = "weavecarbon_refresh_token"
STORAGE_MODE_KEY = "weavecarbon_token_storage_mode"

LEGACY_ACCESS_TOKEN_KEYS: Tuple[str, ...] = ("token", "access_token")
LEGACY_REFRESH_TOKEN_KEYS: Tuple[str, ...] = ("refresh_token",)
LEGACY_TOKEN_KEYS: Tuple[str, ...] = LEGACY_ACCESS_TOKEN_KEYS + LEGACY_REFRESH_TOKEN_KEYS


class TokenStorageMode(str, Enum):
    PERSISTENT = "persistent"
    SESSION = "session"


def normalize_token(value: Any) -> Optional[str]:
    """Blank or non-string values are treated as absent."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class AuthTokens:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["AuthTokens"]:
        """
        Extract a token pair from an auth response.

        The pair may sit at the top level, or be nested under ``data``,
        ``tokens`` or ``data.tokens``. Returns None when no access token can
        be found anywhere.
        """
        if not isinstance(payload, Mapping):
            return None

        candidates = [payload]
        for key in ("data", "tokens"):
            nested = payload.get(key)
            if isinstance(nested, Mapping):
                candidates.append(nested)
                inner = nested.get("tokens")
                if isinstance(inner, Mapping):
                    candidates.append(inner)

        for candidate in candidates:
            access_token = normalize_token(candidate.get("access_token"))
            if access_token:
                return cls(
                    access_token=access_token,
                    refresh_token=normalize_token(candidate.get("refresh_token")),
                )
        return None


class AuthTokenStore:
    """
    Dual-scope token persistence.

    Writes are full replacements of the pair so interleaved writers can never
    leave a mixed-scope or mixed-generation pair behind.
    """

    def __init__(
        self,
        persistent: KeyValueStorage,
        session: KeyValueStorage,
        default_mode: TokenStorageMode = TokenStorageMode.PERSISTENT,
    ):
        self._persistent = persistent
        self._session = session
        self._default_mode = default_mode

    def _scope(self, mode: TokenStorageMode) -> KeyValueStorage:
        return self._persistent if mode is TokenStorageMode.PERSISTENT else self._session

    def storage_mode(self) -> TokenStorageMode:
        """The authoritative scope, as recorded by the mode marker."""
        raw = self._persistent.get_item(STORAGE_MODE_KEY)
        try:
            return TokenStorageMode(raw) if raw else self._default_mode
        except ValueError:
            lib_logger.warning(f"Unknown token storage mode '{raw}', using default.")
            return self._default_mode

    def _scopes_in_priority(self) -> Tuple[KeyValueStorage, KeyValueStorage]:
        mode = self.storage_mode()
        primary = self._scope(mode)
        secondary = self._scope(
            TokenStorageMode.SESSION
            if mode is TokenStorageMode.PERSISTENT
            else TokenStorageMode.PERSISTENT
        )
        return primary, secondary

    def _read_token(self, key: str, legacy_keys: Sequence[str]) -> Optional[str]:
        primary, secondary = self._scopes_in_priority()

        for scope in (primary, secondary):
            value = normalize_token(scope.get_item(key))
            if value is None:
                continue
            if is_expired(value):
                lib_logger.debug(f"Purging expired '{key}' ({mask_credential(value)}).")
                scope.remove_item(key)
                continue
            return value

        for legacy_key in legacy_keys:
            for scope in (primary, secondary):
                raw = scope.get_item(legacy_key)
                if raw is None:
                    continue
                scope.remove_item(legacy_key)
                value = normalize_token(raw)
                if value is None or is_expired(value):
                    continue
                primary.set_item(key, value)
                lib_logger.info(
                    f"Migrated legacy credential key '{legacy_key}' to '{key}'."
                )
                return value

        return None

    def get_access_token(self) -> Optional[str]:
        """Current access token if present and not past its expiry."""
        return self._read_token(ACCESS_TOKEN_KEY, LEGACY_ACCESS_TOKEN_KEYS)

    def get_refresh_token(self) -> Optional[str]:
        """Current refresh token if present and not past its expiry."""
        return self._read_token(REFRESH_TOKEN_KEY, LEGACY_REFRESH_TOKEN_KEYS)

    def has_credentials(self) -> bool:
        return bool(self.get_access_token() or self.get_refresh_token())

    def _clear_legacy_keys(self) -> None:
        for scope in (self._persistent, self._session):
            for legacy_key in LEGACY_TOKEN_KEYS:
                scope.remove_item(legacy_key)

    def set_tokens(
        self, tokens: Optional[AuthTokens], persist: Optional[bool] = None
    ) -> None:
        """
        Replace the stored pair.

        ``None`` wipes both tokens, the mode marker and all legacy keys in both
        scopes. Otherwise the pair is written to the scope chosen by
        ``persist`` (or the current authoritative scope when ``persist`` is
        None) and the other scope's copies are removed.
        """
        if tokens is None:
            for scope in (self._persistent, self._session):
                scope.remove_item(ACCESS_TOKEN_KEY)
                scope.remove_item(REFRESH_TOKEN_KEY)
            self._persistent.remove_item(STORAGE_MODE_KEY)
            self._session.remove_item(STORAGE_MODE_KEY)
            self._clear_legacy_keys()
            lib_logger.debug("Cleared stored credentials.")
            return

        if persist is None:
            mode = self.storage_mode()
        else:
            mode = TokenStorageMode.PERSISTENT if persist else TokenStorageMode.SESSION

        target = self._scope(mode)
        other = self._scope(
            TokenStorageMode.SESSION
            if mode is TokenStorageMode.PERSISTENT
            else TokenStorageMode.PERSISTENT
        )

        other.remove_item(ACCESS_TOKEN_KEY)
        other.remove_item(REFRESH_TOKEN_KEY)

        for key, value in (
            (ACCESS_TOKEN_KEY, normalize_token(tokens.access_token)),
            (REFRESH_TOKEN_KEY, normalize_token(tokens.refresh_token)),
        ):
            if value is None:
                target.remove_item(key)
            else:
                target.set_item(key, value)

        self._persistent.set_item(STORAGE_MODE_KEY, mode.value)
        self._clear_legacy_keys()
        lib_logger.debug(
            f"Stored credentials in {mode.value} scope "
            f"(access={mask_credential(tokens.access_token)})."
        )

    def clear(self) -> None:
        self.set_tokens(None)
