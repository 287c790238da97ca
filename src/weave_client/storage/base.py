# src/weave_client/storage/base.py

from typing import Iterable, Optional, Protocol


class KeyValueStorage(Protocol):
    """String key/value scope used by the credential store."""

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None if the key is absent."""

    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    def remove_item(self, key: str) -> None:
        """Remove ``key``; removing an absent key is a no-op."""

    def keys(self) -> Iterable[str]:
        """Return the keys currently held by this scope."""
