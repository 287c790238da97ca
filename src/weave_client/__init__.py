from typing import TYPE_CHECKING

from .client import ApiClient
from .error_handler import ApiError, normalize_error
from .refresh_coordinator import RefreshCoordinator
from .request_deduplicator import RequestDeduplicator
from .token_inspector import is_expired
from .token_store import AuthTokens, AuthTokenStore, TokenStorageMode

if TYPE_CHECKING:
    from .auth_session import AuthSession
    from .permissions import RolePolicy

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthSession",
    "AuthTokens",
    "AuthTokenStore",
    "RefreshCoordinator",
    "RequestDeduplicator",
    "RolePolicy",
    "TokenStorageMode",
    "is_expired",
    "normalize_error",
]


def __getattr__(name):
    """Lazy-load the optional session and permission helpers."""
    if name == "AuthSession":
        from .auth_session import AuthSession

        return AuthSession
    if name == "RolePolicy":
        from .permissions import RolePolicy

        return RolePolicy
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
