# src/weave_client/refresh_coordinator.py

"""
Access-token refresh coordination.

Ensures at most ONE refresh request is in flight at any time. Every caller
that arrives while a refresh is pending awaits that same refresh and receives
its outcome. The pending slot is released once the refresh settles, so the
next caller after that starts a fresh attempt.

Refresh failures are swallowed here: the stored credentials are cleared and
callers get None, which they treat as "signed out".
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .error_handler import mask_credential
from .token_inspector import is_expired
from .token_store import AuthTokens, AuthTokenStore

lib_logger = logging.getLogger("weave_client")

RefreshFunc = Callable[[str], Awaitable[Any]]


def _consume_exception(future: "asyncio.Future[Any]") -> None:
    # a refresh abandoned by all of its waiters must not log "never retrieved"
    if not future.cancelled():
        future.exception()


class RefreshError(Exception):
    """Raised internally when a refresh response carries no usable access token."""

    pass


class RefreshCoordinator:
    """
    Single-flight wrapper around the refresh endpoint.

    Args:
        token_store: Where the current pair lives
        refresh_func: Async function that posts the refresh token and returns
            the decoded response payload; it raises on any non-success outcome
        skew_seconds: Lead time before expiry at which the access token is
            considered unusable by ensure_access_token()
    """

    def __init__(
        self,
        token_store: AuthTokenStore,
        refresh_func: RefreshFunc,
        skew_seconds: float = 30.0,
    ):
        self._token_store = token_store
        self._refresh_func = refresh_func
        self._skew_seconds = skew_seconds

        self._pending: Optional["asyncio.Future[Optional[AuthTokens]]"] = None
        self._refresh_start_time: Optional[float] = None

        # Statistics
        self._total_refreshes: int = 0
        self._successful_refreshes: int = 0
        self._failed_refreshes: int = 0

    @property
    def skew_seconds(self) -> float:
        return self._skew_seconds

    async def ensure_access_token(self) -> Optional[str]:
        """
        Return an access token that is valid for at least ``skew_seconds``.

        Refreshes when needed; returns None without touching the network if
        there is no refresh token to use.
        """
        access_token = self._token_store.get_access_token()
        if access_token and not is_expired(access_token, self._skew_seconds):
            return access_token

        if not self._token_store.get_refresh_token():
            return None

        tokens = await self.refresh_access_token()
        return tokens.access_token if tokens else None

    async def refresh_access_token(self) -> Optional[AuthTokens]:
        """
        Refresh the pair, sharing one in-flight refresh among all callers.

        Returns:
            The new pair, or None if the refresh failed (credentials cleared).
        """
        if self._pending is None:
            self._total_refreshes += 1
            self._refresh_start_time = time.time()
            self._pending = asyncio.ensure_future(self._run_refresh())
            self._pending.add_done_callback(_consume_exception)
        else:
            lib_logger.debug("Token refresh already in progress, awaiting it.")

        # shield: a cancelled waiter must not cancel the refresh for the others
        return await asyncio.shield(self._pending)

    async def _run_refresh(self) -> Optional[AuthTokens]:
        try:
            refresh_token = self._token_store.get_refresh_token()
            if not refresh_token:
                raise RefreshError("No refresh token available")

            lib_logger.info(
                f"Refreshing access token (refresh={mask_credential(refresh_token)})..."
            )
            payload = await self._refresh_func(refresh_token)
            refreshed = AuthTokens.from_payload(payload)
            if refreshed is None or not refreshed.access_token:
                raise RefreshError("Refresh response did not contain an access token")

            tokens = AuthTokens(
                access_token=refreshed.access_token,
                refresh_token=refreshed.refresh_token or refresh_token,
            )
            self._token_store.set_tokens(tokens)
            self._successful_refreshes += 1
            lib_logger.info(
                f"Access token refreshed in {time.time() - self._refresh_start_time:.2f}s."
            )
            return tokens

        except Exception as e:
            self._failed_refreshes += 1
            lib_logger.warning(f"Token refresh failed, clearing credentials: {e}")
            self._token_store.clear()
            return None

        finally:
            self._pending = None
            self._refresh_start_time = None

    def is_refresh_in_progress(self) -> bool:
        return self._pending is not None

    def get_status(self) -> Dict[str, Any]:
        """Current coordinator status for debugging/monitoring."""
        return {
            "refresh_in_progress": self._pending is not None,
            "refresh_duration": (time.time() - self._refresh_start_time)
            if self._refresh_start_time
            else None,
            "stats": {
                "total": self._total_refreshes,
                "successful": self._successful_refreshes,
                "failed": self._failed_refreshes,
            },
        }
