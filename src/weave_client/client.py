# src/weave_client/client.py

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterator, Mapping
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import httpx

from .config import ClientConfig, build_url, normalize_api_base
from .error_handler import (
    ApiError,
    envelope_error,
    mask_credential,
    network_error,
    normalize_error,
    read_only_error,
)
from .refresh_coordinator import RefreshCoordinator
from .request_deduplicator import RequestDeduplicator
from .storage import JsonFileStorage, MemoryStorage
from .token_store import AuthTokenStore

lib_logger = logging.getLogger("weave_client")

REFRESH_PATH = "/auth/refresh"
AUTH_PATH_MARKER = "/auth/"
STREAM_CHUNK_SIZE = 64 * 1024

READ_METHODS = frozenset({"GET"})
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
PREFLIGHT_METHODS = frozenset({"OPTIONS"})

# Requests to these paths never trigger a refresh (matched by substring)
NON_REFRESHABLE_AUTH_PATHS = (
    "/auth/signin",
    "/auth/sign-in",
    "/auth/login",
    "/auth/signup",
    "/auth/sign-up",
    "/auth/refresh",
    "/auth/google",
    "/auth/oauth",
    "/auth/callback",
    "/auth/verify-email",
    "/auth/resend-verification",
    "/auth/demo",
)


def is_non_refreshable_path(path: str) -> bool:
    lowered = path.lower()
    return any(marker in lowered for marker in NON_REFRESHABLE_AUTH_PATHS)


def is_auth_path(path: str) -> bool:
    """Authentication endpoints are never subject to the read-only role check."""
    return AUTH_PATH_MARKER in path.lower()


def _to_bytes(chunk: Any) -> bytes:
    return chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)


async def _aiter_sync_stream(body: Any) -> AsyncIterator[bytes]:
    """Adapt a sync file object or iterator to the async stream httpx.AsyncClient needs."""
    if hasattr(body, "read"):
        while True:
            chunk = body.read(STREAM_CHUNK_SIZE)
            if not chunk:
                return
            yield _to_bytes(chunk)
    for chunk in body:
        yield _to_bytes(chunk)


def encode_body(body: Any, headers: httpx.Headers) -> Tuple[Dict[str, Any], bool]:
    """
    Turn a request body into httpx keyword arguments.

    Text and binary bodies pass through unchanged. Async iterables are
    streamed as-is; sync file objects and iterators are wrapped into an async
    stream. No stream can be replayed. Anything else is encoded as JSON,
    setting a JSON content type unless the caller chose one.

    Returns:
        (httpx kwargs, whether the body can be sent a second time)
    """
    if body is None:
        return {}, True
    if isinstance(body, (str, bytes)):
        return {"content": body}, True
    if isinstance(body, (bytearray, memoryview)):
        return {"content": bytes(body)}, True
    if isinstance(body, AsyncIterable):
        return {"content": body}, False
    if hasattr(body, "read") or isinstance(body, Iterator):
        return {"content": _aiter_sync_stream(body)}, False

    if "content-type" not in headers:
        headers["Content-Type"] = "application/json"
    return {"content": json.dumps(body).encode("utf-8")}, True


def parse_response(response: httpx.Response) -> Any:
    """Decode a response body: None for no content, JSON or text by content type."""
    if response.status_code == 204 or not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type.lower():
        try:
            return response.json()
        except ValueError:
            lib_logger.debug("Response claimed JSON but did not parse; returning text.")
            return response.text
    return response.text


def unwrap_envelope(payload: Any, status_text: str = "") -> Any:
    """
    Unwrap ``{"success": bool, "data": ...}`` envelopes.

    A false flag raises even on an HTTP success status. Payloads without a
    boolean ``success`` field pass through unchanged.
    """
    if isinstance(payload, Mapping) and isinstance(payload.get("success"), bool):
        if not payload["success"]:
            raise envelope_error(payload, status_text)
        return payload["data"] if "data" in payload else payload
    return payload


class ApiClient:
    """
    Authenticated client for the WeaveCarbon API.

    Attaches a bearer token to every request, refreshes it when it is about to
    expire (single-flight), retries exactly once after a 401, unwraps response
    envelopes, deduplicates concurrent GETs and caches their results briefly.
    Every failure surfaces as an ApiError.

    Args:
        base_url: API origin; "/api" is appended if missing. Defaults to
            ClientConfig.base_url().
        token_store: Credential store. Defaults to a JSON file (persistent
            scope) plus process memory (session scope).
        mutation_policy: Callable returning False when the current user may
            not mutate data (e.g. a RolePolicy).
        http_client: Optional pre-built httpx.AsyncClient (not closed by us).
        transport: Optional httpx transport for the client we build.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_store: Optional[AuthTokenStore] = None,
        mutation_policy: Optional[Callable[[], bool]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        refresh_skew_seconds: Optional[float] = None,
        cache_ttl_seconds: Optional[float] = None,
        cache_max_items: Optional[int] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self.base_url = (
            normalize_api_base(base_url) if base_url else ClientConfig.base_url()
        )
        self.token_store = token_store or AuthTokenStore(
            persistent=JsonFileStorage(ClientConfig.token_file()),
            session=MemoryStorage(),
        )
        self._mutation_policy = mutation_policy

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            transport=transport, timeout=timeout or ClientConfig.timeout()
        )

        self.refresh_coordinator = RefreshCoordinator(
            self.token_store,
            self._post_refresh,
            skew_seconds=refresh_skew_seconds
            if refresh_skew_seconds is not None
            else ClientConfig.refresh_skew_seconds(),
        )
        self.deduplicator = RequestDeduplicator(
            ttl_seconds=cache_ttl_seconds
            if cache_ttl_seconds is not None
            else ClientConfig.cache_ttl_seconds(),
            max_items=cache_max_items or ClientConfig.cache_max_items(),
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    @property
    def mutation_policy(self) -> Optional[Callable[[], bool]]:
        return self._mutation_policy

    def set_mutation_policy(self, policy: Optional[Callable[[], bool]]) -> None:
        self._mutation_policy = policy

    def build_url(self, path: str, params: Optional[Any] = None) -> str:
        url = httpx.URL(build_url(self.base_url, path))
        if params:
            url = url.copy_merge_params(params)
        return str(url)

    async def _resolve_access_token(self, path: str) -> Optional[str]:
        if is_non_refreshable_path(path):
            return self.token_store.get_access_token()
        return await self.refresh_coordinator.ensure_access_token()

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Any] = None,
    ) -> Any:
        """
        Perform one authenticated API request.

        Args:
            path: Path relative to the API base, or an absolute URL
            method: HTTP method (default GET)
            body: Request body; see encode_body()
            headers: Extra headers. An explicit Authorization header disables
                token handling and the 401 retry.
            params: Query parameters merged into the URL

        Returns:
            The unwrapped success payload

        Raises:
            ApiError: On any non-success outcome
        """
        method = (method or "GET").upper()

        if (
            method in MUTATING_METHODS
            and not is_auth_path(path)
            and self._mutation_policy is not None
            and not self._mutation_policy()
        ):
            lib_logger.info(f"Blocked {method} {path}: current role is read-only.")
            raise read_only_error()

        request_headers = httpx.Headers(headers or {})
        explicit_auth = "authorization" in request_headers
        if not explicit_auth:
            token = await self._resolve_access_token(path)
            if token:
                request_headers["Authorization"] = f"Bearer {token}"

        content_kwargs, replayable = encode_body(body, request_headers)
        url = self.build_url(path, params)

        async def execute() -> Any:
            return await self._execute(
                method,
                url,
                path,
                request_headers,
                content_kwargs,
                replayable=replayable,
                explicit_auth=explicit_auth,
            )

        if method in READ_METHODS:
            key = self.deduplicator.make_key(url, request_headers.get("authorization"))
            return await self.deduplicator.execute_or_wait(key, execute)

        result = await execute()
        if method in MUTATING_METHODS:
            self.deduplicator.invalidate()
        return result

    def _can_retry_after_refresh(
        self, method: str, path: str, replayable: bool, explicit_auth: bool
    ) -> bool:
        return (
            not explicit_auth
            and replayable
            and method not in PREFLIGHT_METHODS
            and not is_non_refreshable_path(path)
            and self.token_store.get_refresh_token() is not None
        )

    async def _execute(
        self,
        method: str,
        url: str,
        path: str,
        headers: httpx.Headers,
        content_kwargs: Dict[str, Any],
        replayable: bool,
        explicit_auth: bool,
    ) -> Any:
        response = await self._send(method, url, headers, content_kwargs)

        if response.status_code == 401 and self._can_retry_after_refresh(
            method, path, replayable, explicit_auth
        ):
            lib_logger.info(f"{method} {path} returned 401; refreshing and retrying once.")
            tokens = await self.refresh_coordinator.refresh_access_token()
            if tokens and tokens.access_token:
                retry_headers = httpx.Headers(headers)
                retry_headers["Authorization"] = f"Bearer {tokens.access_token}"
                response = await self._send(method, url, retry_headers, content_kwargs)

        payload = parse_response(response)
        if not response.is_success:
            error = normalize_error(payload, response.status_code, response.reason_phrase)
            lib_logger.debug(f"{method} {path} failed: {error!r}")
            raise error

        return unwrap_envelope(payload, response.reason_phrase)

    async def _send(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        content_kwargs: Dict[str, Any],
    ) -> httpx.Response:
        lib_logger.debug(
            f"{method} {url} (auth={mask_credential(headers.get('authorization'))})"
        )
        try:
            return await self._http.request(method, url, headers=headers, **content_kwargs)
        except httpx.RequestError as e:
            lib_logger.warning(f"{method} {url} failed before a response: {e!r}")
            raise network_error(e) from e

    async def _post_refresh(self, refresh_token: str) -> Any:
        """Call the refresh endpoint directly, outside the retry/dedupe pipeline."""
        url = build_url(self.base_url, REFRESH_PATH)
        response = await self._http.post(
            url,
            json={"refresh_token": refresh_token},
            headers={"Accept": "application/json"},
        )
        payload = parse_response(response)
        if not response.is_success:
            raise normalize_error(payload, response.status_code, response.reason_phrase)
        return unwrap_envelope(payload, response.reason_phrase)

    async def get(self, path: str, params: Optional[Any] = None, **kwargs) -> Any:
        return await self.request(path, method="GET", params=params, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request(path, method="POST", body=body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request(path, method="PUT", body=body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs) -> Any:
        return await self.request(path, method="PATCH", body=body, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request(path, method="DELETE", **kwargs)

    async def post_with_fallback(self, paths: Iterable[str], body: Any = None) -> Any:
        """
        POST to the first path the server knows about.

        Moves on to the next path only when the server answers 404; any other
        error is raised immediately.
        """
        paths = list(paths)
        if not paths:
            raise ValueError("post_with_fallback() needs at least one path")

        last_error: Optional[ApiError] = None
        for path in paths:
            try:
                return await self.post(path, body)
            except ApiError as e:
                if e.status != 404:
                    raise
                lib_logger.debug(f"POST {path} not found, trying next endpoint.")
                last_error = e
        raise last_error

    def clear_cache(self) -> None:
        self.deduplicator.invalidate()

    def get_status(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "storage_mode": self.token_store.storage_mode().value,
            "cached_reads": self.deduplicator.cached_count,
            "in_flight_reads": self.deduplicator.in_flight_count,
            "refresh": self.refresh_coordinator.get_status(),
        }
