# src/weave_client/error_handler.py

from typing import Any, Mapping, Optional

import httpx


READ_ONLY_CODE = "READ_ONLY_ROLE"
NETWORK_ERROR_CODE = "NETWORK_ERROR"
ACCOUNT_TYPE_MISMATCH_CODE = "ACCOUNT_TYPE_MISMATCH"
NO_PERMISSION_MESSAGE = "You do not have permission to perform this action."

# Classification of every ApiError surfaced to callers
ERROR_TYPES = frozenset(
    {
        "read_only",  # mutation blocked client-side, no network activity
        "unauthorized",  # 401 with no refresh path, or the retry failed too
        "envelope",  # HTTP success but success=false in the body
        "client_error",  # other 4xx
        "server_error",  # 5xx
        "network",  # the request never produced a response
    }
)


class ApiError(Exception):
    """
    The single error shape raised by the request pipeline.

    Instances are built by the factory functions in this module and are not
    mutated afterwards; every attribute is exposed read-only.

    Attributes:
        message: Human-readable message resolved from the payload
        status: HTTP status (0 when no response was received)
        code: Optional machine-readable code from a nested error object
        details: Optional structured details from a nested error object
        error_type: One of ERROR_TYPES
    """

    def __init__(
        self,
        message: str,
        status: int,
        code: Optional[str] = None,
        details: Any = None,
        error_type: str = "client_error",
    ):
        if error_type not in ERROR_TYPES:
            raise ValueError(f"Unknown ApiError type: {error_type!r}")
        super().__init__(message)
        self._message = message
        self._status = status
        self._code = code
        self._details = details
        self._error_type = error_type

    @property
    def message(self) -> str:
        return self._message

    @property
    def status(self) -> int:
        return self._status

    @property
    def code(self) -> Optional[str]:
        return self._code

    @property
    def details(self) -> Any:
        return self._details

    @property
    def error_type(self) -> str:
        return self._error_type

    @property
    def is_unauthorized(self) -> bool:
        """Callers treat this as 'session ended'."""
        return self._status == 401

    def to_dict(self) -> dict:
        data = {"message": self._message, "status": self._status}
        if self._code is not None:
            data["code"] = self._code
        if self._details is not None:
            data["details"] = self._details
        return data

    def __repr__(self) -> str:
        return (
            f"ApiError(status={self._status}, code={self._code!r}, "
            f"type={self._error_type}, message={self._message!r})"
        )


def mask_credential(credential: Optional[str]) -> str:
    """
    Mask a token for safe display in logs: shows the last 6 characters.
    """
    if not credential:
        return "<none>"
    if len(credential) > 6:
        return f"...{credential[-6:]}"
    return "***"


def _classify_status(status: int) -> str:
    if status == 401:
        return "unauthorized"
    if status >= 500:
        return "server_error"
    return "client_error"


def _resolve_message(payload: Any, status_text: str) -> str:
    if isinstance(payload, str):
        return payload if payload.strip() else status_text
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping):
            nested = error.get("message")
            if isinstance(nested, str) and nested:
                return nested
        if isinstance(error, str) and error:
            return error
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
    return status_text


def _nested_error_fields(payload: Any):
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping):
            code = error.get("code")
            return (str(code) if code is not None else None), error.get("details")
    return None, None


def normalize_error(payload: Any, status: int, status_text: str = "") -> ApiError:
    """
    Build an ApiError from a raw response payload. Never raises.

    Message resolution order: a plain string payload, the nested
    ``error.message``, a plain string ``error``, the top-level ``message``,
    then the HTTP status text. ``code`` and ``details`` come only from a
    nested error object.
    """
    status_text = status_text or f"HTTP {status}"
    message = _resolve_message(payload, status_text)
    code, details = _nested_error_fields(payload)
    return ApiError(
        message=message,
        status=status,
        code=code,
        details=details,
        error_type=_classify_status(status),
    )


def envelope_error(payload: Mapping, status_text: str = "") -> ApiError:
    """ApiError for an envelope whose success flag is false."""
    status = 400
    for key in ("status", "statusCode", "status_code"):
        value = payload.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 400:
            status = value
            break
    error = normalize_error(payload, status, status_text or "Request failed")
    return ApiError(
        message=error.message,
        status=error.status,
        code=error.code,
        details=error.details,
        error_type="envelope",
    )


def read_only_error() -> ApiError:
    return ApiError(
        message=NO_PERMISSION_MESSAGE,
        status=403,
        code=READ_ONLY_CODE,
        error_type="read_only",
    )


def network_error(exc: httpx.RequestError) -> ApiError:
    """ApiError for a transport failure; status 0 means 'no response'."""
    message = str(exc) or f"{type(exc).__name__} while contacting the API"
    return ApiError(
        message=message,
        status=0,
        code=NETWORK_ERROR_CODE,
        details={"exception": type(exc).__name__},
        error_type="network",
    )


def unauthorized_error(message: str, code: Optional[str] = None) -> ApiError:
    """ApiError for an authentication outcome detected client-side."""
    return ApiError(message=message, status=401, code=code, error_type="unauthorized")


def account_type_error(actual: str, expected: str) -> ApiError:
    """ApiError for a sign-in whose account type differs from the one requested."""
    return ApiError(
        message=f"This account is {actual.upper()}, not {expected.upper()}.",
        status=403,
        code=ACCOUNT_TYPE_MISMATCH_CODE,
        details={"account_type": actual, "expected": expected},
        error_type="client_error",
    )
