# src/weave_client/auth_session.py

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from .client import ApiClient
from .error_handler import ApiError, account_type_error, unauthorized_error
from .permissions import RolePolicy
from .token_store import AuthTokens

lib_logger = logging.getLogger("weave_client")

SIGN_IN_PATHS = ("/auth/signin", "/auth/sign-in", "/auth/login")
SIGN_UP_PATHS = ("/auth/signup", "/auth/sign-up")
SIGN_OUT_PATHS = ("/auth/signout", "/auth/sign-out")
NO_TOKENS_CODE = "NO_TOKENS"

ACCOUNT_TYPES = ("b2b", "b2c", "admin")
DEFAULT_ACCOUNT_TYPE = "b2b"


def normalize_account_type(value: Any) -> Optional[str]:
    return value if value in ACCOUNT_TYPES else None


def account_type_of(payload: Any) -> Optional[str]:
    """The account type a sign-in payload reports: first of ``roles``, else ``role``."""
    if not isinstance(payload, Mapping):
        return None
    roles = payload.get("roles")
    if isinstance(roles, list) and roles:
        return normalize_account_type(roles[0])
    return normalize_account_type(payload.get("role"))


@dataclass(frozen=True)
class SignUpResult:
    needs_confirmation: bool
    authenticated: bool
    payload: Dict[str, Any] = field(default_factory=dict)


class AuthSession:
    """Sign-up / sign-in / sign-out on top of an ApiClient's credential store."""

    def __init__(self, client: ApiClient):
        self._client = client

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        account_type: str = DEFAULT_ACCOUNT_TYPE,
        company_name: Optional[str] = None,
        business_type: Optional[str] = None,
        target_markets: Optional[Iterable[str]] = None,
        phone: Optional[str] = None,
    ) -> SignUpResult:
        """
        Register a new account.

        Business (``b2b``) accounts need a company name and a business type.
        Tokens are stored only when the server returns them; an account that
        still has to confirm its email address is not signed in.

        Raises:
            ValueError: If a business account lacks company details
            ApiError: If the server rejects the registration
        """
        account_type = account_type or DEFAULT_ACCOUNT_TYPE
        body: Dict[str, Any] = {
            "email": email,
            "password": password,
            "full_name": full_name,
            "role": account_type,
        }

        if account_type == "b2b":
            company_name = (company_name or "").strip()
            if not company_name:
                raise ValueError("Company name is required for business accounts.")
            if not business_type:
                raise ValueError("Business type is required for business accounts.")
            body["company_name"] = company_name
            body["business_type"] = business_type
            body["target_markets"] = list(target_markets or [])

        if phone and phone.strip():
            body["phone"] = phone.strip()

        payload = await self._client.post_with_fallback(SIGN_UP_PATHS, body)
        payload = dict(payload) if isinstance(payload, Mapping) else {}

        needs_confirmation = payload.get("requires_email_verification")
        if needs_confirmation is None:
            needs_confirmation = payload.get("needsConfirmation")
        needs_confirmation = bool(needs_confirmation)

        tokens = AuthTokens.from_payload(payload.get("tokens"))
        if tokens is not None:
            self._client.token_store.set_tokens(tokens)
            self._client.clear_cache()

        lib_logger.info(
            f"Registered {email} ({account_type}); "
            f"confirmation {'pending' if needs_confirmation else 'not required'}."
        )
        return SignUpResult(
            needs_confirmation=needs_confirmation,
            authenticated=tokens is not None and not needs_confirmation,
            payload=payload,
        )

    async def sign_in(
        self,
        email: str,
        password: str,
        remember_me: bool = True,
        account_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Exchange email/password for tokens and store them.

        ``remember_me`` selects the persistent scope; otherwise the tokens
        only live for the session. When ``account_type`` is given and the
        server reports a different one, stored credentials are cleared and
        the sign-in is refused.

        Raises:
            ApiError: If sign-in fails, the account type does not match, or
                the response carries no access token
        """
        payload = await self._client.post_with_fallback(
            SIGN_IN_PATHS,
            {"email": email, "password": password, "remember_me": remember_me},
        )

        actual_type = account_type_of(payload)
        if account_type and actual_type and actual_type != account_type:
            self._client.token_store.clear()
            self._client.clear_cache()
            lib_logger.info(f"Refused sign-in for {email}: account is {actual_type}.")
            raise account_type_error(actual_type, account_type)

        tokens = AuthTokens.from_payload(payload)
        if tokens is None:
            raise unauthorized_error(
                "Sign-in response did not include an access token.", NO_TOKENS_CODE
            )

        self._client.token_store.set_tokens(tokens, persist=remember_me)
        self._client.clear_cache()
        lib_logger.info(f"Signed in as {email}.")
        return payload if isinstance(payload, dict) else {"data": payload}

    async def sign_out(self, all_devices: bool = False) -> None:
        """
        End the session on the server (best effort), then locally.

        Local credentials, the read cache and any role held by a RolePolicy
        are cleared even when the server cannot be reached.
        """
        try:
            await self._client.post_with_fallback(
                SIGN_OUT_PATHS, {"all_devices": all_devices}
            )
        except ApiError as e:
            lib_logger.warning(
                f"Server sign-out failed (status {e.status}): {e.message}. "
                "Clearing local credentials anyway."
            )

        self._client.token_store.clear()
        self._client.clear_cache()
        policy = self._client.mutation_policy
        if isinstance(policy, RolePolicy):
            policy.set_role()
        lib_logger.info("Signed out; credentials cleared.")

    def is_authenticated(self) -> bool:
        return self._client.token_store.has_credentials()
