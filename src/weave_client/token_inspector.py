# src/weave_client/token_inspector.py
"""
Unverified inspection of bearer tokens.

Only the expiry claim is read, to skip requests that would certainly come back
401. Nothing here is a security check: a token whose shape is not recognized
is reported as never expired and the server gets the final word.
"""

import base64
import binascii
import json
import time
from typing import Any, Dict, Optional


def decode_claims(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode the payload segment of a three-part dot-delimited token.

    Returns:
        The claims mapping, or None if the token is not a decodable
        ``header.payload.signature`` triple with a JSON object payload.
    """
    if not isinstance(token, str):
        return None
    parts = token.split(".")
    if len(parts) != 3 or not parts[1]:
        return None

    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        claims = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None

    return claims if isinstance(claims, dict) else None


def get_expiry(token: str) -> Optional[float]:
    """Return the ``exp`` claim (seconds since epoch), or None if absent/non-numeric."""
    claims = decode_claims(token)
    if not claims:
        return None
    exp = claims.get("exp")
    # bool is an int subclass; it is not a timestamp
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def is_expired(token: str, skew_seconds: float = 0) -> bool:
    """
    True if the token's expiry is strictly before ``now + skew_seconds``.

    Tokens without a readable numeric expiry are never expired (fail-open).
    """
    exp = get_expiry(token)
    if exp is None:
        return False
    return time.time() + skew_seconds > exp
