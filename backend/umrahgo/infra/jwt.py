"""Local, structural checks for backend-issued access tokens.

The client never holds the signing key, so tokens are decoded without
signature verification. Only the shape and the ``exp`` claim are checked;
the backend remains the authority on whether a token is accepted.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError


def decode_claims(token: str) -> Dict[str, Any]:
    """Decode token claims without verifying the signature.

    Raises jwt.InvalidTokenError subclasses for anything that is not a JWT.
    """
    if not token or token.count(".") != 2:
        raise InvalidTokenError("malformed_token")
    payload = jwt.decode(
        token,
        options={"verify_signature": False, "verify_exp": False, "verify_aud": False},
        algorithms=["HS256", "RS256"],
    )
    if not isinstance(payload, dict):
        raise InvalidTokenError("malformed_claims")
    return payload


def expires_at(token: str) -> Optional[float]:
    """Return the ``exp`` claim as epoch seconds, or None when absent."""
    claims = decode_claims(token)
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return float(exp)
    except (TypeError, ValueError) as exc:
        raise InvalidTokenError("invalid_exp") from exc


def is_token_valid(token: Optional[str], *, now: Optional[float] = None) -> bool:
    """True when the token is a well-formed JWT whose expiry has not passed.

    Tokens without an ``exp`` claim are treated as valid.
    """
    if not token:
        return False
    try:
        exp = expires_at(token)
    except InvalidTokenError:
        return False
    if exp is None:
        return True
    current = time.time() if now is None else now
    return exp > current
