"""
Auth security helpers.

Tokens are issued elsewhere; this service only checks the signature and
expiry before forwarding the credential upstream.
"""

from __future__ import annotations

from typing import Any

import jwt


class AuthSecurityError(RuntimeError):
    pass


def decode_access_token(token: str, *, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError("Access token is empty.")

    try:
        payload = jwt.decode(raw, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthSecurityError("Access token is expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError("Invalid access token.") from exc

    if not isinstance(payload, dict):
        raise AuthSecurityError("Invalid access token payload.")
    return payload
