"""
Auth dependencies for protected FastAPI routes.
"""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import Settings
from core.errors import InvalidCredential, MissingCredential

from . import security

# Documents the bearer scheme in OpenAPI; failures are reported by this module.
bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth", bearerFormat="JWT")


def _extract_bearer_token(authorization: str | None) -> str:
    raw = (authorization or "").strip()
    if not raw:
        raise MissingCredential("Missing Authorization header.")

    parts = raw.split(" ", 1)
    if len(parts) != 2:
        raise InvalidCredential("Invalid Authorization header format.")

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        raise InvalidCredential("Authorization must be: Bearer <token>.")
    return token


async def get_verified_authorization(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """
    Verify the inbound bearer token and return the header unchanged, ready to
    be forwarded to the upstream services.
    """
    authorization = request.headers.get("Authorization")
    if credentials is not None and credentials.credentials.strip():
        token = credentials.credentials.strip()
    else:
        token = _extract_bearer_token(authorization)

    settings: Settings = request.app.state.settings
    try:
        security.decode_access_token(
            token,
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
    except security.AuthSecurityError as exc:
        raise InvalidCredential(str(exc)) from exc
    return str(authorization)
