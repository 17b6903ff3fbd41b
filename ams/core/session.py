"""Typed caller session decoded once per request.

The AMS backend issues the JWT. This service reads its claims (user id,
role, department id) into a SessionContext and forwards the raw token on
every backend call, so handlers never re-parse tokens themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError

from ams.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

USER_ID_CLAIMS = (
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier",
    "nameidentifier",
    "sub",
    "userId",
    "UserId",
    "nameid",
)
ROLE_CLAIMS = (
    "http://schemas.microsoft.com/ws/2008/06/identity/claims/role",
    "role",
    "roleName",
    "RoleName",
)


@dataclass(frozen=True)
class SessionContext:
    """Authenticated caller as seen by this service."""

    token: str
    user_id: str | None = None
    role: str | None = None
    department_id: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def has_department(self) -> bool:
        return self.department_id is not None


def _first_claim(claims: dict[str, Any], names: tuple[str, ...] | list[str]) -> str | None:
    for name in names:
        value = claims.get(name)
        if isinstance(value, list):
            value = value[0] if value else None
        if value not in (None, ""):
            return str(value)
    return None


def decode_session_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Decode a backend-issued JWT.

    The signature is verified only when ``jwt_secret_key`` is configured.

    Raises:
        HTTPException: If the token cannot be decoded or fails verification.
    """
    if settings is None:
        settings = get_settings()

    secret = settings.jwt_secret_key.get_secret_value()
    try:
        if secret:
            return jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
        return jwt.decode(token, options={"verify_signature": False})
    except PyJWTError as exc:
        logger.info("Rejected session token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def session_from_token(token: str, settings: Settings | None = None) -> SessionContext:
    """Build a SessionContext from a raw bearer token."""
    if settings is None:
        settings = get_settings()
    claims = decode_session_token(token, settings)
    return SessionContext(
        token=token,
        user_id=_first_claim(claims, USER_ID_CLAIMS),
        role=_first_claim(claims, ROLE_CLAIMS),
        department_id=_first_claim(claims, settings.department_claim_names),
        claims=claims,
    )


async def get_session_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> SessionContext:
    """FastAPI dependency returning the caller's session."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session_from_token(credentials.credentials, settings)
