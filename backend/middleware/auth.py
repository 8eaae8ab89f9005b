"""
Bearer token authentication.

Tokens are issued by the external auth service (HS256 JWT signed with the
shared JWT_SECRET). This API only verifies them:

    Authorization: Bearer <jwt>    claims: iss, sub, role, iat, exp

Mutating order endpoints depend on require_bearer(); the status query is
public so a client can poll without refreshing credentials.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Header, HTTPException

from config import settings
from domain.errors import PermissionDeniedError, UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    subject: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def decode_access_token(token: str) -> dict:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token expired.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid access token.")


def issue_access_token(*, subject: str, role: str = "user", ttl_minutes: int | None = None) -> str:
    """Mint a token the way the auth service does (used by tests and local tooling)."""
    now = _now_utc()
    ttl = settings.jwt_access_ttl_minutes if ttl_minutes is None else ttl_minutes
    exp = now.replace(microsecond=0) + timedelta(minutes=ttl)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


async def require_bearer(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Principal:
    """Dependency: a valid bearer token is required (401 otherwise)."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Authentication required. Provide Authorization: Bearer <token>.")
    payload = decode_access_token(token)
    return Principal(subject=str(payload["sub"]), role=payload.get("role") or "user")


async def require_admin(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Principal:
    principal = await require_bearer(authorization=authorization)
    if not principal.is_admin:
        logger.warning(f"Admin endpoint refused for {principal.subject}")
        raise PermissionDeniedError("Admin role required for this endpoint.")
    return principal
