"""Session JWTs and single-use token hashing."""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from jose import JWTError, jwt

from grc_api.core.settings import Settings, get_settings
from grc_api.domain.grc import utcnow


class InvalidSessionToken(Exception):
    """Raised when a session JWT is missing, malformed or expired."""


@dataclass(frozen=True, slots=True)
class SessionClaims:
    user_id: UUID
    role: str
    expires_at: datetime


def generate_token() -> str:
    """32 random bytes rendered as hex, as emailed to the user."""

    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session_token(
    user_id: UUID,
    role: str,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> str:
    config = settings or get_settings()
    issued_at = now or utcnow()
    expires_at = issued_at + timedelta(days=config.session_ttl_days)
    claims = {
        "userId": str(user_id),
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(claims, config.secret_key, algorithm=config.jwt_algorithm)


def decode_session_token(token: str, *, settings: Settings | None = None) -> SessionClaims:
    config = settings or get_settings()
    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.jwt_algorithm])
    except JWTError as exc:
        raise InvalidSessionToken(str(exc)) from exc

    try:
        user_id = UUID(str(payload["userId"]))
        role = str(payload["role"])
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=utcnow().tzinfo)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidSessionToken("Session token is missing required claims") from exc
    return SessionClaims(user_id=user_id, role=role, expires_at=expires_at)
