"""Bearer token helpers. Tokens carry the user id and the admin claim."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict
from uuid import UUID

import jwt
from jwt import InvalidTokenError

from .config import get_settings
from .errors import AuthError


@dataclass(frozen=True, slots=True)
class Identity:
    user_id: UUID
    is_admin: bool = False


def issue_token(user_id: UUID, is_admin: bool = False, ttl_minutes: int | None = None) -> str:
    security = get_settings().security
    ttl = ttl_minutes if ttl_minutes is not None else security.jwt_ttl_minutes
    now = int(time.time())
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "admin": is_admin,
        "iat": now,
        "exp": now + ttl * 60,
    }
    return jwt.encode(payload, security.jwt_secret.get_secret_value(), algorithm=security.jwt_algorithm)


def decode_token(token: str) -> Identity:
    security = get_settings().security
    try:
        payload = jwt.decode(
            token,
            security.jwt_secret.get_secret_value(),
            algorithms=[security.jwt_algorithm],
        )
        return Identity(user_id=UUID(payload["sub"]), is_admin=bool(payload.get("admin", False)))
    except (InvalidTokenError, KeyError, ValueError) as exc:
        raise AuthError("Invalid token") from exc


__all__ = ["Identity", "decode_token", "issue_token"]
