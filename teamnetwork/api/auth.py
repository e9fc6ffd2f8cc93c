"""Bearer-token authentication against Supabase-issued access tokens."""
from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import Header, HTTPException
from jose import JWTError, jwt

from teamnetwork.shared import config

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str | None = None


def get_current_user(authorization: str | None = Header(default=None)) -> AuthenticatedUser:
    if not authorization or not config.SUPABASE_JWT_SECRET:
        raise HTTPException(status_code=401, detail="Unauthorized")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        claims = jwt.decode(
            token,
            config.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=config.SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as exc:
        logger.info("auth_token_rejected", error=str(exc))
        raise HTTPException(status_code=401, detail="Unauthorized") from exc

    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return AuthenticatedUser(id=user_id, email=claims.get("email"))
