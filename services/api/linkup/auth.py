"""
Request-scoped principal.

Sign-in happens against the external identity provider, which issues an
HS256 JWT (`sub` = user id, optional `name`). The API only verifies the
token and hands an explicit Principal to every engine call.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status
from jose import JWTError, jwt

from linkup.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    user_id: str
    display_name: Optional[str] = None


def decode_token(token: str) -> Principal:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    user_id = payload.get("sub")
    if not user_id:
        raise JWTError("token has no subject")
    return Principal(user_id=user_id, display_name=payload.get("name"))


def _principal_from_header(authorization: str) -> Principal:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )
    try:
        return decode_token(token.strip())
    except JWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


async def get_principal(authorization: Optional[str] = Header(None)) -> Principal:
    """FastAPI dependency: an authenticated principal is required."""
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return _principal_from_header(authorization)


async def get_optional_principal(
    authorization: Optional[str] = Header(None),
) -> Optional[Principal]:
    """FastAPI dependency for endpoints that also serve anonymous viewers."""
    if not authorization:
        return None
    return _principal_from_header(authorization)
