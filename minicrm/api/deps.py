"""
FastAPI Dependencies

Provides dependency injection for database sessions, work queues and the
authentication boundary.

Logging in (OAuth, session issuance) is handled by the login service; this
API only verifies the HS256 JWT it hands out, sent either as a Bearer token
or as the ``session`` cookie.

SECURITY NOTES:
- JWT payloads are never logged
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional
import logging

from fastapi import Depends, Cookie
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from minicrm.config import settings
from minicrm.database import get_db
from minicrm.exceptions import UnauthorizedError
from minicrm.services.queue_service import WorkQueue, get_delivery_queue, get_ingestion_queue

logger = logging.getLogger(__name__)


security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    subject: str
    email: Optional[str] = None


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token (used by the login service and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
    session_token: Annotated[str | None, Cookie(alias="session")] = None,
) -> Principal:
    """
    Resolve the caller from a Bearer token or the session cookie.

    Raises:
        UnauthorizedError: no token, or the token does not verify
    """
    if credentials:
        token, auth_method = credentials.credentials, "bearer"
    elif session_token:
        token, auth_method = session_token, "cookie"
    else:
        raise UnauthorizedError("Unauthorized. Please log in.")

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        logger.warning("JWT validation failed", extra={"auth_method": auth_method})
        raise UnauthorizedError("Could not validate credentials")

    sub = payload.get("sub")
    if not sub:
        raise UnauthorizedError("Could not validate credentials")

    logger.debug("User authenticated", extra={"auth_method": auth_method})
    return Principal(subject=str(sub), email=payload.get("email"))


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[Principal, Depends(get_current_user)]
IngestionQueue = Annotated[WorkQueue, Depends(get_ingestion_queue)]
DeliveryQueue = Annotated[WorkQueue, Depends(get_delivery_queue)]
