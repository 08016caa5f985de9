"""
FastAPI dependency injection providers.

Provides database sessions and the signed-in user for use with FastAPI's
Depends() mechanism.

CHANGELOG:
- 2026-10-01: Add OptionalUser for action routes (STORY-105)
- 2026-09-30: Add CurrentUser session-token dependency (STORY-104)
- 2026-09-27: Initial creation (STORY-102)

TODO:
- None
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from energyshare.auth.session import SessionUser, decode_session_token
from energyshare.config import get_settings
from energyshare.db.session import get_async_session

# Type alias for injecting an async DB session via FastAPI Depends().
DbSession = Annotated[AsyncSession, Depends(get_async_session)]

# auto_error=False lets us return 401 ourselves instead of FastAPI's 403.
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer_scheme),
) -> SessionUser | None:
    """FastAPI dependency: decode the session token if one was sent.

    Args:
        credentials: Extracted by FastAPI from the Authorization header.

    Returns:
        SessionUser or None: None when no token or an invalid one was sent.
    """
    if credentials is None:
        return None
    return decode_session_token(credentials.credentials, get_settings())


async def get_current_user(
    user: SessionUser | None = Depends(get_optional_user),
) -> SessionUser:
    """FastAPI dependency: require a valid session token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired.
    """
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing session token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


# Annotated dependencies for route signatures:
#   async def my_endpoint(user: CurrentUser): ...
CurrentUser = Annotated[SessionUser, Depends(get_current_user)]
OptionalUser = Annotated[SessionUser | None, Depends(get_optional_user)]
