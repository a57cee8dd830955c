"""
FastAPI dependencies for authentication.

Provides ``db_session``, ``get_auth_service`` and ``get_current_user``,
used across all protected routes.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from auth.service import AuthService
from database.models import User
from database.session import get_db_session
from database.user_store import UserStore

_bearer_scheme = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


async def get_auth_service(
    session: AsyncSession = Depends(db_session),
) -> AuthService:
    return AuthService(UserStore(session))


def _unauthenticated() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    service: AuthService = Depends(get_auth_service),
) -> User:
    """
    Resolve the Bearer token to the user holding it.

    Missing, invalid, expired and superseded tokens all get the same 401.
    """
    if credentials is None:
        raise _unauthenticated()
    user = await service.authenticate(credentials.credentials)
    if user is None:
        raise _unauthenticated()
    return user
