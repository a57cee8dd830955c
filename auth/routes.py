"""
Auth API routes — register, login, logout, current user, password change.

Route prefix: /api/v1/auth
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from auth.dependencies import get_auth_service, get_current_user
from auth.errors import EmailAlreadyRegisteredError
from auth.service import AuthService
from database.models import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# ── Request / response schemas ─────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: Optional[str] = None
    lastname: Optional[str] = None
    image: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UserResponse(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    lastname: Optional[str] = None
    role: int = 0
    image: Optional[str] = None


class AuthResponse(UserResponse):
    token: str
    token_expires_at: int


def _user_payload(user: User) -> Dict[str, Any]:
    return {
        "user_id": str(user.user_id),
        "email": user.email,
        "name": user.name,
        "lastname": user.lastname,
        "role": user.role or 0,
        "image": user.image,
    }


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    req: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Register a new user."""
    try:
        user = await service.register(
            req.email,
            req.password,
            name=req.name,
            lastname=req.lastname,
            image=req.image,
        )
    except EmailAlreadyRegisteredError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )
    return _user_payload(user)


@router.post("/login", response_model=AuthResponse)
async def login(
    req: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Login with email + password."""
    user = await service.login(req.email, req.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return {
        **_user_payload(user),
        "token": user.token,
        "token_expires_at": user.token_expires_at,
    }


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    await service.logout(user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return _user_payload(user)


@router.post("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    req: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """Change the password of the authenticated user."""
    try:
        changed = await service.change_password(user, req.current_password, req.new_password)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )
    if not changed:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
