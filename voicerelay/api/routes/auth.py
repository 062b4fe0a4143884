"""
api/routes/auth.py
------------------
Authentication endpoints.

POST /auth/register  — Self-registration; always creates a 'user' account.
POST /auth/login     — Exchange handle + password for a JWT access token.
GET  /auth/me        — Return the authenticated user's profile.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicerelay.db.session import get_db
from voicerelay.dependencies import get_current_user
from voicerelay.models.user import User
from voicerelay.schemas.user import (
    LoginRequest,
    TokenResponse,
    UserRead,
    UserRegister,
)
from voicerelay.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user account",
)
async def register(
    body: UserRegister,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenResponse:
    """
    Create a new account and log it in.
    Registration never creates moderators; those are seeded at startup.
    A taken handle returns 400.
    """
    user = await UserService.register_user(db, body)
    return UserService.issue_token(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and receive a JWT access token",
)
async def login(
    body: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenResponse:
    """
    Authenticate with handle + password and receive a signed JWT valid for
    24 hours. Unknown handles and wrong passwords get the same 401.
    """
    user = await UserService.authenticate(db, body.handle, body.password)
    return UserService.issue_token(user)


@router.get(
    "/me",
    response_model=UserRead,
    summary="Get the currently authenticated user",
)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserRead:
    return UserRead.model_validate(current_user)
