"""
schemas/user.py
---------------
Pydantic models for registration, login, and user responses.

Security note:
  - hashed_password is NEVER included in any response schema.
  - Passwords require min 8 chars; enforce stronger rules in production.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class UserRegister(BaseModel):
    """Self-registration. Always creates a 'user'-role account."""
    name: str = Field(..., min_length=1, max_length=150, examples=["Maria"])
    handle: str = Field(
        ...,
        min_length=1,
        max_length=150,
        examples=["maria@example.com"],
        description="Unique, case-sensitive login handle (username or email)",
    )
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("name", "handle")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class LoginRequest(BaseModel):
    handle: str = Field(..., min_length=1, max_length=150)
    password: str = Field(..., min_length=1, max_length=128)

    # Same normalisation as registration, so a padded handle still matches
    @field_validator("handle")
    @classmethod
    def strip_handle(cls, v: str) -> str:
        return v.strip()


class UserRead(BaseModel):
    id: str
    username: str
    display_name: Optional[str] = None
    role: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    role: str
    handle: str
    name: Optional[str] = None
