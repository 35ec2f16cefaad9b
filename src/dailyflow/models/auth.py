"""Auth API schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

PASSWORD_MIN_LENGTH = 6


class UserRegister(BaseModel):
    """Schema for registering a user."""

    full_name: str
    email: EmailStr
    password: str

    @field_validator("full_name")
    @classmethod
    def full_name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("full_name must not be empty")
        return v.strip()

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < PASSWORD_MIN_LENGTH:
            raise ValueError(
                f"password must be at least {PASSWORD_MIN_LENGTH} characters")
        return v


class UserLogin(BaseModel):
    """Schema for logging in."""

    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Public user shape."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str


class TokenResponse(BaseModel):
    """Issued bearer token with the user it belongs to."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse
