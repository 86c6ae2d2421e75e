"""Identity schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from driveschool.core.enums import RoleEnum


class RoleRead(BaseModel):
    """Role response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: RoleEnum


class UserCreate(BaseModel):
    """User registration request."""

    email: EmailStr
    display_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=128)
    role: RoleEnum = RoleEnum.STUDENT


class LoginRequest(BaseModel):
    """Credentials for login."""

    email: EmailStr
    password: str


class AccessToken(BaseModel):
    """Bearer token response."""

    access_token: str
    token_type: str = "bearer"


class UserRead(BaseModel):
    """User output schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    display_name: str
    is_active: bool
    role: RoleRead
    created_at: datetime
    updated_at: datetime
