from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from app.models import UserRole
from app.schemas.common import CamelModel


# Request schemas
class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=100)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class UpdateProfileRequest(CamelModel):
    name: Optional[str] = Field(None, max_length=100)
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=8, max_length=128)


class UpdateRoleRequest(CamelModel):
    role: UserRole


# Response schemas
class UserResponse(CamelModel):
    id: UUID
    email: str
    name: Optional[str]
    role: str
    created_at: datetime


class AuthResponse(CamelModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


class UserListResponse(CamelModel):
    users: list[UserResponse]
    total: int
