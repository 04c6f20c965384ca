from datetime import datetime
from typing import Optional
from uuid import UUID

from app.models import AccessPermission
from app.schemas.common import CamelModel


class GrantAccessRequest(CamelModel):
    """Target user by id or by email."""
    user_id: Optional[UUID] = None
    email: Optional[str] = None
    permission: AccessPermission = AccessPermission.VIEW


class UpdateAccessRequest(CamelModel):
    permission: AccessPermission


class AccessOwner(CamelModel):
    id: UUID
    email: str
    name: Optional[str]


class AccessEntryResponse(CamelModel):
    user_id: UUID
    email: str
    name: Optional[str]
    permission: str
    granted_at: datetime


class AccessListResponse(CamelModel):
    owner: Optional[AccessOwner]
    access_list: list[AccessEntryResponse]


class AccessFlagsResponse(CamelModel):
    is_owner: bool
    can_view: bool
    can_edit: bool
    can_manage: bool
    can_share: bool
    permission: Optional[str] = None
