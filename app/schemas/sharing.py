from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.models import ShareResourceType
from app.schemas.common import CamelModel


class ShareLinkCreateRequest(CamelModel):
    resource_type: ShareResourceType
    resource_id: UUID
    name: Optional[str] = Field(None, max_length=255)
    show_target: bool = True
    expires_in: str = Field("never", description="One of 1h, 24h, 7d, 30d, never")


class ShareLinkUpdateRequest(CamelModel):
    """Send expiresIn for a preset, or expiresAt (null for never)."""
    name: Optional[str] = Field(None, max_length=255)
    active: Optional[bool] = None
    show_target: Optional[bool] = None
    expires_in: Optional[str] = None
    expires_at: Optional[datetime] = None


class ShareLinkResponse(CamelModel):
    id: UUID
    token: str
    url: str
    name: Optional[str]
    resource_type: str
    resource_id: UUID
    resource_name: Optional[str] = None
    show_target: bool
    expires_at: Optional[datetime]
    active: bool
    state: str
    access_count: int
    last_accessed_at: Optional[datetime]
    created_at: datetime


class ShareLinkListResponse(CamelModel):
    share_links: list[ShareLinkResponse]
    total: int


class ExpirationPreset(CamelModel):
    value: str
    label: str


class ExpirationPresetsResponse(CamelModel):
    presets: list[ExpirationPreset]
