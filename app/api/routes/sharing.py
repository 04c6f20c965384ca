from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user
from app.models import ShareResourceType, User
from app.schemas.sharing import (
    ExpirationPresetsResponse,
    ShareLinkCreateRequest,
    ShareLinkListResponse,
    ShareLinkResponse,
    ShareLinkUpdateRequest,
)
from app.services.sharing_service import EXPIRATION_PRESETS, SharingService


router = APIRouter(prefix="/sharing", tags=["Sharing"])


@router.post("", response_model=ShareLinkResponse, status_code=status.HTTP_201_CREATED)
def create_share_link(
    data: ShareLinkCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a public read-only link to a dashboard or KPI.
    Requires the EDITOR role and share access to the resource.
    """
    link = SharingService.create_share_link(db, current_user, data)
    return SharingService.to_response(link)


@router.get("", response_model=ShareLinkListResponse)
def list_share_links(
    resource_type: Optional[ShareResourceType] = Query(None, alias="resourceType"),
    resource_id: Optional[UUID] = Query(None, alias="resourceId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Links created by the current user, optionally for one resource."""
    links = SharingService.list_share_links(
        db, current_user, resource_type.value if resource_type else None, resource_id
    )
    return ShareLinkListResponse(
        share_links=[SharingService.to_response(link) for link in links],
        total=len(links),
    )


@router.get("/expiration-presets", response_model=ExpirationPresetsResponse)
def get_expiration_presets(current_user: User = Depends(get_current_user)):
    return ExpirationPresetsResponse(presets=EXPIRATION_PRESETS)


@router.get("/{link_id}", response_model=ShareLinkResponse)
def get_share_link(
    link_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    link = SharingService.get_share_link(db, current_user, link_id)
    return SharingService.to_response(link)


@router.patch("/{link_id}", response_model=ShareLinkResponse)
def update_share_link(
    link_id: UUID,
    data: ShareLinkUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Rename, enable or disable, change expiry or target visibility."""
    link = SharingService.get_share_link(db, current_user, link_id)
    link = SharingService.update_share_link(db, link, data)
    return SharingService.to_response(link)


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_share_link(
    link_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    link = SharingService.get_share_link(db, current_user, link_id)
    SharingService.delete_share_link(db, link)
