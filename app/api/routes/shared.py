from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.rate_limit import public_limiter
from app.services.sharing_service import SharingService


router = APIRouter(prefix="/shared", tags=["Shared"])


@router.get("/{token}")
@public_limiter.limit("60/minute")
def view_shared_resource(
    request: Request,
    token: str,
    db: Session = Depends(get_db),
):
    """
    Public read-only view of a shared dashboard or KPI. No authentication.

    Target keys are left out of the body entirely when the link hides them,
    so the payload is returned as-is rather than through a response model.
    Errors carry error_code SHARE_LINK_NOT_FOUND, SHARE_LINK_EXPIRED or
    SHARE_LINK_INACTIVE and a matching reason.
    """
    return SharingService.access_shared(db, token)
