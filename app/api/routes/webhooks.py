from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.rate_limit import public_limiter
from app.schemas.integrations import SubmitResultResponse
from app.services.integration_service import IntegrationService


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/{integration_id}", response_model=SubmitResultResponse)
@public_limiter.limit("120/minute")
def receive_webhook(
    request: Request,
    integration_id: UUID,
    payload: Any = Body(...),
    x_webhook_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """
    Push endpoint for WEBHOOK integrations. Authenticated by the
    X-Webhook-Secret header instead of a user token.
    """
    return IntegrationService.receive_webhook(db, integration_id, x_webhook_secret, payload)
