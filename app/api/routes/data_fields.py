from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user, require_editor
from app.core.config import settings
from app.models import User
from app.schemas.data_fields import (
    DataFieldCreateRequest,
    DataFieldUpdateRequest,
    DataFieldResponse,
    DataFieldListResponse,
    DataValueListResponse,
    DataValueResponse,
)
from app.services.data_field_service import DataFieldService
from app.services.history_service import HistoryService


router = APIRouter(prefix="/data-fields", tags=["Data Fields"])


@router.get("", response_model=DataFieldListResponse)
def list_data_fields(
    integration_id: Optional[UUID] = Query(None, alias="integrationId", description="Filter by integration"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List data fields with their latest value and how many KPIs use them."""
    fields = DataFieldService.get_all_data_fields(db, integration_id)
    enriched = DataFieldService.enrich_with_metadata(db, fields)

    return DataFieldListResponse(
        data_fields=[DataFieldResponse(**f) for f in enriched],
        total=len(enriched),
    )


@router.post("", response_model=DataFieldResponse, status_code=status.HTTP_201_CREATED)
def create_data_field(
    data: DataFieldCreateRequest,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    field = DataFieldService.create_data_field(db, data)
    enriched = DataFieldService.enrich_with_metadata(db, [field])
    return DataFieldResponse(**enriched[0])


@router.patch("/{field_id}", response_model=DataFieldResponse)
def update_data_field(
    field_id: UUID,
    data: DataFieldUpdateRequest,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Update a data field. Its variable name never changes."""
    field = DataFieldService.get_data_field(db, field_id)
    field = DataFieldService.update_data_field(db, field, data)
    enriched = DataFieldService.enrich_with_metadata(db, [field])
    return DataFieldResponse(**enriched[0])


@router.delete("/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_data_field(
    field_id: UUID,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Delete a data field. Rejected with 409 while any KPI uses it."""
    field = DataFieldService.get_data_field(db, field_id)
    DataFieldService.delete_data_field(db, field)


@router.get("/{field_id}/values", response_model=DataValueListResponse)
def get_field_values(
    field_id: UUID,
    period: Optional[str] = Query(None, description="1h, 6h, 24h, 7d, 30d, 90d, 6m, 1y or all"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    field = DataFieldService.get_data_field(db, field_id)
    period = period or settings.DEFAULT_HISTORY_PERIOD
    values = HistoryService.field_values(db, field.id, period)
    return DataValueListResponse(
        data_field_id=field.id,
        period=period,
        values=[DataValueResponse.model_validate(v) for v in values],
    )
