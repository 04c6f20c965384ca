from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user
from app.core.config import settings
from app.core.rate_limit import limiter
from app.models import User
from app.schemas.access import AccessListResponse, GrantAccessRequest, UpdateAccessRequest
from app.schemas.kpi import (
    AvailableFieldsResponse,
    KpiCreateRequest,
    KpiUpdateRequest,
    KpiResponse,
    KpiListResponse,
    KpiHistoryResponse,
    ValidateFormulaRequest,
    ValidateFormulaResponse,
)
from app.services.access_service import AccessService, EDIT, MANAGE
from app.services.history_service import HistoryService
from app.services.kpi_service import KPIService


router = APIRouter(prefix="/kpis", tags=["KPIs"])


@router.get("", response_model=KpiListResponse)
def list_kpis(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List KPIs the current user owns or has been granted, with cached values."""
    kpis = KPIService.list_kpis(db, current_user)
    return KpiListResponse(
        kpis=[
            KPIService.to_response(k, flags=AccessService.flags_for(current_user, k))
            for k in kpis
        ],
        total=len(kpis),
    )


@router.post("", response_model=KpiResponse, status_code=status.HTTP_201_CREATED)
def create_kpi(
    data: KpiCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a new KPI from a formula and its data field sources.
    Requires the EDITOR role. Every formula variable must be a source alias and vice versa.
    """
    kpi = KPIService.create_kpi(db, current_user, data)
    return KPIService.to_response(kpi, flags=AccessService.flags_for(current_user, kpi))


@router.post("/validate-formula", response_model=ValidateFormulaResponse)
def validate_formula(
    data: ValidateFormulaRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Check formula syntax and, when sources or aliases are given, the alias round trip."""
    return KPIService.validate_formula_request(db, data.formula, data.sources, data.aliases)


@router.get("/available-fields", response_model=AvailableFieldsResponse)
def get_available_fields(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Data fields grouped by integration, for the KPI builder."""
    return AvailableFieldsResponse(integrations=KPIService.available_fields(db))


@router.get("/{kpi_id}", response_model=KpiResponse)
def get_kpi(
    kpi_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a KPI evaluated against the latest source values."""
    kpi, flags = KPIService.get_for_user(db, current_user, kpi_id)
    evaluation = KPIService.evaluate(db, kpi)
    return KPIService.to_response(kpi, evaluation, flags)


@router.patch("/{kpi_id}", response_model=KpiResponse)
def update_kpi(
    kpi_id: UUID,
    data: KpiUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    kpi, flags = KPIService.get_for_user(db, current_user, kpi_id, EDIT)
    kpi = KPIService.update_kpi(db, kpi, data)
    return KPIService.to_response(kpi, flags=flags)


@router.delete("/{kpi_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_kpi(
    kpi_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a KPI along with the widgets bound to it."""
    kpi, _ = KPIService.get_for_user(db, current_user, kpi_id, MANAGE)
    KPIService.delete_kpi(db, kpi)


@router.post("/{kpi_id}/recalculate", response_model=KpiResponse)
@limiter.limit("30/minute")
def recalculate_kpi(
    request: Request,
    kpi_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    kpi, flags = KPIService.get_for_user(db, current_user, kpi_id, EDIT)
    evaluation = KPIService.recalculate(db, kpi)
    return KPIService.to_response(kpi, evaluation, flags)


@router.get("/{kpi_id}/history", response_model=KpiHistoryResponse)
def get_kpi_history(
    kpi_id: UUID,
    period: Optional[str] = Query(None, description="1h, 6h, 24h, 7d, 30d, 90d, 6m, 1y or all"),
    interval: Optional[str] = Query(None, description="hourly, daily, weekly or monthly"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    kpi, _ = KPIService.get_for_user(db, current_user, kpi_id)
    return HistoryService.get_kpi_history(db, kpi, period or settings.DEFAULT_HISTORY_PERIOD, interval)


# --- Access ---

@router.get("/{kpi_id}/access", response_model=AccessListResponse)
def list_kpi_access(
    kpi_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    kpi, _ = KPIService.get_for_user(db, current_user, kpi_id)
    return AccessService.list_access(db, kpi)


@router.post("/{kpi_id}/access", response_model=AccessListResponse)
def grant_kpi_access(
    kpi_id: UUID,
    data: GrantAccessRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    kpi, _ = KPIService.get_for_user(db, current_user, kpi_id, MANAGE)
    AccessService.grant_access(db, kpi, current_user, data.permission, user_id=data.user_id, email=data.email)
    return AccessService.list_access(db, kpi)


@router.patch("/{kpi_id}/access/{user_id}", response_model=AccessListResponse)
def update_kpi_access(
    kpi_id: UUID,
    user_id: UUID,
    data: UpdateAccessRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    kpi, _ = KPIService.get_for_user(db, current_user, kpi_id, MANAGE)
    AccessService.update_access(db, kpi, user_id, data.permission)
    return AccessService.list_access(db, kpi)


@router.delete("/{kpi_id}/access/{user_id}", response_model=AccessListResponse)
def revoke_kpi_access(
    kpi_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    kpi, _ = KPIService.get_for_user(db, current_user, kpi_id, MANAGE)
    AccessService.revoke_access(db, kpi, user_id)
    return AccessService.list_access(db, kpi)
