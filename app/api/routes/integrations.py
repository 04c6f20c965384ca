import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user, require_editor
from app.core.rate_limit import limiter
from app.models import User
from app.schemas.integrations import (
    BulkSubmitRequest,
    ConnectionTestResponse,
    DiscoveredField,
    DiscoveredFieldsResponse,
    IntegrationCreateRequest,
    IntegrationListResponse,
    IntegrationResponse,
    IntegrationUpdateRequest,
    LatestValuesResponse,
    ManualValuesRequest,
    PreviewResponse,
    SubmitResultResponse,
    SyncLogListResponse,
    SyncLogResponse,
)
from app.services.integration_service import IntegrationService, PREVIEW_LIMIT
from app.services.sync_service import SyncService, TRIGGER_MANUAL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["Integrations"])


# --- CRUD ---

@router.get("", response_model=IntegrationListResponse)
def list_integrations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List all integrations. Secrets in configs are masked."""
    integrations = IntegrationService.get_all(db)
    return IntegrationListResponse(
        integrations=[IntegrationService.to_response(i) for i in integrations],
        total=len(integrations),
    )


@router.post("", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
def create_integration(
    data: IntegrationCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create an integration with its data fields. Requires the EDITOR role.
    A generated webhook secret is returned once, in this response only.
    """
    integration = IntegrationService.create(db, current_user, data)
    return IntegrationService.to_response(integration, reveal_secrets=True)


@router.get("/{integration_id}", response_model=IntegrationResponse)
def get_integration(
    integration_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    integration = IntegrationService.get_by_id(db, integration_id)
    return IntegrationService.to_response(integration)


@router.patch("/{integration_id}", response_model=IntegrationResponse)
def update_integration(
    integration_id: UUID,
    data: IntegrationUpdateRequest,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    integration = IntegrationService.get_by_id(db, integration_id)
    integration = IntegrationService.update(db, integration, data)
    return IntegrationService.to_response(integration)


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_integration(
    integration_id: UUID,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Delete an integration. Rejected while KPIs use any of its data fields."""
    integration = IntegrationService.get_by_id(db, integration_id)
    IntegrationService.delete(db, integration)


# --- Source access ---

@router.post("/{integration_id}/test", response_model=ConnectionTestResponse)
@limiter.limit("20/minute")
def test_connection(
    request: Request,
    integration_id: UUID,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Check that the source is reachable. Fails with 502 when it is not."""
    integration = IntegrationService.get_by_id(db, integration_id)
    result = IntegrationService.test_connection(integration)
    return ConnectionTestResponse.model_validate(result)


@router.get("/{integration_id}/fields", response_model=DiscoveredFieldsResponse)
def discover_fields(
    integration_id: UUID,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Fields available in the source, addressed by dot path."""
    integration = IntegrationService.get_by_id(db, integration_id)
    fields = IntegrationService.discover_fields(integration)
    return DiscoveredFieldsResponse(fields=[DiscoveredField.model_validate(f) for f in fields])


@router.get("/{integration_id}/preview", response_model=PreviewResponse)
def preview_data(
    integration_id: UUID,
    limit: int = Query(PREVIEW_LIMIT, ge=1, le=100),
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """First rows from the source, without storing anything."""
    integration = IntegrationService.get_by_id(db, integration_id)
    result = IntegrationService.preview(integration, limit)
    return PreviewResponse(rows=result.rows, total_rows=len(result.rows), fetched_at=result.fetched_at)


# --- Sync ---

@router.post("/{integration_id}/sync", response_model=SyncLogResponse)
@limiter.limit("10/minute")
def trigger_sync(
    request: Request,
    integration_id: UUID,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Run a sync now. A failed sync is reported in the returned log, not as an error."""
    IntegrationService.get_by_id(db, integration_id)
    logger.info(f"Manual sync of integration {integration_id} requested by user {editor.id}")
    sync_log = SyncService.execute_sync(db, integration_id, trigger_type=TRIGGER_MANUAL)
    return SyncLogResponse.model_validate(sync_log)


@router.get("/{integration_id}/sync-logs", response_model=SyncLogListResponse)
def get_sync_logs(
    integration_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    IntegrationService.get_by_id(db, integration_id)
    logs, total = SyncService.get_sync_logs(db, integration_id, page, page_size)
    return SyncLogListResponse(
        logs=[SyncLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
    )


# --- Values ---

@router.post("/{integration_id}/data", response_model=SubmitResultResponse)
def submit_values(
    integration_id: UUID,
    data: ManualValuesRequest,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Enter values for a MANUAL integration. Nothing is stored if any value is invalid."""
    integration = IntegrationService.get_by_id(db, integration_id)
    return IntegrationService.submit_manual_values(db, integration, data)


@router.post("/{integration_id}/data/bulk", response_model=SubmitResultResponse)
def bulk_submit_values(
    integration_id: UUID,
    data: BulkSubmitRequest,
    editor: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    """Import timestamped rows (up to 500 per request) into a MANUAL integration."""
    integration = IntegrationService.get_by_id(db, integration_id)
    return IntegrationService.bulk_submit(db, integration, data)


@router.get("/{integration_id}/data", response_model=LatestValuesResponse)
def get_latest_values(
    integration_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    integration = IntegrationService.get_by_id(db, integration_id)
    return LatestValuesResponse(
        integration_id=integration.id,
        values=IntegrationService.latest_values(db, integration),
    )
