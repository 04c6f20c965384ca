from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from app.models import FieldType, IntegrationType
from app.schemas.common import CamelModel

MAX_BULK_ROWS = 500


# --- Request schemas ---

class IntegrationFieldInput(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    source_field: Optional[str] = Field(None, max_length=500)
    field_type: FieldType = FieldType.NUMBER
    transform: Optional[str] = Field(None, max_length=500)


class IntegrationCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: IntegrationType
    config: dict[str, Any] = Field(default_factory=dict)
    sync_interval: Optional[int] = Field(None, ge=60, description="Seconds between automatic syncs")
    sync_enabled: bool = True
    fields: list[IntegrationFieldInput] = []


class IntegrationUpdateRequest(CamelModel):
    """Config keys are merged. Masked secrets sent back unchanged keep their stored value."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    config: Optional[dict[str, Any]] = None
    sync_interval: Optional[int] = Field(None, ge=60)
    sync_enabled: Optional[bool] = None


class ManualValueInput(CamelModel):
    data_field_id: UUID
    value: Any
    timestamp: Optional[datetime] = None


class ManualValuesRequest(CamelModel):
    values: list[ManualValueInput] = Field(..., min_length=1)


class BulkRow(CamelModel):
    """Values keyed by data field id, variable name or name."""
    timestamp: Optional[datetime] = None
    values: dict[str, Any]


class BulkSubmitRequest(CamelModel):
    rows: list[BulkRow] = Field(..., min_length=1, max_length=MAX_BULK_ROWS)


# --- Response schemas ---

class IntegrationResponse(CamelModel):
    id: UUID
    name: str
    type: str
    status: str
    error_message: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)
    sync_interval: Optional[int] = None
    sync_enabled: bool
    retry_count: int = 0
    last_sync: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    field_count: int = 0
    webhook_url: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class IntegrationListResponse(CamelModel):
    integrations: list[IntegrationResponse]
    total: int


class ConnectionTestResponse(CamelModel):
    success: bool
    message: str
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


class DiscoveredField(CamelModel):
    name: str
    path: str
    data_type: str
    sample: Any = None


class DiscoveredFieldsResponse(CamelModel):
    fields: list[DiscoveredField]


class PreviewResponse(CamelModel):
    rows: list[dict[str, Any]]
    total_rows: int
    fetched_at: datetime


class SubmitResultResponse(CamelModel):
    records_count: int
    kpis_recalculated: int
    errors: list[str] = []


class LatestValue(CamelModel):
    data_field_id: UUID
    name: str
    variable_name: str
    field_type: str
    value: Any = None
    synced_at: Optional[datetime] = None


class LatestValuesResponse(CamelModel):
    integration_id: UUID
    values: list[LatestValue]


class SyncLogResponse(CamelModel):
    id: UUID
    integration_id: UUID
    status: str
    trigger_type: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    records_count: int = 0
    error_message: Optional[str] = None


class SyncLogListResponse(CamelModel):
    logs: list[SyncLogResponse]
    total: int
    page: int
    page_size: int
