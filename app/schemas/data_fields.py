from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from app.models import FieldType
from app.schemas.common import CamelModel


class DataFieldCreateRequest(CamelModel):
    integration_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    source_field: Optional[str] = Field(None, max_length=500, description="Dot path into a source row; defaults to name")
    target_field: Optional[str] = Field(None, max_length=255)
    field_type: FieldType = FieldType.NUMBER
    transform: Optional[str] = Field(None, max_length=500, description="Formula over `value`, NUMBER fields only")


class DataFieldUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    source_field: Optional[str] = Field(None, max_length=500)
    target_field: Optional[str] = Field(None, max_length=255)
    field_type: Optional[FieldType] = None
    transform: Optional[str] = Field(None, max_length=500)


class DataFieldResponse(CamelModel):
    id: UUID
    integration_id: UUID
    name: str
    variable_name: str
    source_field: str
    target_field: Optional[str]
    field_type: str
    transform: Optional[str]
    created_at: datetime
    last_value: Any = None
    last_synced_at: Optional[datetime] = None
    kpi_count: int = 0


class DataFieldListResponse(CamelModel):
    data_fields: list[DataFieldResponse]
    total: int


class DataValueResponse(CamelModel):
    id: UUID
    value: Any
    synced_at: datetime


class DataValueListResponse(CamelModel):
    data_field_id: UUID
    period: str
    values: list[DataValueResponse]
