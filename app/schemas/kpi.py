from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.core.formula_parser import validate_formula
from app.models import TargetDirection
from app.schemas.access import AccessFlagsResponse
from app.schemas.common import CamelModel


class KpiSourceInput(CamelModel):
    data_field_id: UUID
    alias: Optional[str] = Field(None, max_length=50, description="Defaults to the data field's variable name")


class KpiCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    formula: str = Field(..., min_length=1, max_length=500)
    sources: list[KpiSourceInput] = Field(..., min_length=1)
    target_value: Optional[float] = None
    target_direction: Optional[TargetDirection] = None
    target_period: Optional[str] = Field(None, max_length=20)

    @field_validator('formula')
    @classmethod
    def validate_formula_syntax(cls, v: str) -> str:
        is_valid, error, _ = validate_formula(v)
        if not is_valid:
            raise ValueError(f"Invalid formula: {error}")
        return v.strip()


class KpiUpdateRequest(CamelModel):
    """Omitted fields are left unchanged. Explicit nulls clear target fields."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    formula: Optional[str] = Field(None, min_length=1, max_length=500)
    sources: Optional[list[KpiSourceInput]] = Field(None, min_length=1)
    target_value: Optional[float] = None
    target_direction: Optional[TargetDirection] = None
    target_period: Optional[str] = Field(None, max_length=20)

    @field_validator('formula')
    @classmethod
    def validate_formula_syntax(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            is_valid, error, _ = validate_formula(v)
            if not is_valid:
                raise ValueError(f"Invalid formula: {error}")
            return v.strip()
        return v


class ValidateFormulaRequest(CamelModel):
    formula: str
    sources: Optional[list[KpiSourceInput]] = None
    aliases: Optional[list[str]] = None


class ValidateFormulaResponse(CamelModel):
    valid: bool
    error: Optional[str] = None
    variables: list[str] = []
    undeclared_variables: list[str] = []
    unused_aliases: list[str] = []


class KpiSourceResponse(CamelModel):
    id: UUID
    data_field_id: UUID
    alias: str
    position: int
    data_field_name: Optional[str] = None
    integration_id: Optional[UUID] = None
    integration_name: Optional[str] = None


class KpiResponse(CamelModel):
    id: UUID
    name: str
    description: Optional[str]
    formula: str
    owner_id: UUID
    target_value: Optional[float]
    target_direction: Optional[str]
    target_period: Optional[str]
    sources: list[KpiSourceResponse] = []
    current_value: Optional[float] = None
    progress: Optional[float] = None
    on_track: Optional[bool] = None
    calculation_error: Optional[str] = None
    calculated_at: Optional[datetime] = None
    access: Optional[AccessFlagsResponse] = None
    created_at: datetime
    updated_at: datetime


class KpiListResponse(CamelModel):
    kpis: list[KpiResponse]
    total: int


class AvailableField(CamelModel):
    id: UUID
    name: str
    variable_name: str
    field_type: str
    last_value: Any = None
    last_synced_at: Optional[datetime] = None


class AvailableFieldGroup(CamelModel):
    integration_id: UUID
    integration_name: str
    integration_type: str
    fields: list[AvailableField]


class AvailableFieldsResponse(CamelModel):
    integrations: list[AvailableFieldGroup]


class HistoryPoint(CamelModel):
    timestamp: datetime
    value: float


class HistoryComparison(CamelModel):
    previous_value: Optional[float]
    current_value: Optional[float]
    change: Optional[float]
    direction: Optional[str]


class KpiHistoryResponse(CamelModel):
    kpi_id: UUID
    name: str
    period: str
    interval: str
    data: list[HistoryPoint]
    comparison: HistoryComparison
    calculated_at: datetime
