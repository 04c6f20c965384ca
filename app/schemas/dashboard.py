from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from app.schemas.access import AccessFlagsResponse
from app.schemas.common import CamelModel
from app.services.widget_renderer import WidgetView


class WidgetPosition(CamelModel):
    """Grid units. Width and height default to 3x2."""
    x: int = Field(0, ge=0)
    y: int = Field(0, ge=0)
    w: int = Field(3, ge=1)
    h: int = Field(2, ge=1)


class DashboardCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    layout: Optional[dict[str, Any]] = None


class DashboardUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    layout: Optional[dict[str, Any]] = None


class WidgetCreateRequest(CamelModel):
    type: str = Field(..., max_length=20)
    kpi_id: Optional[UUID] = None
    config: dict[str, Any] = {}
    position: Optional[WidgetPosition] = None


class WidgetUpdateRequest(CamelModel):
    type: Optional[str] = Field(None, max_length=20)
    kpi_id: Optional[UUID] = None
    config: Optional[dict[str, Any]] = None
    position: Optional[WidgetPosition] = None


class LayoutWidgetPosition(CamelModel):
    id: UUID
    position: WidgetPosition


class LayoutUpdateRequest(CamelModel):
    """Positions for the listed widgets only. Unlisted widgets are untouched."""
    layout: Optional[dict[str, Any]] = None
    widgets: list[LayoutWidgetPosition] = []


class KpiDataResponse(CamelModel):
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    progress: Optional[float] = None
    on_track: Optional[bool] = None
    error: Optional[str] = None


class WidgetResponse(CamelModel):
    id: UUID
    dashboard_id: UUID
    type: str
    kpi_id: Optional[UUID] = None
    kpi_name: Optional[str] = None
    config: dict[str, Any]
    position: WidgetPosition
    kpi_data: Optional[KpiDataResponse] = None
    view: Optional[WidgetView] = None
    created_at: datetime
    updated_at: datetime


class DashboardSummary(CamelModel):
    id: UUID
    name: str
    owner_id: UUID
    owner_name: Optional[str] = None
    widget_count: int
    access: AccessFlagsResponse
    created_at: datetime
    updated_at: datetime


class DashboardListResponse(CamelModel):
    dashboards: list[DashboardSummary]
    total: int


class DashboardResponse(CamelModel):
    id: UUID
    name: str
    owner_id: UUID
    layout: dict[str, Any]
    widgets: list[WidgetResponse]
    access: AccessFlagsResponse
    created_at: datetime
    updated_at: datetime
