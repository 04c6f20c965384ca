from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user
from app.models import User
from app.schemas.access import AccessListResponse, GrantAccessRequest, UpdateAccessRequest
from app.schemas.dashboard import (
    DashboardCreateRequest,
    DashboardUpdateRequest,
    DashboardListResponse,
    DashboardResponse,
    DashboardSummary,
    LayoutUpdateRequest,
    WidgetCreateRequest,
    WidgetUpdateRequest,
    WidgetResponse,
)
from app.schemas.kpi import KpiHistoryResponse
from app.services.access_service import AccessService, EDIT, MANAGE
from app.services.dashboard_service import DashboardService


router = APIRouter(prefix="/dashboards", tags=["Dashboards"])


@router.get("", response_model=DashboardListResponse)
def list_dashboards(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Dashboards the current user owns or has been granted, most recently updated first."""
    dashboards = DashboardService.list_dashboards(db, current_user)
    return DashboardListResponse(
        dashboards=[DashboardSummary(**d) for d in dashboards],
        total=len(dashboards),
    )


@router.post("", response_model=DashboardResponse, status_code=status.HTTP_201_CREATED)
def create_dashboard(
    data: DashboardCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a dashboard. Requires the EDITOR role."""
    dashboard = DashboardService.create_dashboard(db, current_user, data)
    flags = AccessService.flags_for(current_user, dashboard)
    return DashboardService.to_response(db, dashboard, flags)


@router.get("/{dashboard_id}", response_model=DashboardResponse)
def get_dashboard(
    dashboard_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Dashboard with its widgets, each carrying live KPI data and a rendered view."""
    dashboard, flags = DashboardService.get_for_user(db, current_user, dashboard_id)
    return DashboardService.to_response(db, dashboard, flags)


@router.patch("/{dashboard_id}", response_model=DashboardResponse)
def update_dashboard(
    dashboard_id: UUID,
    data: DashboardUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    dashboard, flags = DashboardService.get_for_user(db, current_user, dashboard_id, EDIT)
    dashboard = DashboardService.update_dashboard(db, dashboard, data)
    return DashboardService.to_response(db, dashboard, flags)


@router.delete("/{dashboard_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_dashboard(
    dashboard_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a dashboard. Only the owner or an admin may do this."""
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id, MANAGE)
    DashboardService.delete_dashboard(db, dashboard)


@router.patch("/{dashboard_id}/layout", response_model=DashboardResponse)
def update_layout(
    dashboard_id: UUID,
    data: LayoutUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Save widget positions after drag or resize. Only listed widgets move."""
    dashboard, flags = DashboardService.get_for_user(db, current_user, dashboard_id, EDIT)
    dashboard = DashboardService.update_layout(db, dashboard, data)
    return DashboardService.to_response(db, dashboard, flags)


# --- Widgets ---

@router.post("/{dashboard_id}/widgets", response_model=WidgetResponse, status_code=status.HTTP_201_CREATED)
def add_widget(
    dashboard_id: UUID,
    data: WidgetCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id, EDIT)
    widget = DashboardService.add_widget(db, current_user, dashboard, data)
    return DashboardService.widget_view(db, widget)


@router.patch("/{dashboard_id}/widgets/{widget_id}", response_model=WidgetResponse)
def update_widget(
    dashboard_id: UUID,
    widget_id: UUID,
    data: WidgetUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id, EDIT)
    widget = DashboardService.get_widget(dashboard, widget_id)
    widget = DashboardService.update_widget(db, current_user, widget, data)
    return DashboardService.widget_view(db, widget)


@router.delete("/{dashboard_id}/widgets/{widget_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_widget(
    dashboard_id: UUID,
    widget_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id, EDIT)
    widget = DashboardService.get_widget(dashboard, widget_id)
    DashboardService.delete_widget(db, dashboard, widget)


@router.get("/{dashboard_id}/widgets/{widget_id}/history", response_model=KpiHistoryResponse)
def get_widget_history(
    dashboard_id: UUID,
    widget_id: UUID,
    period: Optional[str] = Query(None, description="1h, 6h, 24h, 7d, 30d, 90d, 6m, 1y or all"),
    interval: Optional[str] = Query(None, description="hourly, daily, weekly or monthly"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """History of the widget's KPI, scoped to a dashboard the user can view."""
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id)
    widget = DashboardService.get_widget(dashboard, widget_id)
    return DashboardService.widget_history(db, widget, period, interval)


@router.get("/{dashboard_id}/widgets/{widget_id}/view", response_model=WidgetResponse)
def get_widget_view(
    dashboard_id: UUID,
    widget_id: UUID,
    period: Optional[str] = Query(None),
    interval: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Widget rendered with history (stat comparison, chart points)."""
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id)
    widget = DashboardService.get_widget(dashboard, widget_id)
    return DashboardService.widget_view(db, widget, period, interval)


# --- Access ---

@router.get("/{dashboard_id}/access", response_model=AccessListResponse)
def list_dashboard_access(
    dashboard_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id)
    return AccessService.list_access(db, dashboard)


@router.post("/{dashboard_id}/access", response_model=AccessListResponse)
def grant_dashboard_access(
    dashboard_id: UUID,
    data: GrantAccessRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Grant VIEW or EDIT by user id or email. Re-granting updates the permission."""
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id, MANAGE)
    AccessService.grant_access(
        db, dashboard, current_user, data.permission, user_id=data.user_id, email=data.email
    )
    return AccessService.list_access(db, dashboard)


@router.patch("/{dashboard_id}/access/{user_id}", response_model=AccessListResponse)
def update_dashboard_access(
    dashboard_id: UUID,
    user_id: UUID,
    data: UpdateAccessRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id, MANAGE)
    AccessService.update_access(db, dashboard, user_id, data.permission)
    return AccessService.list_access(db, dashboard)


@router.delete("/{dashboard_id}/access/{user_id}", response_model=AccessListResponse)
def revoke_dashboard_access(
    dashboard_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    dashboard, _ = DashboardService.get_for_user(db, current_user, dashboard_id, MANAGE)
    AccessService.revoke_access(db, dashboard, user_id)
    return AccessService.list_access(db, dashboard)
