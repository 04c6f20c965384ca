"""
Dashboards and their widgets.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.core.sanitization import sanitize_name, validate_http_url
from app.models import Dashboard, Kpi, User, UserRole, Widget, WidgetType
from app.schemas.dashboard import (
    DashboardCreateRequest,
    DashboardUpdateRequest,
    LayoutUpdateRequest,
    WidgetCreateRequest,
    WidgetPosition,
    WidgetUpdateRequest,
)
from app.services import widget_renderer
from app.services.access_service import AccessFlags, AccessService, VIEW
from app.services.history_service import HistoryService
from app.services.kpi_service import KPIService

logger = logging.getLogger(__name__)

WIDGET_TYPES = {t.value for t in WidgetType}


class DashboardService:
    """Service for dashboard and widget business logic."""

    # --- Queries ---

    @staticmethod
    def get_dashboard_record(db: Session, dashboard_id: UUID) -> Dashboard:
        dashboard = db.query(Dashboard).filter(Dashboard.id == dashboard_id).first()
        if not dashboard:
            raise NotFoundError("Dashboard")
        return dashboard

    @staticmethod
    def get_for_user(
        db: Session, user: User, dashboard_id: UUID, level: str = VIEW
    ) -> tuple[Dashboard, AccessFlags]:
        dashboard = DashboardService.get_dashboard_record(db, dashboard_id)
        flags = AccessService.require(user, dashboard, level)
        return dashboard, flags

    @staticmethod
    def get_widget(dashboard: Dashboard, widget_id: UUID) -> Widget:
        for widget in dashboard.widgets:
            if widget.id == widget_id:
                return widget
        raise NotFoundError("Widget")

    @staticmethod
    def list_dashboards(db: Session, user: User) -> list[dict]:
        """Dashboards the user can view, most recently updated first."""
        dashboards = AccessService.accessible_query(db, user, "dashboard").order_by(
            Dashboard.updated_at.desc()
        ).all()
        return [
            {
                "id": d.id,
                "name": d.name,
                "owner_id": d.owner_id,
                "owner_name": d.owner.name if d.owner else None,
                "widget_count": len(d.widgets),
                "access": AccessService.flags_for(user, d).to_dict(),
                "created_at": d.created_at,
                "updated_at": d.updated_at,
            }
            for d in dashboards
        ]

    @staticmethod
    def kpi_data_for(db: Session, kpi: Optional[Kpi], cache: Optional[dict] = None) -> Optional[dict]:
        """Live KPI values for a widget. A failing KPI only reports its own error."""
        if kpi is None:
            return None
        if cache is not None and kpi.id in cache:
            return cache[kpi.id]

        data = KPIService.evaluate(db, kpi).to_kpi_data(kpi)
        if cache is not None:
            cache[kpi.id] = data
        return data

    @staticmethod
    def widget_to_dict(widget: Widget, kpi_data: Optional[dict], history: Optional[dict] = None) -> dict:
        return {
            "id": widget.id,
            "dashboard_id": widget.dashboard_id,
            "type": widget.type,
            "kpi_id": widget.kpi_id,
            "kpi_name": widget.kpi.name if widget.kpi else None,
            "config": widget.config or {},
            "position": widget.position,
            "kpi_data": kpi_data,
            "view": widget_renderer.render(widget, kpi_data, history),
            "created_at": widget.created_at,
            "updated_at": widget.updated_at,
        }

    @staticmethod
    def to_response(db: Session, dashboard: Dashboard, flags: AccessFlags) -> dict:
        """Dashboard with widgets, their KPI data and a first-pass view (no history)."""
        cache: dict = {}
        widgets = [
            DashboardService.widget_to_dict(w, DashboardService.kpi_data_for(db, w.kpi, cache))
            for w in dashboard.widgets
        ]
        return {
            "id": dashboard.id,
            "name": dashboard.name,
            "owner_id": dashboard.owner_id,
            "layout": dashboard.layout or {},
            "widgets": widgets,
            "access": flags.to_dict(),
            "created_at": dashboard.created_at,
            "updated_at": dashboard.updated_at,
        }

    # --- Dashboard mutations ---

    @staticmethod
    def create_dashboard(db: Session, user: User, data: DashboardCreateRequest) -> Dashboard:
        AccessService.require_role(user, UserRole.EDITOR)

        name = sanitize_name(data.name)
        if not name:
            raise ValidationError("Dashboard name cannot be empty")

        dashboard = Dashboard(name=name, owner_id=user.id, layout=data.layout or {})
        db.add(dashboard)
        db.commit()
        db.refresh(dashboard)
        logger.info(f"Created dashboard {dashboard.id} for user {user.id}")
        return dashboard

    @staticmethod
    def update_dashboard(db: Session, dashboard: Dashboard, data: DashboardUpdateRequest) -> Dashboard:
        if data.name is not None:
            name = sanitize_name(data.name)
            if not name:
                raise ValidationError("Dashboard name cannot be empty")
            dashboard.name = name
        if data.layout is not None:
            dashboard.layout = data.layout
        db.commit()
        db.refresh(dashboard)
        return dashboard

    @staticmethod
    def delete_dashboard(db: Session, dashboard: Dashboard) -> None:
        """Delete a dashboard with its widgets, access entries and share links."""
        db.delete(dashboard)
        db.commit()
        logger.info(f"Deleted dashboard {dashboard.id}")

    # --- Widgets ---

    @staticmethod
    def validate_widget(
        db: Session,
        user: User,
        widget_type: str,
        kpi_id: Optional[UUID],
        config: dict,
    ) -> Optional[Kpi]:
        """
        Check a widget's type, KPI binding and config. Returns the bound KPI.

        Image widgets need config.imageUrl and no KPI. Every other type needs
        a KPI the user can view.
        """
        if widget_type not in WIDGET_TYPES:
            raise ValidationError(
                f"Invalid widget type '{widget_type}'. Use one of: {', '.join(t.value for t in WidgetType)}"
            )

        if widget_type == WidgetType.IMAGE.value:
            if kpi_id is not None:
                raise ValidationError("Image widgets cannot be bound to a KPI")
            image_url = config.get("imageUrl")
            if not image_url:
                raise ValidationError("Image widgets require config.imageUrl")
            if not validate_http_url(image_url):
                raise ValidationError("config.imageUrl must be an http(s) URL")
            return None

        if kpi_id is None:
            raise ValidationError(f"{widget_type} widgets require a kpiId")
        kpi = KPIService.get_kpi(db, kpi_id)
        AccessService.require(user, kpi, VIEW)
        return kpi

    @staticmethod
    def _default_position(dashboard: Dashboard, position: Optional[WidgetPosition]) -> dict:
        """Explicit position, or a new row below the existing widgets."""
        if position is not None:
            return position.model_dump()
        bottom = max(
            (w.position.get("y", 0) + w.position.get("h", 0) for w in dashboard.widgets),
            default=0,
        )
        return WidgetPosition(x=0, y=bottom).model_dump()

    @staticmethod
    def add_widget(db: Session, user: User, dashboard: Dashboard, data: WidgetCreateRequest) -> Widget:
        kpi = DashboardService.validate_widget(db, user, data.type, data.kpi_id, data.config)

        widget = Widget(
            dashboard_id=dashboard.id,
            type=data.type,
            kpi_id=kpi.id if kpi else None,
            config=data.config,
            position=DashboardService._default_position(dashboard, data.position),
        )
        dashboard.widgets.append(widget)
        dashboard.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(widget)
        return widget

    @staticmethod
    def update_widget(db: Session, user: User, widget: Widget, data: WidgetUpdateRequest) -> Widget:
        fields_set = data.model_fields_set
        widget_type = data.type if data.type is not None else widget.type
        kpi_id = data.kpi_id if "kpi_id" in fields_set else widget.kpi_id
        config = data.config if data.config is not None else (widget.config or {})

        # Switching to an image drops the KPI binding unless one was sent explicitly
        if widget_type == WidgetType.IMAGE.value and "kpi_id" not in fields_set:
            kpi_id = None

        kpi = DashboardService.validate_widget(db, user, widget_type, kpi_id, config)
        widget.type = widget_type
        widget.kpi_id = kpi.id if kpi else None
        widget.config = config
        if data.position is not None:
            widget.position = data.position.model_dump()

        db.commit()
        db.refresh(widget)
        return widget

    @staticmethod
    def delete_widget(db: Session, dashboard: Dashboard, widget: Widget) -> None:
        dashboard.widgets.remove(widget)
        db.commit()

    @staticmethod
    def update_layout(db: Session, dashboard: Dashboard, data: LayoutUpdateRequest) -> Dashboard:
        """
        Apply positions to the listed widgets only.

        Every id is checked against the dashboard before anything is written.
        Widgets missing from the list keep their position and are never deleted.
        """
        widgets = {w.id: w for w in dashboard.widgets}
        unknown = [str(item.id) for item in data.widgets if item.id not in widgets]
        if unknown:
            raise ValidationError(f"Widgets not on this dashboard: {', '.join(unknown)}")

        for item in data.widgets:
            widgets[item.id].position = item.position.model_dump()
        if data.layout is not None:
            dashboard.layout = data.layout
        dashboard.updated_at = datetime.utcnow()

        db.commit()
        db.refresh(dashboard)
        return dashboard

    # --- Widget data ---

    @staticmethod
    def widget_history(
        db: Session,
        widget: Widget,
        period: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> dict:
        """History of the widget's KPI. Period defaults to the widget's configured one."""
        if widget.kpi is None:
            raise ValidationError("Image widgets have no history")
        period = period or (widget.config or {}).get("period") or settings.DEFAULT_HISTORY_PERIOD
        return HistoryService.get_kpi_history(db, widget.kpi, period, interval)

    @staticmethod
    def widget_view(
        db: Session,
        widget: Widget,
        period: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> dict:
        """Widget fully rendered, including history for stat and chart types."""
        kpi_data = DashboardService.kpi_data_for(db, widget.kpi)
        history = None
        if widget.kpi is not None and widget_renderer.needs_history(widget.type):
            history = DashboardService.widget_history(db, widget, period, interval)
        return DashboardService.widget_to_dict(widget, kpi_data, history)
