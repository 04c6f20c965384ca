import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, JSON, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class WidgetType(str, enum.Enum):
    NUMBER = "number"
    STAT = "stat"
    GAUGE = "gauge"
    LINE = "line"
    BAR = "bar"
    AREA = "area"
    IMAGE = "image"


CHART_WIDGET_TYPES = {WidgetType.LINE, WidgetType.BAR, WidgetType.AREA}


class Widget(Base):
    __tablename__ = "widgets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    dashboard_id = Column(Uuid, ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)
    kpi_id = Column(Uuid, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=True)  # NULL for image widgets
    config = Column(JSON, nullable=False, default=dict)  # title, format, showTarget, imageUrl, period...
    position = Column(JSON, nullable=False)  # {"x", "y", "w", "h"}
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    dashboard = relationship("Dashboard", back_populates="widgets")
    kpi = relationship("Kpi", back_populates="widgets")

    __table_args__ = (
        Index("ix_widgets_dashboard_id", "dashboard_id"),
        Index("ix_widgets_kpi_id", "kpi_id"),
    )

    def __repr__(self):
        return f"<Widget {self.type} on {self.dashboard_id}>"
