import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class ShareResourceType(str, enum.Enum):
    DASHBOARD = "dashboard"
    KPI = "kpi"


class ShareLink(Base):
    """Public, unauthenticated, read-only link to a dashboard or a KPI."""
    __tablename__ = "share_links"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    token = Column(String(128), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    resource_type = Column(String(20), nullable=False)  # "dashboard" | "kpi"
    dashboard_id = Column(Uuid, ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=True)
    kpi_id = Column(Uuid, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    show_target = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True)  # NULL = never expires
    active = Column(Boolean, nullable=False, default=True)

    access_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    dashboard = relationship("Dashboard", back_populates="share_links")
    kpi = relationship("Kpi", back_populates="share_links")
    created_by_user = relationship("User")

    __table_args__ = (
        Index("ix_share_links_created_by", "created_by"),
    )

    @property
    def resource_id(self) -> uuid.UUID:
        return self.dashboard_id if self.resource_type == ShareResourceType.DASHBOARD.value else self.kpi_id

    def __repr__(self):
        return f"<ShareLink {self.resource_type}:{self.resource_id} active={self.active}>"
