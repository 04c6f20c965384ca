import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class AccessPermission(str, enum.Enum):
    """Per-resource grant. Ownership and ADMIN role are never stored as entries."""
    VIEW = "VIEW"
    EDIT = "EDIT"


class DashboardAccess(Base):
    __tablename__ = "dashboard_access"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    dashboard_id = Column(Uuid, ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    permission = Column(String(10), nullable=False, default=AccessPermission.VIEW.value)
    granted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    granted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    dashboard = relationship("Dashboard", back_populates="access_entries")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("dashboard_id", "user_id", name="uq_dashboard_access_user"),
        Index("ix_dashboard_access_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<DashboardAccess {self.user_id} {self.permission} on {self.dashboard_id}>"


class KpiAccess(Base):
    __tablename__ = "kpi_access"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kpi_id = Column(Uuid, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    permission = Column(String(10), nullable=False, default=AccessPermission.VIEW.value)
    granted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    granted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    kpi = relationship("Kpi", back_populates="access_entries")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("kpi_id", "user_id", name="uq_kpi_access_user"),
        Index("ix_kpi_access_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<KpiAccess {self.user_id} {self.permission} on {self.kpi_id}>"
