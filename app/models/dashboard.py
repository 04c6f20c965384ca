import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, JSON, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class Dashboard(Base):
    __tablename__ = "dashboards"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    layout = Column(JSON, nullable=False, default=dict)  # Grid settings, opaque to the server
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="dashboards")
    widgets = relationship(
        "Widget", back_populates="dashboard", cascade="all, delete-orphan", order_by="Widget.created_at"
    )
    access_entries = relationship("DashboardAccess", back_populates="dashboard", cascade="all, delete-orphan")
    share_links = relationship("ShareLink", back_populates="dashboard", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_dashboards_owner_id", "owner_id"),
    )

    def __repr__(self):
        return f"<Dashboard {self.name}>"
