import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, Float, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class TargetDirection(str, enum.Enum):
    """Whether higher or lower values are on track for the target."""
    INCREASE = "increase"
    DECREASE = "decrease"


class Kpi(Base):
    __tablename__ = "kpis"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    formula = Column(String(500), nullable=False)  # e.g., "revenue / employees"
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    target_value = Column(Float, nullable=True)
    target_direction = Column(String(20), nullable=True)  # "increase" | "decrease"
    target_period = Column(String(20), nullable=True)  # Display label, e.g. "monthly"

    # Cached result of the last recalculation, never authoritative for reads
    current_value = Column(Float, nullable=True)
    calculation_error = Column(Text, nullable=True)
    calculated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="kpis")
    sources = relationship(
        "KpiSource", back_populates="kpi", cascade="all, delete-orphan", order_by="KpiSource.position"
    )
    widgets = relationship("Widget", back_populates="kpi", cascade="all, delete-orphan")
    access_entries = relationship("KpiAccess", back_populates="kpi", cascade="all, delete-orphan")
    share_links = relationship("ShareLink", back_populates="kpi", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_kpis_owner_id", "owner_id"),
    )

    def __repr__(self):
        return f"<Kpi {self.name}>"
