import uuid

from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class KpiSource(Base):
    """Binds a data field into a KPI formula under an alias."""
    __tablename__ = "kpi_sources"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kpi_id = Column(Uuid, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False)
    data_field_id = Column(Uuid, ForeignKey("data_fields.id", ondelete="RESTRICT"), nullable=False)
    alias = Column(String(50), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    kpi = relationship("Kpi", back_populates="sources")
    data_field = relationship("DataField", back_populates="kpi_sources")

    __table_args__ = (
        UniqueConstraint("kpi_id", "alias", name="uq_kpi_source_alias"),
        Index("ix_kpi_sources_data_field_id", "data_field_id"),
    )

    def __repr__(self):
        return f"<KpiSource {self.alias} -> {self.data_field_id}>"
