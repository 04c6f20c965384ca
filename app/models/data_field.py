import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class FieldType(str, enum.Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    JSON = "JSON"


class DataField(Base):
    """A named value exposed by an integration, referenced by KPI sources."""
    __tablename__ = "data_fields"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id = Column(Uuid, ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)  # Display name: "Total Revenue"
    variable_name = Column(String(255), nullable=False)  # Default formula alias: "total_revenue"
    source_field = Column(String(500), nullable=False)  # Dot path into a source row: "data.revenue"
    target_field = Column(String(255), nullable=True)
    field_type = Column(String(20), nullable=False, default=FieldType.NUMBER.value)
    transform = Column(String(500), nullable=True)  # Formula over `value`, NUMBER fields only
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    integration = relationship("Integration", back_populates="data_fields")
    values = relationship("DataValue", back_populates="data_field", cascade="all, delete-orphan")
    kpi_sources = relationship("KpiSource", back_populates="data_field")

    __table_args__ = (
        Index("ix_data_fields_integration_id", "integration_id"),
    )

    def __repr__(self):
        return f"<DataField {self.name} ({self.source_field})>"
