import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, JSON, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class DataValue(Base):
    """One observed value of a data field. Append-only; the latest per field is current."""
    __tablename__ = "data_values"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    data_field_id = Column(Uuid, ForeignKey("data_fields.id", ondelete="CASCADE"), nullable=False)
    value = Column(JSON, nullable=True)  # Scalar, list or object as received
    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    data_field = relationship("DataField", back_populates="values")

    __table_args__ = (
        Index("ix_data_values_field_synced", "data_field_id", "synced_at"),
    )

    def __repr__(self):
        return f"<DataValue {self.data_field_id} @ {self.synced_at}>"
