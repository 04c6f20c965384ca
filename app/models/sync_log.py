import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class SyncLog(Base):
    """Log entry for an integration sync operation."""
    __tablename__ = "sync_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id = Column(Uuid, ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)

    # "running" | "success" | "failed"
    status = Column(String(20), nullable=False)

    # "manual" | "scheduled" | "webhook"
    trigger_type = Column(String(20), nullable=False, default="manual")

    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    records_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    # Relationships
    integration = relationship("Integration", back_populates="sync_logs")

    __table_args__ = (
        Index("ix_sync_logs_integration_id", "integration_id"),
        Index("ix_sync_logs_started_at", "started_at"),
    )

    def __repr__(self):
        return f"<SyncLog {self.integration_id} {self.status} at {self.started_at}>"
