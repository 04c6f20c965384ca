import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index, Boolean, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class IntegrationType(str, enum.Enum):
    API = "API"
    MANUAL = "MANUAL"
    WEBHOOK = "WEBHOOK"


class IntegrationStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class Integration(Base):
    """External data source (REST API, manual entry or webhook push)."""
    __tablename__ = "integrations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)

    # Connection config (url, auth, data path, webhook secret), Fernet-encrypted JSON
    config_encrypted = Column(Text, nullable=True)

    # "pending" | "synced" | "error"
    status = Column(String(20), nullable=False, default=IntegrationStatus.PENDING.value)
    error_message = Column(Text, nullable=True)

    # Sync schedule in seconds, NULL = manual only
    sync_interval = Column(Integer, nullable=True)
    sync_enabled = Column(Boolean, nullable=False, default=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_sync = Column(DateTime, nullable=True)
    next_sync_at = Column(DateTime, nullable=True)

    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    created_by_user = relationship("User")
    data_fields = relationship(
        "DataField", back_populates="integration", cascade="all, delete-orphan", order_by="DataField.name"
    )
    sync_logs = relationship(
        "SyncLog", back_populates="integration", cascade="all, delete-orphan", order_by="desc(SyncLog.started_at)"
    )

    __table_args__ = (
        Index("ix_integrations_type", "type"),
        Index("ix_integrations_next_sync", "next_sync_at"),
    )

    def __repr__(self):
        return f"<Integration {self.type}: {self.name} ({self.status})>"
