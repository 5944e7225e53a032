import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, DateTime, Index, Uuid

from healthcard.db.postgres import Base


class AuditLog(Base):
    """One row per identity or clinical record mutation and per clinical record read."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_resource_lookup", "resource", "resource_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=True, index=True)  # actor; kept after the user is deleted
    action = Column(String(32), nullable=False)  # register, login, create, read, update, delete
    resource = Column(String(32), nullable=False)  # user, appointment, medical_record, prescription
    resource_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
