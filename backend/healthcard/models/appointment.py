import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Date, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from healthcard.db.postgres import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(String, nullable=False)  # free text, e.g. "10:30 AM"
    status = Column(Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING, index=True)
    reason = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = relationship("User", foreign_keys=[patient_id], lazy="raise")
    doctor = relationship("User", foreign_keys=[doctor_id], lazy="raise")
