import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, DateTime, Date, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship

from healthcard.db.postgres import Base


class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    diagnosis = Column(Text, nullable=False)
    treatment = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    symptoms = Column(Text, nullable=True)
    visit_date = Column(Date, nullable=False, index=True)
    vital_signs = Column(JSON, nullable=True)  # {"blood_pressure": "120/80", "temperature": ..., ...}
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = relationship("User", foreign_keys=[patient_id], lazy="raise")
    doctor = relationship("User", foreign_keys=[doctor_id], lazy="raise")
