from healthcard.models.user import User, UserRole, Gender
from healthcard.models.appointment import Appointment, AppointmentStatus
from healthcard.models.medical_record import MedicalRecord
from healthcard.models.prescription import Prescription
from healthcard.models.audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "Gender",
    "Appointment",
    "AppointmentStatus",
    "MedicalRecord",
    "Prescription",
    "AuditLog",
]
