import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Date, Integer, ForeignKey, Uuid

from healthcard.db.postgres import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


# Fields that only apply to one role; anything else on the row is shared.
DOCTOR_FIELDS = ("specialization", "license_number", "years_of_experience", "bio")
PATIENT_FIELDS = ("date_of_birth", "gender", "emergency_contact", "assigned_doctor_id")


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)  # always lower-cased
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=False)
    role = Column(Enum(UserRole), nullable=False, index=True)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)

    # Doctor
    specialization = Column(String, nullable=True)
    license_number = Column(String, nullable=True)
    years_of_experience = Column(Integer, nullable=True)
    bio = Column(String, nullable=True)

    # Patient
    date_of_birth = Column(Date, nullable=True)
    gender = Column(Enum(Gender), nullable=True)
    emergency_contact = Column(String, nullable=True)
    assigned_doctor_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_doctor(self) -> bool:
        return self.role == UserRole.DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == UserRole.PATIENT
