"""
Identity store - users of the three roles, credentials, and doctor assignment.

Identity creation takes a tagged union discriminated by ``role``
(:data:`IdentityCreate`): each variant declares and validates its own required
fields, so a doctor without a specialization or license number never reaches
the database.

All public functions accept an ``AsyncSession`` so the caller (route layer)
controls the transaction boundary.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Annotated, Any, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, EmailStr, Field, TypeAdapter
from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.api.middleware.auth import hash_password, verify_password, dummy_verify
from healthcard.config import Settings
from healthcard.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from healthcard.models.appointment import Appointment
from healthcard.models.medical_record import MedicalRecord
from healthcard.models.prescription import Prescription
from healthcard.models.user import User, UserRole, Gender, DOCTOR_FIELDS, PATIENT_FIELDS
from healthcard.services import access_policy
from healthcard.services.access_policy import Decision
from healthcard.services.pagination import Page, PageParams, paginate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Identity variants
# ---------------------------------------------------------------------------

class _IdentityBase(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)  # bcrypt input limit
    full_name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = None
    address: Optional[str] = None


class AdminCreate(_IdentityBase):
    role: Literal["admin"]


class DoctorCreate(_IdentityBase):
    role: Literal["doctor"]
    specialization: str = Field(..., min_length=1)
    license_number: str = Field(..., min_length=1)
    years_of_experience: Optional[int] = Field(None, ge=0)
    bio: Optional[str] = None


class PatientCreate(_IdentityBase):
    role: Literal["patient"]
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    emergency_contact: Optional[str] = None
    assigned_doctor_id: Optional[uuid.UUID] = None


IdentityVariant = Union[AdminCreate, DoctorCreate, PatientCreate]
IdentityCreate = Annotated[IdentityVariant, Field(discriminator="role")]

_identity_adapter = TypeAdapter(IdentityCreate)


class UserUpdate(BaseModel):
    """Mutable profile fields. Role, email and license number are not among them."""
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = None
    address: Optional[str] = None
    # Doctor
    specialization: Optional[str] = Field(None, min_length=1)
    years_of_experience: Optional[int] = Field(None, ge=0)
    bio: Optional[str] = None
    # Patient
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    emergency_contact: Optional[str] = None


_SHARED_UPDATE_FIELDS = ("full_name", "phone", "address")


def parse_identity(data: dict[str, Any]) -> IdentityVariant:
    """Validate a raw payload into its role variant."""
    try:
        return _identity_adapter.validate_python(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid identity: {e.errors()[0]['msg']}")


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == normalize_email(email)))
    return result.scalar_one_or_none()


async def require_role_member(db: AsyncSession, user_id: uuid.UUID, role: UserRole) -> User:
    """Fetch *user_id* and insist it has *role*; a wrong role reads as absent."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or user.role != role:
        raise NotFoundError(f"{role.value.capitalize()} not found")
    return user


def can_view_user(actor: User, user: User) -> Decision:
    if actor.is_admin or actor.id == user.id:
        return Decision(True, "self-or-admin")
    return Decision(False, "Access denied")


async def get_user_for(db: AsyncSession, actor: User, user_id: uuid.UUID) -> User:
    user = await get_user(db, user_id)
    access_policy.enforce(can_view_user(actor, user))
    return user


async def list_users(
    db: AsyncSession,
    actor: User,
    params: PageParams,
    *,
    role: Optional[UserRole] = None,
) -> Page:
    """Paginated user listing, newest first.

    Admins may list any role; everyone else may only browse doctors.
    """
    if not actor.is_admin and role != UserRole.DOCTOR:
        raise AuthorizationError("Only admins can list users")

    query = select(User).order_by(User.created_at.desc(), User.id)
    if role is not None:
        query = query.where(User.role == role)
    return await paginate(db, query, params)


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------

async def create_user(
    db: AsyncSession,
    data: Union[IdentityVariant, dict[str, Any]],
) -> User:
    """Create an identity from a validated role variant (or a raw payload)."""
    if isinstance(data, dict):
        data = parse_identity(data)

    email = normalize_email(data.email)
    if await get_user_by_email(db, email) is not None:
        raise ConflictError("Email already registered")

    role = UserRole(data.role)
    fields = data.model_dump(exclude={"email", "password", "role"})

    if role == UserRole.PATIENT and fields.get("assigned_doctor_id") is not None:
        await require_role_member(db, fields["assigned_doctor_id"], UserRole.DOCTOR)

    user = User(
        id=uuid.uuid4(),
        email=email,
        hashed_password=hash_password(data.password),
        role=role,
        **fields,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Email already registered")
    await db.refresh(user)
    logger.info("Created %s user %s", role.value, user.id)
    return user


async def update_user(
    db: AsyncSession,
    actor: User,
    user_id: uuid.UUID,
    changes: Union[UserUpdate, dict[str, Any]],
) -> User:
    """Partial profile update by the user themselves or an admin.

    Role-specific fields apply only to users of that role; anything else,
    including attempts to change role or email, is ignored.
    """
    if not actor.is_admin and actor.id != user_id:
        raise AuthorizationError("Access denied")

    user = await get_user(db, user_id)

    if isinstance(changes, dict):
        try:
            changes = UserUpdate.model_validate(changes)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid update: {e.errors()[0]['msg']}")

    allowed = set(_SHARED_UPDATE_FIELDS)
    if user.is_doctor:
        allowed.update(DOCTOR_FIELDS)
    elif user.is_patient:
        allowed.update(PATIENT_FIELDS)
    allowed.discard("license_number")
    allowed.discard("assigned_doctor_id")  # only via assign_doctor

    applied = []
    for field, value in changes.model_dump(exclude_unset=True).items():
        if field in allowed and value is not None:
            setattr(user, field, value)
            applied.append(field)

    if applied:
        await db.flush()
        await db.refresh(user)
        logger.info("User %s updated by %s: %s", user_id, actor.id, applied)
    return user


async def count_clinical_references(db: AsyncSession, user_id: uuid.UUID) -> int:
    total = 0
    for model in (Appointment, MedicalRecord, Prescription):
        count_query = select(func.count()).select_from(model).where(
            (model.patient_id == user_id) | (model.doctor_id == user_id)
        )
        total += (await db.execute(count_query)).scalar_one()
    return total


async def delete_user(db: AsyncSession, actor: User, user_id: uuid.UUID) -> None:
    if not actor.is_admin:
        raise AuthorizationError("Only admins can delete users")

    user = await get_user(db, user_id)

    references = await count_clinical_references(db, user_id)
    if references:
        raise ConflictError(f"User is referenced by {references} clinical record(s)")

    if user.is_doctor:
        # Assignment is a weak reference: drop it rather than leave it dangling
        await db.execute(
            update(User)
            .where(User.assigned_doctor_id == user_id)
            .values(assigned_doctor_id=None)
            .execution_options(synchronize_session=False)
        )

    await db.delete(user)
    await db.flush()
    logger.info("User %s (%s) deleted by %s", user_id, user.role.value, actor.id)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

async def verify_credentials(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Return the user when *password* matches, else ``None``.

    An unknown email still pays for one hash comparison.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        dummy_verify()
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Doctor assignment
# ---------------------------------------------------------------------------

async def assign_doctor(db: AsyncSession, patient_id: uuid.UUID, doctor_id: uuid.UUID) -> User:
    """Point a patient at a doctor. Existing clinical records keep their owners."""
    patient = await require_role_member(db, patient_id, UserRole.PATIENT)
    await require_role_member(db, doctor_id, UserRole.DOCTOR)

    patient.assigned_doctor_id = doctor_id
    await db.flush()
    await db.refresh(patient)
    logger.info("Patient %s assigned to doctor %s", patient_id, doctor_id)
    return patient


def can_view_doctor_patients(actor: User, doctor_id: uuid.UUID) -> Decision:
    if actor.is_admin or actor.id == doctor_id:
        return Decision(True, "self-or-admin")
    return Decision(False, "Access denied")


async def list_doctor_patients(db: AsyncSession, actor: User, doctor_id: uuid.UUID) -> list[User]:
    access_policy.enforce(can_view_doctor_patients(actor, doctor_id))
    result = await db.execute(
        select(User)
        .where(User.role == UserRole.PATIENT, User.assigned_doctor_id == doctor_id)
        .order_by(User.full_name)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

async def bootstrap_admin_if_needed(db: AsyncSession, settings: Settings) -> Optional[User]:
    """Create the first admin from settings when the store has none."""
    admins = (
        await db.execute(select(func.count()).select_from(User).where(User.role == UserRole.ADMIN))
    ).scalar_one()
    if admins:
        logger.info("Admin users found (%d total), bootstrap not needed", admins)
        return None

    if not settings.BOOTSTRAP_ADMIN_EMAIL or not settings.BOOTSTRAP_ADMIN_PASSWORD:
        logger.warning(
            "No admin users exist; set BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD to create one"
        )
        return None

    admin = await create_user(db, {
        "role": "admin",
        "email": settings.BOOTSTRAP_ADMIN_EMAIL,
        "password": settings.BOOTSTRAP_ADMIN_PASSWORD,
        "full_name": settings.BOOTSTRAP_ADMIN_NAME,
    })
    logger.info("Bootstrap admin created: %s", admin.email)
    return admin
