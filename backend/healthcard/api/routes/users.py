"""
User (identity) API routes.

Endpoints:
    GET    /users                              - List users (admin; anyone may list role=doctor)
    POST   /users                              - Create a user of any role (admin)
    GET    /users/doctor/{doctor_id}/patients  - Patients assigned to a doctor (that doctor / admin)
    GET    /users/{id}                         - Get a user (self / admin)
    PUT    /users/{id}                         - Update profile (self / admin)
    DELETE /users/{id}                         - Delete a user (admin)
    PUT    /users/{patient_id}/assign-doctor   - Assign a doctor to a patient (admin)
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Request, Query, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.db.postgres import get_db
from healthcard.models.user import User, UserRole, Gender
from healthcard.api.middleware.auth import get_current_user, require_role
from healthcard.api.middleware.audit import log_audit
from healthcard.services import user_service
from healthcard.services.pagination import PageParams
from healthcard.services.user_service import IdentityVariant, UserUpdate

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class UserSummary(BaseModel):
    """Identity fields embedded in clinical record responses."""
    id: UUID
    full_name: str
    email: str
    role: UserRole
    phone: Optional[str] = None
    specialization: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None

    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    id: UUID
    email: str
    full_name: str
    role: UserRole
    phone: Optional[str] = None
    address: Optional[str] = None
    specialization: Optional[str] = None
    license_number: Optional[str] = None
    years_of_experience: Optional[int] = None
    bio: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    emergency_contact: Optional[str] = None
    assigned_doctor_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class AssignDoctorRequest(BaseModel):
    doctor_id: UUID


class DoctorPatientsResponse(BaseModel):
    patients: list[UserResponse]
    total: int


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    page_params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List users, newest first. Non-admins may only list doctors."""
    page = await user_service.list_users(db, current_user, page_params, role=role)
    return page.map(UserResponse.model_validate)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: Request,
    payload: IdentityVariant = Body(..., discriminator="role"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Create an identity of any role. Admin only."""
    user = await user_service.create_user(db, payload)
    await log_audit(
        db,
        actor=current_user,
        action="create",
        resource="user",
        resource_id=user.id,
        details=f"Created {user.role.value} account",
        request=request,
    )
    return user


@router.get("/users/doctor/{doctor_id}/patients", response_model=DoctorPatientsResponse)
async def get_doctor_patients(
    doctor_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Patients assigned to a doctor. The doctor themselves or an admin."""
    patients = await user_service.list_doctor_patients(db, current_user, doctor_id)
    return DoctorPatientsResponse(
        patients=[UserResponse.model_validate(p) for p in patients],
        total=len(patients),
    )


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await user_service.get_user_for(db, current_user, user_id)


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    payload: UserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update a profile. Role, email and license number cannot be changed."""
    user = await user_service.update_user(db, current_user, user_id, payload)
    await log_audit(
        db,
        actor=current_user,
        action="update",
        resource="user",
        resource_id=user_id,
        details=f"Profile fields supplied: {sorted(payload.model_dump(exclude_unset=True))}",
        request=request,
    )
    return user


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    await user_service.delete_user(db, current_user, user_id)
    await log_audit(
        db,
        actor=current_user,
        action="delete",
        resource="user",
        resource_id=user_id,
        request=request,
    )
    return MessageResponse(message="User deleted successfully")


@router.put("/users/{patient_id}/assign-doctor", response_model=UserResponse)
async def assign_doctor(
    patient_id: UUID,
    payload: AssignDoctorRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Assign a patient to a doctor. Admin only."""
    patient = await user_service.assign_doctor(db, patient_id, payload.doctor_id)
    await log_audit(
        db,
        actor=current_user,
        action="update",
        resource="user",
        resource_id=patient_id,
        details=f"Assigned to doctor {payload.doctor_id}",
        request=request,
    )
    return patient
