"""
Appointment API routes.

Endpoints:
    POST   /appointments       - Book an appointment (patients book for themselves)
    GET    /appointments       - Scoped, filtered, paginated list
    GET    /appointments/{id}  - Get one appointment
    PUT    /appointments/{id}  - Partial update (patient / doctor on it, admin)
    DELETE /appointments/{id}  - Cancel (the row is kept)
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.db.postgres import get_db
from healthcard.models.appointment import AppointmentStatus
from healthcard.models.user import User
from healthcard.api.middleware.auth import get_current_user
from healthcard.api.middleware.audit import log_audit
from healthcard.api.routes.users import UserSummary
from healthcard.services import appointment_service
from healthcard.services.pagination import PageParams

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class AppointmentCreate(BaseModel):
    doctor_id: UUID
    patient_id: Optional[UUID] = None  # ignored for patients
    appointment_date: date
    appointment_time: str = Field(..., min_length=1)
    reason: Optional[str] = None
    notes: Optional[str] = None


class AppointmentUpdate(BaseModel):
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = Field(None, min_length=1)
    status: Optional[AppointmentStatus] = None
    reason: Optional[str] = None
    notes: Optional[str] = None


class AppointmentResponse(BaseModel):
    id: UUID
    patient_id: UUID
    doctor_id: UUID
    patient: UserSummary
    doctor: UserSummary
    appointment_date: date
    appointment_time: str
    status: AppointmentStatus
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AppointmentListResponse(BaseModel):
    items: list[AppointmentResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class CancelResponse(BaseModel):
    message: str
    appointment: AppointmentResponse


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    appointment = await appointment_service.create_appointment(
        db,
        current_user,
        doctor_id=payload.doctor_id,
        patient_id=payload.patient_id,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        reason=payload.reason,
        notes=payload.notes,
    )
    await log_audit(
        db,
        actor=current_user,
        action="create",
        resource="appointment",
        resource_id=appointment.id,
        request=request,
    )
    return appointment


@router.get("/appointments", response_model=AppointmentListResponse)
async def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    on_date: Optional[date] = Query(None, alias="date", description="Exact appointment day"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    patient_id: Optional[UUID] = Query(None, description="Ignored for patients"),
    page_params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Appointments visible to the caller, latest first."""
    page = await appointment_service.list_appointments(
        db,
        current_user,
        page_params,
        status_filter=status_filter,
        on_date=on_date,
        date_from=date_from,
        date_to=date_to,
        patient_id=patient_id,
    )
    return page.map(AppointmentResponse.model_validate)


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    appointment = await appointment_service.get_appointment(db, current_user, appointment_id)
    await log_audit(
        db,
        actor=current_user,
        action="read",
        resource="appointment",
        resource_id=appointment_id,
        request=request,
    )
    return appointment


@router.put("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: UUID,
    payload: AppointmentUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    appointment = await appointment_service.update_appointment(
        db, current_user, appointment_id, changes
    )
    await log_audit(
        db,
        actor=current_user,
        action="update",
        resource="appointment",
        resource_id=appointment_id,
        details=f"Fields: {sorted(changes)}",
        request=request,
    )
    return appointment


@router.delete("/appointments/{appointment_id}", response_model=CancelResponse)
async def cancel_appointment(
    appointment_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Cancel an appointment. It stays listed with status ``cancelled``."""
    appointment = await appointment_service.cancel_appointment(db, current_user, appointment_id)
    await log_audit(
        db,
        actor=current_user,
        action="delete",
        resource="appointment",
        resource_id=appointment_id,
        details="Cancelled",
        request=request,
    )
    return CancelResponse(
        message="Appointment cancelled successfully",
        appointment=AppointmentResponse.model_validate(appointment),
    )
