"""
Prescription API routes.

Endpoints:
    POST   /prescriptions       - Prescribe (doctor)
    GET    /prescriptions       - Scoped, paginated list; filter by patient / active
    GET    /prescriptions/{id}  - Get one prescription
    PUT    /prescriptions/{id}  - Update, including deactivation (prescribing doctor / admin)
    DELETE /prescriptions/{id}  - Delete (prescribing doctor / admin)
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.db.postgres import get_db
from healthcard.models.user import User
from healthcard.api.middleware.auth import get_current_user
from healthcard.api.middleware.audit import log_audit
from healthcard.api.routes.users import UserSummary, MessageResponse
from healthcard.services import prescription_service
from healthcard.services.pagination import PageParams

router = APIRouter()


class PrescriptionCreate(BaseModel):
    patient_id: UUID
    medication_name: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1)
    frequency: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1)
    instructions: Optional[str] = None


class PrescriptionUpdate(BaseModel):
    medication_name: Optional[str] = Field(None, min_length=1)
    dosage: Optional[str] = Field(None, min_length=1)
    frequency: Optional[str] = Field(None, min_length=1)
    duration: Optional[str] = Field(None, min_length=1)
    instructions: Optional[str] = None
    is_active: Optional[bool] = None


class PrescriptionResponse(BaseModel):
    id: UUID
    patient_id: UUID
    doctor_id: UUID
    patient: UserSummary
    doctor: UserSummary
    medication_name: str
    dosage: str
    frequency: str
    duration: str
    instructions: Optional[str] = None
    date_prescribed: datetime
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PrescriptionListResponse(BaseModel):
    items: list[PrescriptionResponse]
    total: int
    page: int
    limit: int
    total_pages: int


@router.post("/prescriptions", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_prescription(
    payload: PrescriptionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prescription = await prescription_service.create_prescription(
        db,
        current_user,
        patient_id=payload.patient_id,
        medication_name=payload.medication_name,
        dosage=payload.dosage,
        frequency=payload.frequency,
        duration=payload.duration,
        instructions=payload.instructions,
    )
    await log_audit(
        db,
        actor=current_user,
        action="create",
        resource="prescription",
        resource_id=prescription.id,
        details=payload.medication_name,
        request=request,
    )
    return prescription


@router.get("/prescriptions", response_model=PrescriptionListResponse)
async def list_prescriptions(
    patient_id: Optional[UUID] = Query(None, description="Ignored for patients"),
    is_active: Optional[bool] = Query(None, description="Ignored for patients"),
    page_params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    page = await prescription_service.list_prescriptions(
        db, current_user, page_params, patient_id=patient_id, is_active=is_active
    )
    return page.map(PrescriptionResponse.model_validate)


@router.get("/prescriptions/{prescription_id}", response_model=PrescriptionResponse)
async def get_prescription(
    prescription_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prescription = await prescription_service.get_prescription(db, current_user, prescription_id)
    await log_audit(
        db,
        actor=current_user,
        action="read",
        resource="prescription",
        resource_id=prescription_id,
        request=request,
    )
    return prescription


@router.put("/prescriptions/{prescription_id}", response_model=PrescriptionResponse)
async def update_prescription(
    prescription_id: UUID,
    payload: PrescriptionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    prescription = await prescription_service.update_prescription(
        db, current_user, prescription_id, changes
    )
    await log_audit(
        db,
        actor=current_user,
        action="update",
        resource="prescription",
        resource_id=prescription_id,
        details=f"Fields: {sorted(changes)}",
        request=request,
    )
    return prescription


@router.delete("/prescriptions/{prescription_id}", response_model=MessageResponse)
async def delete_prescription(
    prescription_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await prescription_service.delete_prescription(db, current_user, prescription_id)
    await log_audit(
        db,
        actor=current_user,
        action="delete",
        resource="prescription",
        resource_id=prescription_id,
        request=request,
    )
    return MessageResponse(message="Prescription deleted successfully")
