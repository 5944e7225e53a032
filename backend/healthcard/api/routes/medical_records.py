"""
Medical record API routes.

Endpoints:
    POST   /medical-records       - Create a record (doctor)
    GET    /medical-records       - Scoped, paginated list, newest visit first
    GET    /medical-records/{id}  - Get one record
    PUT    /medical-records/{id}  - Update (authoring doctor / admin)
    DELETE /medical-records/{id}  - Delete (authoring doctor / admin)
"""

from datetime import date, datetime
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
from healthcard.services import medical_record_service
from healthcard.services.pagination import PageParams

router = APIRouter()


class VitalSigns(BaseModel):
    blood_pressure: Optional[str] = None
    temperature: Optional[str] = None
    heart_rate: Optional[str] = None
    weight: Optional[str] = None


class MedicalRecordCreate(BaseModel):
    patient_id: UUID
    diagnosis: str = Field(..., min_length=1)
    treatment: str = Field(..., min_length=1)
    visit_date: date
    notes: Optional[str] = None
    symptoms: Optional[str] = None
    vital_signs: Optional[VitalSigns] = None


class MedicalRecordUpdate(BaseModel):
    diagnosis: Optional[str] = Field(None, min_length=1)
    treatment: Optional[str] = Field(None, min_length=1)
    visit_date: Optional[date] = None
    notes: Optional[str] = None
    symptoms: Optional[str] = None
    vital_signs: Optional[VitalSigns] = None


class MedicalRecordResponse(BaseModel):
    id: UUID
    patient_id: UUID
    doctor_id: UUID
    patient: UserSummary
    doctor: UserSummary
    diagnosis: str
    treatment: str
    notes: Optional[str] = None
    symptoms: Optional[str] = None
    visit_date: date
    vital_signs: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MedicalRecordListResponse(BaseModel):
    items: list[MedicalRecordResponse]
    total: int
    page: int
    limit: int
    total_pages: int


def _vitals(vital_signs: Optional[VitalSigns]) -> Optional[dict]:
    if vital_signs is None:
        return None
    return vital_signs.model_dump(exclude_none=True) or None


@router.post("/medical-records", response_model=MedicalRecordResponse, status_code=status.HTTP_201_CREATED)
async def create_medical_record(
    payload: MedicalRecordCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a medical record. The calling doctor becomes its author."""
    record = await medical_record_service.create_medical_record(
        db,
        current_user,
        patient_id=payload.patient_id,
        diagnosis=payload.diagnosis,
        treatment=payload.treatment,
        visit_date=payload.visit_date,
        notes=payload.notes,
        symptoms=payload.symptoms,
        vital_signs=_vitals(payload.vital_signs),
    )
    await log_audit(
        db,
        actor=current_user,
        action="create",
        resource="medical_record",
        resource_id=record.id,
        request=request,
    )
    return record


@router.get("/medical-records", response_model=MedicalRecordListResponse)
async def list_medical_records(
    patient_id: Optional[UUID] = Query(None, description="Ignored for patients"),
    page_params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    page = await medical_record_service.list_medical_records(
        db, current_user, page_params, patient_id=patient_id
    )
    return page.map(MedicalRecordResponse.model_validate)


@router.get("/medical-records/{record_id}", response_model=MedicalRecordResponse)
async def get_medical_record(
    record_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    record = await medical_record_service.get_medical_record(db, current_user, record_id)
    await log_audit(
        db,
        actor=current_user,
        action="read",
        resource="medical_record",
        resource_id=record_id,
        request=request,
    )
    return record


@router.put("/medical-records/{record_id}", response_model=MedicalRecordResponse)
async def update_medical_record(
    record_id: UUID,
    payload: MedicalRecordUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True, exclude={"vital_signs"})
    if payload.vital_signs is not None:
        changes["vital_signs"] = _vitals(payload.vital_signs)

    record = await medical_record_service.update_medical_record(db, current_user, record_id, changes)
    await log_audit(
        db,
        actor=current_user,
        action="update",
        resource="medical_record",
        resource_id=record_id,
        details=f"Fields: {sorted(changes)}",
        request=request,
    )
    return record


@router.delete("/medical-records/{record_id}", response_model=MessageResponse)
async def delete_medical_record(
    record_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await medical_record_service.delete_medical_record(db, current_user, record_id)
    await log_audit(
        db,
        actor=current_user,
        action="delete",
        resource="medical_record",
        resource_id=record_id,
        request=request,
    )
    return MessageResponse(message="Medical record deleted successfully")
