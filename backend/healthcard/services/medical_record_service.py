"""
Medical record service.

Records are authored by a doctor for an existing patient.  The authoring
doctor and admins may change or remove them; the patient on the record can
read but never write.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.models.medical_record import MedicalRecord
from healthcard.models.user import User, UserRole
from healthcard.services import access_policy, user_service
from healthcard.services.access_policy import ResourceKind
from healthcard.services.clinical_store import (
    apply_changes,
    apply_owner_filters,
    load_record,
    with_owners,
)
from healthcard.services.pagination import Page, PageParams, paginate

logger = logging.getLogger(__name__)

KIND = ResourceKind.MEDICAL_RECORD
LABEL = "Medical record"

UPDATABLE_FIELDS = ("diagnosis", "treatment", "notes", "symptoms", "visit_date", "vital_signs")


async def create_medical_record(
    db: AsyncSession,
    actor: User,
    *,
    patient_id: uuid.UUID,
    diagnosis: str,
    treatment: str,
    visit_date: date,
    notes: Optional[str] = None,
    symptoms: Optional[str] = None,
    vital_signs: Optional[dict[str, Any]] = None,
) -> MedicalRecord:
    patient_id, doctor_id = access_policy.creation_owner_ids(KIND, actor, patient_id=patient_id)
    await user_service.require_role_member(db, patient_id, UserRole.PATIENT)

    record = MedicalRecord(
        id=uuid.uuid4(),
        patient_id=patient_id,
        doctor_id=doctor_id,
        diagnosis=diagnosis,
        treatment=treatment,
        visit_date=visit_date,
        notes=notes,
        symptoms=symptoms,
        vital_signs=vital_signs or None,
    )
    db.add(record)
    await db.flush()
    logger.info("Medical record %s created by doctor %s for patient %s", record.id, doctor_id, patient_id)
    return await load_record(db, MedicalRecord, record.id, LABEL)


async def list_medical_records(
    db: AsyncSession,
    actor: User,
    params: PageParams,
    *,
    patient_id: Optional[uuid.UUID] = None,
) -> Page:
    query = apply_owner_filters(
        with_owners(MedicalRecord),
        MedicalRecord,
        access_policy.scope_filters(actor, patient_id=patient_id),
    )
    query = query.order_by(MedicalRecord.visit_date.desc(), MedicalRecord.created_at.desc())
    return await paginate(db, query, params)


async def get_medical_record(db: AsyncSession, actor: User, record_id: uuid.UUID) -> MedicalRecord:
    record = await load_record(db, MedicalRecord, record_id, LABEL)
    access_policy.enforce(access_policy.can_read(actor, record))
    return record


async def update_medical_record(
    db: AsyncSession,
    actor: User,
    record_id: uuid.UUID,
    changes: dict[str, Any],
) -> MedicalRecord:
    record = await load_record(db, MedicalRecord, record_id, LABEL)
    access_policy.enforce(access_policy.can_modify(KIND, actor, record))

    applied = apply_changes(record, changes, UPDATABLE_FIELDS)
    if applied:
        await db.flush()
        logger.info("Medical record %s updated by %s: %s", record_id, actor.id, applied)
    return await load_record(db, MedicalRecord, record_id, LABEL)


async def delete_medical_record(db: AsyncSession, actor: User, record_id: uuid.UUID) -> None:
    record = await load_record(db, MedicalRecord, record_id, LABEL)
    access_policy.enforce(access_policy.can_modify(KIND, actor, record))

    await db.delete(record)
    await db.flush()
    logger.info("Medical record %s deleted by %s", record_id, actor.id)
