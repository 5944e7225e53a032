"""
Prescription service - same ownership rules as medical records.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.models.prescription import Prescription
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

KIND = ResourceKind.PRESCRIPTION
LABEL = "Prescription"

UPDATABLE_FIELDS = ("medication_name", "dosage", "frequency", "duration", "instructions", "is_active")


async def create_prescription(
    db: AsyncSession,
    actor: User,
    *,
    patient_id: uuid.UUID,
    medication_name: str,
    dosage: str,
    frequency: str,
    duration: str,
    instructions: Optional[str] = None,
) -> Prescription:
    patient_id, doctor_id = access_policy.creation_owner_ids(KIND, actor, patient_id=patient_id)
    await user_service.require_role_member(db, patient_id, UserRole.PATIENT)

    prescription = Prescription(
        id=uuid.uuid4(),
        patient_id=patient_id,
        doctor_id=doctor_id,
        medication_name=medication_name,
        dosage=dosage,
        frequency=frequency,
        duration=duration,
        instructions=instructions,
        is_active=True,
    )
    db.add(prescription)
    await db.flush()
    logger.info(
        "Prescription %s (%s) created by doctor %s for patient %s",
        prescription.id, medication_name, doctor_id, patient_id,
    )
    return await load_record(db, Prescription, prescription.id, LABEL)


async def list_prescriptions(
    db: AsyncSession,
    actor: User,
    params: PageParams,
    *,
    patient_id: Optional[uuid.UUID] = None,
    is_active: Optional[bool] = None,
) -> Page:
    query = apply_owner_filters(
        with_owners(Prescription),
        Prescription,
        access_policy.scope_filters(actor, patient_id=patient_id, is_active=is_active),
    )
    query = query.order_by(Prescription.date_prescribed.desc(), Prescription.created_at.desc())
    return await paginate(db, query, params)


async def get_prescription(db: AsyncSession, actor: User, prescription_id: uuid.UUID) -> Prescription:
    prescription = await load_record(db, Prescription, prescription_id, LABEL)
    access_policy.enforce(access_policy.can_read(actor, prescription))
    return prescription


async def update_prescription(
    db: AsyncSession,
    actor: User,
    prescription_id: uuid.UUID,
    changes: dict[str, Any],
) -> Prescription:
    prescription = await load_record(db, Prescription, prescription_id, LABEL)
    access_policy.enforce(access_policy.can_modify(KIND, actor, prescription))

    applied = apply_changes(prescription, changes, UPDATABLE_FIELDS)
    if applied:
        await db.flush()
        logger.info("Prescription %s updated by %s: %s", prescription_id, actor.id, applied)
    return await load_record(db, Prescription, prescription_id, LABEL)


async def delete_prescription(db: AsyncSession, actor: User, prescription_id: uuid.UUID) -> None:
    prescription = await load_record(db, Prescription, prescription_id, LABEL)
    access_policy.enforce(access_policy.can_modify(KIND, actor, prescription))

    await db.delete(prescription)
    await db.flush()
    logger.info("Prescription %s deleted by %s", prescription_id, actor.id)
