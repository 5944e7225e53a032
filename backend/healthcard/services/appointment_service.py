"""
Appointment service - booking, scoped listing, updates, cancellation, and the
periodic sweep that completes past scheduled appointments.

Status lifecycle::

    pending ──(staff)──> scheduled ──(sweep, date passed)──> completed
       └──────────────┴──────────────> cancelled (terminal)

All public functions accept an ``AsyncSession`` so the caller (route layer or
Celery task) controls the transaction boundary.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.exceptions import ValidationError
from healthcard.models.appointment import Appointment, AppointmentStatus
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

KIND = ResourceKind.APPOINTMENT
LABEL = "Appointment"

UPDATABLE_FIELDS = ("appointment_date", "appointment_time", "status", "reason", "notes")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def create_appointment(
    db: AsyncSession,
    actor: User,
    *,
    doctor_id: uuid.UUID,
    appointment_date: date,
    appointment_time: str,
    patient_id: Optional[uuid.UUID] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> Appointment:
    """Book an appointment.

    Patients always book for themselves; admins and doctors must name the
    patient.  New appointments start as ``pending``.
    """
    patient_id, doctor_id = access_policy.creation_owner_ids(
        KIND, actor, patient_id=patient_id, doctor_id=doctor_id
    )
    await user_service.require_role_member(db, doctor_id, UserRole.DOCTOR)
    await user_service.require_role_member(db, patient_id, UserRole.PATIENT)

    appointment = Appointment(
        id=uuid.uuid4(),
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        status=AppointmentStatus.PENDING,
        reason=reason,
        notes=notes,
    )
    db.add(appointment)
    await db.flush()
    logger.info(
        "Appointment %s booked by %s: patient=%s doctor=%s on %s",
        appointment.id, actor.id, patient_id, doctor_id, appointment_date,
    )
    return await load_record(db, Appointment, appointment.id, LABEL)


async def list_appointments(
    db: AsyncSession,
    actor: User,
    params: PageParams,
    *,
    status_filter: Optional[AppointmentStatus] = None,
    on_date: Optional[date] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    patient_id: Optional[uuid.UUID] = None,
) -> Page:
    """Scoped appointment list, latest date/time first."""
    query = apply_owner_filters(
        with_owners(Appointment),
        Appointment,
        access_policy.scope_filters(actor, patient_id=patient_id),
    )
    if status_filter is not None:
        query = query.where(Appointment.status == status_filter)
    if on_date is not None:
        query = query.where(Appointment.appointment_date == on_date)
    if date_from is not None:
        query = query.where(Appointment.appointment_date >= date_from)
    if date_to is not None:
        query = query.where(Appointment.appointment_date <= date_to)

    query = query.order_by(
        Appointment.appointment_date.desc(),
        Appointment.appointment_time.desc(),
        Appointment.created_at.desc(),
    )
    return await paginate(db, query, params)


async def get_appointment(db: AsyncSession, actor: User, appointment_id: uuid.UUID) -> Appointment:
    appointment = await load_record(db, Appointment, appointment_id, LABEL)
    access_policy.enforce(access_policy.can_read(actor, appointment))
    return appointment


async def update_appointment(
    db: AsyncSession,
    actor: User,
    appointment_id: uuid.UUID,
    changes: dict[str, Any],
) -> Appointment:
    """Partial update by the patient, the doctor, or an admin.

    Owner ids are ignored if present.  A cancelled appointment stays cancelled.
    """
    appointment = await load_record(db, Appointment, appointment_id, LABEL)
    access_policy.enforce(access_policy.can_modify(KIND, actor, appointment))

    new_status = changes.get("status")
    if new_status is not None:
        try:
            new_status = AppointmentStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid appointment status: {new_status}")
        if (
            appointment.status == AppointmentStatus.CANCELLED
            and new_status != AppointmentStatus.CANCELLED
        ):
            raise ValidationError("Cancelled appointments cannot be reopened")
        changes = {**changes, "status": new_status}

    applied = apply_changes(appointment, changes, UPDATABLE_FIELDS)
    if applied:
        await db.flush()
        logger.info("Appointment %s updated by %s: %s", appointment_id, actor.id, applied)
    return await load_record(db, Appointment, appointment_id, LABEL)


async def cancel_appointment(db: AsyncSession, actor: User, appointment_id: uuid.UUID) -> Appointment:
    """Delete is a soft transition to ``cancelled``; the row is kept."""
    appointment = await load_record(db, Appointment, appointment_id, LABEL)
    access_policy.enforce(access_policy.can_modify(KIND, actor, appointment))

    if appointment.status != AppointmentStatus.CANCELLED:
        appointment.status = AppointmentStatus.CANCELLED
        await db.flush()
        logger.info("Appointment %s cancelled by %s", appointment_id, actor.id)
    return await load_record(db, Appointment, appointment_id, LABEL)


# ---------------------------------------------------------------------------
# Lifecycle sweep
# ---------------------------------------------------------------------------

async def complete_past_appointments(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Mark every scheduled appointment whose day has started as completed.

    An appointment date is midnight of its day, so anything dated on or
    before ``now``'s day is due.

    One bulk UPDATE guarded by ``status = scheduled``, so pending, cancelled
    and already completed rows are never touched and a second run with
    nothing newly eligible changes zero rows.  Returns the number of rows
    changed; the caller commits.
    """
    now = now or datetime.utcnow()
    result = await db.execute(
        update(Appointment)
        .where(
            Appointment.status == AppointmentStatus.SCHEDULED,
            Appointment.appointment_date <= now.date(),
        )
        .values(status=AppointmentStatus.COMPLETED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
