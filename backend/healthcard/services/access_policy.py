"""
Access control policy for clinical records.

Pure functions over an *actor* (anything with ``id`` and ``role``) and a
record's owner fields (``patient_id`` / ``doctor_id``).  The same rules are
applied to appointments, medical records and prescriptions; the only
difference between the kinds is who may write:

- appointments: the patient, the doctor, or an admin
- medical records and prescriptions: the authoring doctor or an admin

Nothing here touches the database.  Services call these before any write and
turn a denied ``Decision`` into ``AuthorizationError`` via :func:`enforce`.
"""

from __future__ import annotations

import enum
import logging
import uuid
from typing import Any, NamedTuple, Optional

from healthcard.exceptions import AuthorizationError, ValidationError
from healthcard.models.user import UserRole

logger = logging.getLogger(__name__)


class ResourceKind(str, enum.Enum):
    APPOINTMENT = "appointment"
    MEDICAL_RECORD = "medical_record"
    PRESCRIPTION = "prescription"


# Kinds whose write access belongs to the authoring doctor only
DOCTOR_AUTHORED = frozenset({ResourceKind.MEDICAL_RECORD, ResourceKind.PRESCRIPTION})


class Decision(NamedTuple):
    allowed: bool
    reason: str


ALLOW_ADMIN = Decision(True, "admin")
DENY = Decision(False, "Access denied")


def _role(actor: Any) -> UserRole:
    return UserRole(actor.role)


def _same(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def enforce(decision: Decision) -> None:
    if not decision.allowed:
        logger.warning("Access denied: %s", decision.reason)
        raise AuthorizationError(decision.reason)


# ---------------------------------------------------------------------------
# Single-record checks
# ---------------------------------------------------------------------------

def can_read(actor: Any, record: Any) -> Decision:
    """Admins read everything; otherwise the actor must be on the record."""
    if _role(actor) == UserRole.ADMIN:
        return ALLOW_ADMIN
    if _same(actor.id, record.patient_id):
        return Decision(True, "owner-patient")
    if _same(actor.id, record.doctor_id):
        return Decision(True, "owner-doctor")
    return DENY


def can_modify(kind: ResourceKind, actor: Any, record: Any) -> Decision:
    """Write access for update and delete."""
    if kind not in DOCTOR_AUTHORED:
        return can_read(actor, record)

    if _role(actor) == UserRole.ADMIN:
        return ALLOW_ADMIN
    if _same(actor.id, record.doctor_id):
        return Decision(True, "owner-doctor")
    if _same(actor.id, record.patient_id):
        return Decision(False, f"Patients cannot modify a {kind.value.replace('_', ' ')}")
    return Decision(False, "Only the authoring doctor or an admin can modify this record")


def can_create(kind: ResourceKind, actor: Any) -> Decision:
    if kind in DOCTOR_AUTHORED and _role(actor) != UserRole.DOCTOR:
        return Decision(False, f"Only doctors can create a {kind.value.replace('_', ' ')}")
    return Decision(True, "creator")


def creation_owner_ids(
    kind: ResourceKind,
    actor: Any,
    *,
    patient_id: Optional[uuid.UUID] = None,
    doctor_id: Optional[uuid.UUID] = None,
) -> tuple[uuid.UUID, uuid.UUID]:
    """Resolve ``(patient_id, doctor_id)`` for a new record created by *actor*.

    Raises AuthorizationError when the actor may not create the kind at all,
    and ValidationError when a required owner id is missing from the request.
    Existence and role of the referenced identities are checked by the caller.
    """
    enforce(can_create(kind, actor))
    role = _role(actor)

    if kind in DOCTOR_AUTHORED:
        # Authorship is never delegated: the creating doctor owns the record.
        if patient_id is None:
            raise ValidationError("patient_id is required")
        return patient_id, actor.id

    if role == UserRole.PATIENT:
        patient_id = actor.id
    elif patient_id is None:
        raise ValidationError("patient_id is required when booking for a patient")
    if doctor_id is None:
        raise ValidationError("doctor_id is required")
    return patient_id, doctor_id


# ---------------------------------------------------------------------------
# List scoping
# ---------------------------------------------------------------------------

def scope_filters(
    actor: Any,
    *,
    patient_id: Optional[uuid.UUID] = None,
    is_active: Optional[bool] = None,
) -> dict[str, Any]:
    """Owner filters a list query must apply for *actor*.

    Patients are pinned to their own records and their ``patient_id`` /
    ``is_active`` parameters are dropped without error.  Doctors are pinned to
    records they own and may narrow further.  Admins get only what they asked for.
    """
    role = _role(actor)
    filters: dict[str, Any] = {}

    if role == UserRole.PATIENT:
        if patient_id is not None and not _same(patient_id, actor.id):
            logger.info("Ignoring patient_id filter supplied by patient %s", actor.id)
        filters["patient_id"] = actor.id
        return filters

    if role == UserRole.DOCTOR:
        filters["doctor_id"] = actor.id

    if patient_id is not None:
        filters["patient_id"] = patient_id
    if is_active is not None:
        filters["is_active"] = is_active
    return filters
