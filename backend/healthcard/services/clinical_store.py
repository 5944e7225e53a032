"""
Persistence helpers shared by the appointment, medical record and
prescription services.

Every clinical row references a patient and a doctor identity; responses
always carry both, so reads go through :func:`with_owners`.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.exceptions import NotFoundError

M = TypeVar("M")

# Owner references are fixed at creation
IMMUTABLE_FIELDS = frozenset({"id", "patient_id", "doctor_id", "created_at", "updated_at"})


def with_owners(model) -> Select:
    return select(model).options(selectinload(model.patient), selectinload(model.doctor))


async def load_record(db: AsyncSession, model: type[M], record_id: uuid.UUID, label: str) -> M:
    """Fetch one record with its owners populated, or raise NotFoundError."""
    result = await db.execute(
        with_owners(model)
        .where(model.id == record_id)
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFoundError(f"{label} not found")
    return record


def apply_owner_filters(query: Select, model, filters: dict[str, Any]) -> Select:
    """AND together equality filters produced by ``access_policy.scope_filters``."""
    for column, value in filters.items():
        query = query.where(getattr(model, column) == value)
    return query


def apply_changes(record: Any, changes: dict[str, Any], allowed: Iterable[str]) -> list[str]:
    """Copy supplied, non-null, mutable fields onto *record*.

    Returns the names of the fields that were written.
    """
    applied = []
    allowed = set(allowed) - IMMUTABLE_FIELDS
    for field, value in changes.items():
        if field in allowed and value is not None:
            setattr(record, field, value)
            applied.append(field)
    return applied
