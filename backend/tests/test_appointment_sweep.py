"""
Appointment lifecycle sweep tests

- complete_past_appointments() scope and idempotence
- The Celery task: commit on success, zero and rollback on failure
"""
import asyncio
import logging
import uuid
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from healthcard.db.postgres import Base
from healthcard.models.appointment import Appointment, AppointmentStatus
from healthcard.models.user import User, UserRole
from healthcard.services import appointment_service
from tasks import appointment_tasks

NOW = datetime(2030, 6, 15, 12, 0)
TODAY = NOW.date()


def appointment(patient_id, doctor_id, day: date, status: AppointmentStatus) -> Appointment:
    return Appointment(
        id=uuid.uuid4(),
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_date=day,
        appointment_time="10:00",
        status=status,
    )


async def statuses(db) -> dict:
    rows = (await db.execute(select(Appointment.id, Appointment.status))).all()
    return {row.id: row.status for row in rows}


class TestCompletePastAppointments:
    """Service-level sweep"""

    @pytest.fixture
    async def owners(self, db, make_user):
        doctor = await make_user("doctor", session=db)
        patient = await make_user("patient", session=db)
        return patient.id, doctor.id

    async def test_only_past_scheduled_complete(self, db, owners):
        yesterday = TODAY - timedelta(days=1)
        rows = {
            "past_scheduled": appointment(*owners, yesterday, AppointmentStatus.SCHEDULED),
            "long_past_scheduled": appointment(*owners, TODAY - timedelta(days=300), AppointmentStatus.SCHEDULED),
            "today_scheduled": appointment(*owners, TODAY, AppointmentStatus.SCHEDULED),
            "future_scheduled": appointment(*owners, TODAY + timedelta(days=3), AppointmentStatus.SCHEDULED),
            "past_pending": appointment(*owners, yesterday, AppointmentStatus.PENDING),
            "past_cancelled": appointment(*owners, yesterday, AppointmentStatus.CANCELLED),
            "past_completed": appointment(*owners, yesterday, AppointmentStatus.COMPLETED),
        }
        db.add_all(rows.values())
        await db.flush()

        changed = await appointment_service.complete_past_appointments(db, NOW)
        assert changed == 3

        after = await statuses(db)
        expected = {
            "past_scheduled": AppointmentStatus.COMPLETED,
            "long_past_scheduled": AppointmentStatus.COMPLETED,
            "today_scheduled": AppointmentStatus.COMPLETED,
            "future_scheduled": AppointmentStatus.SCHEDULED,
            "past_pending": AppointmentStatus.PENDING,
            "past_cancelled": AppointmentStatus.CANCELLED,
            "past_completed": AppointmentStatus.COMPLETED,
        }
        for name, status in expected.items():
            assert after[rows[name].id] == status, name

    async def test_second_run_changes_nothing(self, db, owners):
        db.add(appointment(*owners, TODAY - timedelta(days=2), AppointmentStatus.SCHEDULED))
        await db.flush()

        assert await appointment_service.complete_past_appointments(db, NOW) == 1
        assert await appointment_service.complete_past_appointments(db, NOW) == 0

    async def test_same_day_completes_once_the_day_starts(self, db, owners):
        row = appointment(*owners, TODAY, AppointmentStatus.SCHEDULED)
        db.add(row)
        await db.flush()

        assert await appointment_service.complete_past_appointments(db, datetime(2030, 6, 14, 23, 59)) == 0
        late = datetime(2030, 6, 15, 23, 0)
        assert await appointment_service.complete_past_appointments(db, late) == 1

        stamped = (await db.execute(select(Appointment.updated_at).where(Appointment.id == row.id))).scalar_one()
        assert stamped == late

    async def test_empty_store(self, db):
        assert await appointment_service.complete_past_appointments(db, NOW) == 0

    async def test_defaults_to_current_time(self, db, owners):
        db.add(appointment(*owners, date(2000, 1, 1), AppointmentStatus.SCHEDULED))
        await db.flush()
        assert await appointment_service.complete_past_appointments(db) == 1


class TestSweepTask:
    """tasks.appointment_tasks.complete_past_appointments (runs its own event loop)"""

    @pytest.fixture
    def database(self, tmp_path, monkeypatch):
        """A file-backed SQLite database seeded with one due and one pending appointment."""
        url = f"sqlite+aiosqlite:///{tmp_path / 'sweep.db'}"
        ids = {}

        async def seed():
            eng = create_async_engine(url, poolclass=NullPool)
            async with eng.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
            async with factory() as db:
                doctor = User(
                    id=uuid.uuid4(), email="d@example.com", hashed_password="x",
                    full_name="Doc", role=UserRole.DOCTOR,
                )
                patient = User(
                    id=uuid.uuid4(), email="p@example.com", hashed_password="x",
                    full_name="Pat", role=UserRole.PATIENT,
                )
                due = appointment(patient.id, doctor.id, date(2000, 1, 1), AppointmentStatus.SCHEDULED)
                pending = appointment(patient.id, doctor.id, date(2000, 1, 1), AppointmentStatus.PENDING)
                db.add_all([doctor, patient, due, pending])
                await db.commit()
                ids["due"], ids["pending"] = due.id, pending.id
            await eng.dispose()

        asyncio.run(seed())

        def make_factory():
            eng = create_async_engine(url, poolclass=NullPool)
            return eng, async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)

        monkeypatch.setattr(appointment_tasks, "_make_session_factory", make_factory)
        return url, ids

    @staticmethod
    def read_statuses(url) -> dict:
        async def _read():
            eng = create_async_engine(url, poolclass=NullPool)
            try:
                async with async_sessionmaker(eng, class_=AsyncSession)() as db:
                    return await statuses(db)
            finally:
                await eng.dispose()

        return asyncio.run(_read())

    def test_commits_and_returns_count(self, database, caplog):
        url, ids = database
        with caplog.at_level(logging.INFO, logger="tasks.appointment_tasks"):
            assert appointment_tasks.complete_past_appointments() == 1

        after = self.read_statuses(url)
        assert after[ids["due"]] == AppointmentStatus.COMPLETED
        assert after[ids["pending"]] == AppointmentStatus.PENDING
        assert "completed 1 appointment" in caplog.text

        assert appointment_tasks.complete_past_appointments() == 0

    def test_failure_returns_zero_and_changes_nothing(self, database, monkeypatch, caplog):
        url, ids = database

        real = appointment_service.complete_past_appointments

        async def explode(db, now=None):
            await real(db, now)
            raise RuntimeError("database went away")

        monkeypatch.setattr(appointment_service, "complete_past_appointments", explode)

        with caplog.at_level(logging.ERROR, logger="tasks.appointment_tasks"):
            assert appointment_tasks.complete_past_appointments() == 0

        assert "Appointment sweep failed" in caplog.text
        assert self.read_statuses(url)[ids["due"]] == AppointmentStatus.SCHEDULED
