"""Celery tasks for the appointment lifecycle."""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from healthcard.config import get_settings
from healthcard.services import appointment_service
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _make_session_factory():
    """Engine + session factory bound to the current task's event loop.

    Every tick runs on a fresh loop, so pooled connections from the API
    engine cannot be reused here.
    """
    settings = get_settings()
    eng = create_async_engine(settings.database_url, poolclass=NullPool)
    factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    return eng, factory


async def _sweep(now: Optional[datetime] = None) -> int:
    eng, factory = _make_session_factory()
    try:
        async with factory() as db:
            try:
                count = await appointment_service.complete_past_appointments(db, now)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        return count
    finally:
        await eng.dispose()


@celery_app.task(name="tasks.appointment_tasks.complete_past_appointments")
def complete_past_appointments():
    """Move scheduled appointments whose date has passed to completed.

    A failed tick is logged and reported as zero; the next beat tick starts
    from scratch.
    """
    try:
        count = _run_async(_sweep())
    except Exception:
        logger.exception("Appointment sweep failed")
        return 0

    logger.info("Appointment sweep completed %d appointment(s)", count)
    return count
