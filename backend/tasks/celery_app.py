from celery import Celery

from healthcard.config import get_settings

settings = get_settings()

celery_app = Celery(
    "healthcard",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "tasks.appointment_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "tasks.appointment_tasks.*": {"queue": "appointments.lifecycle"},
    },
    beat_schedule={
        "appointments-complete-past": {
            "task": "tasks.appointment_tasks.complete_past_appointments",
            "schedule": settings.APPOINTMENT_SWEEP_INTERVAL_SECONDS,  # Every 5 minutes by default
        },
    },
)
