import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthcard.config import get_settings
from healthcard.db.postgres import engine, async_session, Base
from healthcard.exceptions import register_exception_handlers
import healthcard.models  # noqa: F401 - register all ORM models with Base.metadata

from healthcard.api.routes import auth, users, appointments, medical_records, prescriptions
from healthcard.services.user_service import bootstrap_admin_if_needed

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# API routes
app.include_router(auth.router, prefix=settings.API_PREFIX, tags=["Auth"])
app.include_router(users.router, prefix=settings.API_PREFIX, tags=["Users"])
app.include_router(appointments.router, prefix=settings.API_PREFIX, tags=["Appointments"])
app.include_router(medical_records.router, prefix=settings.API_PREFIX, tags=["Medical Records"])
app.include_router(prescriptions.router, prefix=settings.API_PREFIX, tags=["Prescriptions"])


@app.on_event("startup")
async def startup():
    # Step 1: Create all tables (own transaction)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Step 2: First admin, if configured and none exists yet
    async with async_session() as session:
        try:
            await bootstrap_admin_if_needed(session, settings)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Admin bootstrap failed")

    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)


@app.on_event("shutdown")
async def shutdown():
    await engine.dispose()


@app.get(f"{settings.API_PREFIX}/health")
async def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.APP_VERSION}
