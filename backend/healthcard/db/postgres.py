from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from healthcard.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    # SQLite (used by the test suite) runs on a static pool without sizing knobs
    if url.startswith("sqlite"):
        return {"echo": settings.DEBUG}
    return {"echo": settings.DEBUG, "pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
