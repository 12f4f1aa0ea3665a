"""
Database Connection and Session Management
"""
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def _engine_options(pooled: bool = False) -> dict:
    options = {"echo": settings.DEBUG, "pool_pre_ping": True}
    # sqlite (local runs) does not take queue pool sizing
    if pooled and not settings.DATABASE_URL.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options())

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db() -> AsyncSession:
    """FastAPI dependency yielding a database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_task_session():
    """
    Fresh engine + session for a Celery task.

    Each task runs on its own event loop, so the module-level engine (bound to
    the web app's loop) cannot be reused there.
    """
    task_engine = create_async_engine(settings.DATABASE_URL, **_engine_options(pooled=True))
    task_session_maker = async_sessionmaker(
        bind=task_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    try:
        async with task_session_maker() as session:
            yield session
    finally:
        await task_engine.dispose()
