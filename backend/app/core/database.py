"""
Newsroom Workflow Engine - Database Engine
==========================================
Async SQLAlchemy engine with connection pooling, plus the error translation
that separates persistence outages from business-rule failures.
"""

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings
from app.core.errors import Conflict, Unavailable

settings = get_settings()

_engine_kwargs = {"echo": settings.app_debug, "pool_pre_ping": True}
if settings.database_url.startswith("postgresql"):
    _engine_kwargs.update(pool_size=20, max_overflow=10)

engine = create_async_engine(settings.database_url, **_engine_kwargs)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Postgres SQLSTATE for "could not obtain lock on row" (FOR UPDATE NOWAIT).
LOCK_NOT_AVAILABLE = "55P03"


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency that yields a DB session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create tables only in development. Production must use Alembic migrations."""
    if settings.app_env.lower() != "development":
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def is_lock_failure(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == LOCK_NOT_AVAILABLE:
        return True
    return "could not obtain lock" in str(orig or exc).lower()


def translate_db_error(exc: DBAPIError, *, entity: str | None = None) -> Exception:
    """Map a driver-level failure onto Conflict (row locked) or Unavailable.

    Anything else (integrity errors, programming errors) is returned unchanged.
    """
    if is_lock_failure(exc):
        return Conflict(
            "The content is being updated by another operation. Retry.",
            entity=entity,
        )
    if isinstance(exc, (OperationalError, InterfaceError)) or exc.connection_invalidated:
        return Unavailable(entity=entity, error=type(exc).__name__)
    return exc
