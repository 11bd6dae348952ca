"""
Async database wiring for CapstoneFlow.

The engine and session factory are built on first use, so test suites can
point DATABASE_URL at their own SQLite file before anything connects.
"""
import uuid
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from app.core.config import settings

Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def generate_uuid() -> str:
    """String UUID used as the primary key of every CapstoneFlow table"""
    return str(uuid.uuid4())


def get_database_url() -> str:
    """DATABASE_URL with a plain postgres scheme mapped onto the asyncpg driver"""
    url = settings.DATABASE_URL
    for plain in ("postgresql://", "postgres://"):
        if url.startswith(plain):
            return "postgresql+asyncpg://" + url[len(plain):]
    return url


def _engine_options(url: str) -> dict:
    options = {"echo": settings.DB_ECHO}
    if url.startswith("sqlite"):
        options.update(connect_args={"check_same_thread": False}, poolclass=NullPool)
    elif settings.is_dev_mode():
        options["poolclass"] = NullPool
    else:
        # Row locks on projects and supervisors are held for a whole request
        options.update(pool_size=10, max_overflow=20, pool_recycle=1800, pool_pre_ping=True)
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        url = get_database_url()
        _engine = create_async_engine(url, **_engine_options(url))
    return _engine


def get_session_local() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session.

    Services commit their own transitions; anything a route leaves pending
    is committed here, and any error rolls the unit of work back.
    """
    async with get_session_local()() as session:
        try:
            yield session
            if session.new or session.dirty or session.deleted:
                await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the workflow tables if they are missing"""
    import app.models  # noqa: F401  registers every mapper on Base.metadata

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
