"""Database engine, session factory and declarative base."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from app.config import settings
from app.core.exceptions import DependencyUnavailable

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all models."""


# Seconds a SQLite writer waits for another connection's lock
SQLITE_BUSY_TIMEOUT_SECONDS = 30


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite must be file-backed: every session gets its own connection so
    concurrent transactions stay isolated and writers queue on the file lock.

    Raises:
        ValueError: In-memory SQLite URL
    """
    if url.startswith("sqlite"):
        if make_url(url).database in (None, "", ":memory:"):
            raise ValueError(
                "In-memory SQLite cannot isolate concurrent sessions; "
                "use a file database such as sqlite+aiosqlite:///./homeserv.db"
            )
        return create_async_engine(
            url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=3600,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(bind, expire_on_commit=False, autoflush=False)


engine = create_engine_for(settings.database_url, echo=settings.debug)
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session committed at request end."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for sessions used outside request handling."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database context error: {e}")
            await session.rollback()
            raise


@asynccontextmanager
async def unavailable_on_disconnect(service: str) -> AsyncGenerator[None, None]:
    """Translate connectivity failures into ``DependencyUnavailable``.

    Integrity and programming errors propagate unchanged.
    """
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        logger.error(f"{service} unreachable: {e}")
        raise DependencyUnavailable(service, str(e.orig or e)) from e
    except DBAPIError as e:
        if e.connection_invalidated:
            logger.error(f"{service} connection lost: {e}")
            raise DependencyUnavailable(service, "connection lost") from e
        raise
    except (ConnectionError, TimeoutError) as e:
        logger.error(f"{service} unreachable: {e}")
        raise DependencyUnavailable(service, str(e)) from e


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create all tables (development and tests; production uses Alembic)."""
    import app.models  # noqa: F401  register mappers

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
