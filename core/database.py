"""
Database engine and session management with SQLAlchemy async
"""

from typing import Optional
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.pool import NullPool, StaticPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    In-memory SQLite needs a single shared connection, everything else
    runs without a pool so short-lived sync runs never hold connections.
    """
    url = database_url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    return create_async_engine(url, echo=echo, poolclass=NullPool)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    """Session factory shared by the scheduler, scripts and API"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def dialect_insert(session: AsyncSession):
    """
    ``insert`` construct supporting ON CONFLICT for the session's dialect.

    PostgreSQL in production, SQLite in tests; both expose the same
    ``on_conflict_do_update`` / ``on_conflict_do_nothing`` API.
    """
    bind = getattr(session, "bind", None)
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "postgresql")

    if dialect_name == "sqlite":
        return sqlite_insert
    return postgresql_insert


engine = build_engine(echo=settings.ENVIRONMENT == "development")
async_session_maker = build_session_maker(engine)


async def get_session() -> AsyncSession:
    """Get database session"""
    async with async_session_maker() as session:
        yield session
