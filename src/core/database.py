"""SQLAlchemy 2.x async engine and session factory.

Provides the declarative base, the async engine and the session maker
shared by the API process and the pipeline workers.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.core.config import Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def create_engine(
    settings: Settings,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create async engine and session factory from settings.

    Returns:
        Tuple of (engine, async_session_factory).
    """
    engine = create_async_engine(
        settings.database_url or "",
        echo=settings.debug,
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,
        pool_recycle=300,
    )

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    return engine, session_factory
