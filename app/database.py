"""Database wiring: async engine, sessions and the declarative base.

Request handlers get a session from ``get_db``; scripts and scheduled jobs use
``session_scope``. Both commit on success and roll back on error, so a booking
transition and the availability hold it touches are written together.
"""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Numeric, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.config import settings

engine = create_async_engine(
    settings.async_database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base. ``Decimal`` columns are money with two decimal places."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        date: Date,
        Decimal: Numeric(10, 2),
    }


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """A session outside the request cycle, committed when the block exits cleanly."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one unit of work per request."""
    async with session_scope() as session:
        yield session
