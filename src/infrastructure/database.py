"""
Async SQLAlchemy engine, session factory and transaction scope.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.
``transaction`` is the scoped unit of work used wherever several writes
must land together or not at all.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit everything written in the block, or roll all of it back.

    The session autobegins on its first statement; on exit the whole
    transaction is either committed or rolled back, so the block is
    all-or-nothing with respect to the store.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
