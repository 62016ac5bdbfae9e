"""
Database Base Module

Declarative base, timestamp mixin and the async engine/session manager
used by the SQL version store.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime, String, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..config import StorageConfig

logger = logging.getLogger(__name__)

# Sync driver prefixes and their async replacements
ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def to_async_url(database_url: str) -> str:
    """Rewrite a sync database URL to its async driver."""
    for prefix, replacement in ASYNC_DRIVERS.items():
        if database_url.startswith(prefix):
            return replacement + database_url[len(prefix):]
    return database_url


class Base(DeclarativeBase):
    """Declarative base; every table has a UUID string key."""

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )


class TimestampMixin:
    """created_at / updated_at columns maintained on insert and update."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class DatabaseManager:
    """
    Owns the async engine and hands out transactional sessions.

    The engine is created lazily on first use so that building the
    application does not open connections.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        self.database_url = to_async_url(database_url)
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo

        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    @classmethod
    def from_config(cls, config: StorageConfig) -> "DatabaseManager":
        return cls(
            config.database_url,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            echo=config.echo,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            options = {"echo": self.echo}
            # SQLite uses a static pool without sizing options
            if not self.is_sqlite:
                options.update(
                    pool_size=self.pool_size,
                    max_overflow=self.max_overflow,
                    pool_pre_ping=True,
                )
            self._engine = create_async_engine(self.database_url, **options)
        return self._engine

    @property
    def sessions(self) -> async_sessionmaker:
        if self._sessions is None:
            self._sessions = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._sessions

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        One transaction per block.

        Commits when the block exits normally and rolls back when it
        raises, so a storage operation is applied completely or not at all.
        """
        session = self.sessions()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create the flow tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Flow tables ready")

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def health_check(self) -> bool:
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False
        return True

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None


__all__ = [
    "Base",
    "TimestampMixin",
    "DatabaseManager",
    "to_async_url",
]
