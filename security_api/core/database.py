"""
Database configuration and session management

The engine is owned by a Database handle that the application builds at
startup and disposes at shutdown. Request handlers receive a session through
the get_db dependency; there is no module-level engine.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from security_api.core.config import Settings, settings

logger = logging.getLogger(__name__)

# Every table lives in the configured logical schema ("security" by default)
metadata = MetaData(schema=settings.DB_SCHEMA or None)
Base = declarative_base(metadata=metadata)


def engine_options(config: Settings) -> dict:
    """Pool and driver options for the configured environment."""
    options = {"echo": config.DEBUG, "pool_pre_ping": True}

    if config.DATABASE_URL.startswith("sqlite"):
        return options

    if config.ENVIRONMENT == "production":
        options.update(
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW,
            pool_recycle=config.DB_POOL_RECYCLE,
        )
    else:
        options.update(pool_size=2, max_overflow=5)

    options["pool_timeout"] = config.DB_POOL_TIMEOUT
    if "asyncpg" in config.DATABASE_URL:
        # asyncpg enforces this per statement
        options["connect_args"] = {"command_timeout": config.DB_COMMAND_TIMEOUT}
    return options


class Database:
    """
    Explicit store-client handle.

    Usage:
        database = Database.from_settings(settings)
        async with database.session() as db:
            ...
        await database.dispose()
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.sessionmaker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "Database":
        engine = create_async_engine(config.DATABASE_URL, **engine_options(config))
        return cls(engine)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Transactional session scope: commits on success, rolls back on error.

        Use this outside the request cycle (scripts, background jobs).
        """
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            if metadata.schema and self.engine.dialect.name == "postgresql":
                await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{metadata.schema}"'))
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


def get_database(request: Request) -> Database:
    database: Optional[Database] = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database is not initialised; application lifespan has not run")
    return database


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for getting async database sessions, one transaction per request"""
    async with get_database(request).sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
