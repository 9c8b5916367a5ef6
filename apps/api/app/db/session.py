"""Async SQLAlchemy engine and session management."""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ..core.config import Settings, get_settings


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


class Database:
    """Owns the engine and session factory for one process.

    Created once at startup (API lifespan or worker boot) and disposed at
    shutdown; components receive it explicitly instead of reaching for a
    module-level engine.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Database":
        settings = settings or get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is not configured")
        options: dict[str, object] = {"future": True, "echo": settings.database_echo}
        if not settings.database_url.startswith("sqlite"):
            options["pool_pre_ping"] = True
            options["pool_timeout"] = settings.database_pool_timeout_seconds
        return cls(create_async_engine(settings.database_url, **options))

    async def create_all(self) -> None:
        """Create tables for all registered models if they do not exist."""

        # Import models to ensure metadata is populated before create_all.
        from .. import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the database attached at startup."""

    database: Database | None = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database has not been initialised for this application")
    return database


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async session."""

    database = get_database(request)
    async with database.sessionmaker() as session:
        yield session
