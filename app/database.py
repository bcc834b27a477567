"""Database utilities for the MovieCat service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base with consistent naming conventions."""

    metadata = MetaData()


class Database:
    """Thin wrapper managing the SQLAlchemy async engine and sessions."""

    def __init__(self, database_url: str):
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create database tables if they do not yet exist."""

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection) -> None:
        """Add the season-tracking columns to series tables created before them."""

        inspector = inspect(sync_connection)
        table_names = inspector.get_table_names()
        if "series" not in table_names:
            return

        existing_columns = {
            column["name"] for column in inspector.get_columns("series")
        }

        def _ensure_column(name: str, ddl: str, init_sql: str | None = None) -> None:
            if name in existing_columns:
                return
            sync_connection.execute(text(ddl))
            if init_sql:
                sync_connection.execute(text(init_sql))
            existing_columns.add(name)

        _ensure_column(
            "external_id",
            "ALTER TABLE series ADD COLUMN external_id INTEGER",
        )
        _ensure_column(
            "total_available_seasons",
            "ALTER TABLE series ADD COLUMN total_available_seasons INTEGER",
        )
        _ensure_column(
            "has_new_seasons",
            "ALTER TABLE series ADD COLUMN has_new_seasons BOOLEAN DEFAULT 0",
            "UPDATE series SET has_new_seasons = 0 WHERE has_new_seasons IS NULL",
        )
        _ensure_column(
            "series_status",
            "ALTER TABLE series ADD COLUMN series_status VARCHAR(16)",
        )
        _ensure_column(
            "last_reconciled_at",
            "ALTER TABLE series ADD COLUMN last_reconciled_at DATETIME",
        )

    async def dispose(self) -> None:
        """Dispose of the underlying database engine."""

        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations."""

        async with self.session_factory() as session:
            yield session
