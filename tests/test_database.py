from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect, text

from app.database import Database


def _initialise_legacy_schema(database_path: str) -> None:
    """Create a legacy series table that predates season tracking."""

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    CREATE TABLE series (
                        id VARCHAR(64) PRIMARY KEY,
                        title VARCHAR(255),
                        external_link VARCHAR(512),
                        comment TEXT,
                        genres JSON,
                        seasons JSON,
                        overall_watch_status VARCHAR(16),
                        priority INTEGER,
                        added_by VARCHAR(120),
                        date_added DATETIME,
                        updated_at DATETIME
                    )
                    """
                )
            )
            connection.execute(
                text(
                    """
                    INSERT INTO series (id, title, seasons, overall_watch_status, priority)
                    VALUES ('legacy', 'Lost', '[{"season_number": 1, "watch_status": "WATCHED"}]',
                            'WATCHED', 0)
                    """
                )
            )
    finally:
        engine.dispose()


def test_create_all_adds_season_tracking_columns(tmp_path) -> None:
    """Schema migrations should add and backfill the season tracking columns."""

    database_path = tmp_path / "legacy.db"
    _initialise_legacy_schema(str(database_path))

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        columns = {column["name"] for column in inspector.get_columns("series")}
        with inspector_engine.connect() as connection:
            flag = connection.execute(
                text("SELECT has_new_seasons FROM series WHERE id = 'legacy'")
            ).scalar_one()
    finally:
        inspector_engine.dispose()

    assert {
        "external_id",
        "total_available_seasons",
        "has_new_seasons",
        "series_status",
        "last_reconciled_at",
    } <= columns
    assert flag == 0


def test_create_all_is_repeatable(tmp_path) -> None:
    database_path = tmp_path / "fresh.db"

    async def _create_twice() -> None:
        database = Database(f"sqlite+aiosqlite:///{database_path}")
        try:
            await database.create_all()
            await database.create_all()
        finally:
            await database.dispose()

    asyncio.run(_create_twice())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        tables = set(inspect(inspector_engine).get_table_names())
    finally:
        inspector_engine.dispose()

    assert {"series", "movies", "notifications", "scheduled_jobs"} <= tables
