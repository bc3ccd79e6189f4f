from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app.database import Database


def test_create_all_builds_profile_tables(tmp_path) -> None:
    """Creating the schema should provision every profile store table."""

    database_path = tmp_path / "fresh.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        tables = set(inspector.get_table_names())
        user_columns = {column["name"] for column in inspector.get_columns("users")}
        unique_constraints = inspector.get_unique_constraints("user_movies")
    finally:
        inspector_engine.dispose()

    assert {"users", "user_movies", "watched_movies"} <= tables
    assert {"preferred_genres", "preferred_rating", "last_updated"} <= user_columns
    assert any(
        set(constraint["column_names"]) == {"user_id", "movie_id", "kind"}
        for constraint in unique_constraints
    )


def test_create_all_is_idempotent(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'twice.db'}")

    async def runner() -> None:
        await database.create_all()
        await database.create_all()
        await database.dispose()

    asyncio.run(runner())
