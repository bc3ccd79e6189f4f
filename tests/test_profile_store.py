from __future__ import annotations

import asyncio

import pytest

from app.database import Database
from app.exceptions import ProfileNotFoundError
from app.services.profiles import ProfileStore


async def _store(tmp_path, name: str) -> tuple[Database, ProfileStore]:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / name}")
    await database.create_all()
    return database, ProfileStore(database.session_factory)


def test_missing_profile_returns_none(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _store(tmp_path, "missing.db")

        assert await store.get_user_profile("nobody") is None

        await database.dispose()

    asyncio.run(runner())


def test_create_profile_applies_defaults(tmp_path) -> None:
    """New profiles default to a 6.0 floor and empty sets."""

    async def runner() -> None:
        database, store = await _store(tmp_path, "create.db")

        await store.create_user_profile("user-1", "one@example.com")
        profile = await store.get_user_profile("user-1")

        assert profile is not None
        assert profile.email == "one@example.com"
        assert profile.preferred_rating == 6.0
        assert profile.preferred_genres == []
        assert profile.watched_movies == []
        assert profile.liked_movies == []

        await database.dispose()

    asyncio.run(runner())


def test_create_profile_accepts_partial_defaults(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _store(tmp_path, "partial.db")

        await store.create_user_profile(
            "user-2",
            "two@example.com",
            {"preferredGenres": [28, 12], "preferredRating": 7.5, "watchedMovies": [5]},
        )
        profile = await store.get_user_profile("user-2")

        assert profile is not None
        assert profile.preferred_genres == [28, 12]
        assert profile.preferred_rating == 7.5
        assert profile.watched_movies == [5]

        await database.dispose()

    asyncio.run(runner())


def test_update_preferences(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _store(tmp_path, "update.db")
        created = await store.create_user_profile("user-3", "three@example.com")

        await store.update_preferred_genres("user-3", [35, 18, 35])
        await store.update_preferred_rating("user-3", 8.0)
        profile = await store.get_user_profile("user-3")

        assert profile is not None
        assert profile.preferred_genres == [35, 18]
        assert profile.preferred_rating == 8.0
        assert profile.last_updated >= created.last_updated

        with pytest.raises(ValueError):
            await store.update_preferred_rating("user-3", 12)

        await database.dispose()

    asyncio.run(runner())


def test_watched_movies_form_a_set_with_latest_event(tmp_path) -> None:
    """Watching the same movie twice keeps one membership and the newest event."""

    async def runner() -> None:
        database, store = await _store(tmp_path, "watched.db")
        await store.create_user_profile("user-4", "four@example.com")

        await store.add_watched_movie("user-4", 603, rating=8)
        await store.add_watched_movie("user-4", 550)
        await store.add_watched_movie("user-4", 603, rating=9, review="Even better")

        profile = await store.get_user_profile("user-4")
        events = await store.get_watched_movies_details("user-4")

        assert profile is not None
        assert profile.watched_movies == [603, 550]
        assert sorted(event.movie_id for event in events) == [550, 603]
        rewatch = next(event for event in events if event.movie_id == 603)
        assert rewatch.rating == 9
        assert rewatch.review == "Even better"

        await database.dispose()

    asyncio.run(runner())


def test_liked_movies_form_a_set(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _store(tmp_path, "liked.db")
        await store.create_user_profile("user-5", "five@example.com")

        await store.add_liked_movie("user-5", 11)
        await store.add_liked_movie("user-5", 11)
        await store.add_liked_movie("user-5", 12)

        profile = await store.get_user_profile("user-5")

        assert profile is not None
        assert profile.liked_movies == [11, 12]
        assert profile.watched_movies == []

        await database.dispose()

    asyncio.run(runner())


def test_recreating_profile_replaces_sets(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _store(tmp_path, "recreate.db")
        await store.create_user_profile("user-6", "six@example.com", {"watchedMovies": [1, 2]})

        await store.create_user_profile("user-6", "six@example.com", {"watchedMovies": [2, 3]})
        profile = await store.get_user_profile("user-6")

        assert profile is not None
        assert profile.watched_movies == [2, 3]

        await database.dispose()

    asyncio.run(runner())


def test_mutating_missing_profile_raises(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _store(tmp_path, "not-found.db")

        with pytest.raises(ProfileNotFoundError):
            await store.update_preferred_genres("ghost", [28])
        with pytest.raises(ProfileNotFoundError):
            await store.add_watched_movie("ghost", 603)
        with pytest.raises(ProfileNotFoundError):
            await store.add_liked_movie("ghost", 603)

        assert await store.get_watched_movies_details("ghost") == []

        await database.dispose()

    asyncio.run(runner())


def test_update_preferences_writes_genres_and_rating_together(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _store(tmp_path, "preferences.db")
        await store.create_user_profile("user-7", "seven@example.com", {"preferredGenres": [28]})

        await store.update_preferences("user-7", [35, 18, 35], 7.5)
        profile = await store.get_user_profile("user-7")

        assert profile is not None
        assert profile.preferred_genres == [35, 18]
        assert profile.preferred_rating == 7.5

        # An invalid rating must not leave the genres half-applied.
        with pytest.raises(ValueError):
            await store.update_preferences("user-7", [12], 11)
        unchanged = await store.get_user_profile("user-7")

        assert unchanged is not None
        assert unchanged.preferred_genres == [35, 18]

        await store.update_preferences("user-7", [12])
        genres_only = await store.get_user_profile("user-7")

        assert genres_only is not None
        assert genres_only.preferred_genres == [12]
        assert genres_only.preferred_rating == 7.5

        with pytest.raises(ProfileNotFoundError):
            await store.update_preferences("ghost", [28], 6.0)

        await database.dispose()

    asyncio.run(runner())
