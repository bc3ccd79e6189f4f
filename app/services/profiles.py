"""Persistence of user profiles, watched/liked sets and watch events."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Mapping, Sequence

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import LIKED, WATCHED, UserMovieRecord, UserRecord, WatchEventRecord
from ..exceptions import ProfileNotFoundError, StoreError
from ..models import DEFAULT_PREFERRED_RATING, UserProfile, WatchEvent
from ..utils import unique_ids

logger = logging.getLogger(__name__)


def watch_event_id(user_id: str, movie_id: int) -> str:
    return f"{user_id}_{movie_id}"


class ProfileStore:
    """Typed access to the per-user preference documents.

    Watched and liked movies are stored one row per membership under a unique
    constraint so adding to a set is a single conflict-ignoring insert rather
    than a read-modify-write of the whole profile.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        default_rating: float = DEFAULT_PREFERRED_RATING,
    ):
        self._session_factory = session_factory
        self._default_rating = default_rating

    async def get_user_profile(self, user_id: str) -> UserProfile | None:
        async with self._session("load profile") as session:
            record = await session.get(UserRecord, user_id)
            if record is None:
                return None
            memberships = await self._load_memberships(session, user_id)
            return self._record_to_profile(record, memberships)

    async def create_user_profile(
        self,
        user_id: str,
        email: str,
        defaults: Mapping[str, Any] | None = None,
    ) -> UserProfile:
        """Write a fresh profile document, replacing any existing one."""

        data: dict[str, Any] = {
            "preferred_rating": self._default_rating,
            **dict(defaults or {}),
            "id": user_id,
            "email": email,
        }
        aliased_rating = data.pop("preferredRating", None)
        if aliased_rating is not None:
            data["preferred_rating"] = aliased_rating
        if data.get("preferred_rating") is None:
            data["preferred_rating"] = self._default_rating
        now = datetime.utcnow()
        data.setdefault("created_at", now)
        data.setdefault("last_updated", now)
        profile = UserProfile.model_validate(data)

        async with self._session("create profile") as session:
            record = await session.get(UserRecord, user_id)
            if record is None:
                record = UserRecord(id=user_id)
                session.add(record)
            record.email = profile.email
            record.preferred_genres = list(profile.preferred_genres)
            record.favorite_actors = list(profile.favorite_actors)
            record.preferred_rating = profile.preferred_rating
            record.created_at = profile.created_at
            record.last_updated = profile.last_updated

            existing = await session.execute(
                select(UserMovieRecord).where(UserMovieRecord.user_id == user_id)
            )
            for membership in existing.scalars():
                await session.delete(membership)
            # Flush the deletes first so re-adding the same ids does not trip
            # the unique constraint.
            await session.flush()
            session.add_all(
                [
                    UserMovieRecord(user_id=user_id, movie_id=movie_id, kind=WATCHED)
                    for movie_id in profile.watched_movies
                ]
                + [
                    UserMovieRecord(user_id=user_id, movie_id=movie_id, kind=LIKED)
                    for movie_id in profile.liked_movies
                ]
            )
            await session.commit()

        logger.info("Created profile %s", user_id)
        return profile

    async def update_preferred_genres(
        self, user_id: str, genre_ids: Sequence[int]
    ) -> None:
        async with self._session("update preferred genres") as session:
            await self._update_fields(
                session, user_id, preferred_genres=unique_ids(genre_ids)
            )
            await session.commit()

    async def update_preferred_rating(self, user_id: str, rating: float) -> None:
        if not 0 <= rating <= 10:
            raise ValueError("rating must be between 0 and 10")
        async with self._session("update preferred rating") as session:
            await self._update_fields(session, user_id, preferred_rating=float(rating))
            await session.commit()

    async def update_preferences(
        self,
        user_id: str,
        genre_ids: Sequence[int],
        rating: float | None = None,
    ) -> None:
        """Replace the preferred genres and, when given, the rating together."""

        values: dict[str, Any] = {"preferred_genres": unique_ids(genre_ids)}
        if rating is not None:
            if not 0 <= rating <= 10:
                raise ValueError("rating must be between 0 and 10")
            values["preferred_rating"] = float(rating)
        async with self._session("update preferences") as session:
            await self._update_fields(session, user_id, **values)
            await session.commit()

    async def add_watched_movie(
        self,
        user_id: str,
        movie_id: int,
        rating: float | None = None,
        review: str | None = None,
    ) -> WatchEvent:
        """Add ``movie_id`` to the watched set and record a watch event."""

        if rating is not None and not 0 <= rating <= 10:
            raise ValueError("rating must be between 0 and 10")
        event = WatchEvent(movie_id=movie_id, rating=rating, review=review)
        async with self._session("record watched movie") as session:
            await self._update_fields(session, user_id)
            await self._add_to_set(session, user_id, movie_id, WATCHED)
            await session.merge(
                WatchEventRecord(
                    id=watch_event_id(user_id, movie_id),
                    user_id=user_id,
                    movie_id=movie_id,
                    watched_at=event.watched_at,
                    rating=event.rating,
                    review=event.review,
                )
            )
            await session.commit()
        return event

    async def add_liked_movie(self, user_id: str, movie_id: int) -> None:
        async with self._session("record liked movie") as session:
            await self._update_fields(session, user_id)
            await self._add_to_set(session, user_id, movie_id, LIKED)
            await session.commit()

    async def get_watched_movies_details(self, user_id: str) -> list[WatchEvent]:
        async with self._session("load watch events") as session:
            result = await session.execute(
                select(WatchEventRecord)
                .where(WatchEventRecord.user_id == user_id)
                .order_by(WatchEventRecord.watched_at.desc())
            )
            return [
                WatchEvent(
                    movie_id=record.movie_id,
                    watched_at=record.watched_at,
                    rating=record.rating,
                    review=record.review,
                )
                for record in result.scalars()
            ]

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Profile store failed to %s: %s", action, exc)
            raise StoreError(f"Unable to {action}") from exc

    async def _update_fields(
        self, session: AsyncSession, user_id: str, **values: Any
    ) -> None:
        """Write the given columns and bump ``last_updated`` in one statement."""

        stmt = (
            update(UserRecord)
            .where(UserRecord.id == user_id)
            .values(**values, last_updated=datetime.utcnow())
        )
        result = await session.execute(stmt)
        if result.rowcount == 0:
            raise ProfileNotFoundError(user_id)

    async def _add_to_set(
        self, session: AsyncSession, user_id: str, movie_id: int, kind: str
    ) -> None:
        values = {
            "user_id": user_id,
            "movie_id": movie_id,
            "kind": kind,
            "added_at": datetime.utcnow(),
        }
        conflict_columns = ["user_id", "movie_id", "kind"]
        dialect = session.bind.dialect.name if session.bind is not None else ""
        if dialect == "sqlite":
            stmt = sqlite_insert(UserMovieRecord).values(**values)
            await session.execute(
                stmt.on_conflict_do_nothing(index_elements=conflict_columns)
            )
            return
        if dialect == "postgresql":
            stmt = postgresql_insert(UserMovieRecord).values(**values)
            await session.execute(
                stmt.on_conflict_do_nothing(index_elements=conflict_columns)
            )
            return

        existing = await session.execute(
            select(UserMovieRecord.id).where(
                UserMovieRecord.user_id == user_id,
                UserMovieRecord.movie_id == movie_id,
                UserMovieRecord.kind == kind,
            )
        )
        if existing.scalar_one_or_none() is None:
            session.add(UserMovieRecord(**values))

    @staticmethod
    async def _load_memberships(
        session: AsyncSession, user_id: str
    ) -> dict[str, list[int]]:
        result = await session.execute(
            select(UserMovieRecord.movie_id, UserMovieRecord.kind)
            .where(UserMovieRecord.user_id == user_id)
            .order_by(UserMovieRecord.id)
        )
        memberships: dict[str, list[int]] = {WATCHED: [], LIKED: []}
        for movie_id, kind in result.all():
            memberships.setdefault(kind, []).append(movie_id)
        return memberships

    @staticmethod
    def _record_to_profile(
        record: UserRecord, memberships: Mapping[str, list[int]]
    ) -> UserProfile:
        return UserProfile(
            id=record.id,
            email=record.email or "",
            preferred_genres=list(record.preferred_genres or []),
            watched_movies=list(memberships.get(WATCHED, [])),
            liked_movies=list(memberships.get(LIKED, [])),
            favorite_actors=list(record.favorite_actors or []),
            preferred_rating=record.preferred_rating,
            created_at=record.created_at,
            last_updated=record.last_updated,
        )
