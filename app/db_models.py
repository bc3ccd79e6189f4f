"""SQLAlchemy ORM models backing the profile store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base

WATCHED = "watched"
LIKED = "liked"


class UserRecord(Base):
    """One user profile document."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), default="")
    preferred_genres: Mapped[list[int]] = mapped_column(JSON, default=list)
    favorite_actors: Mapped[list[str]] = mapped_column(JSON, default=list)
    preferred_rating: Mapped[float] = mapped_column(Float, default=6.0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class UserMovieRecord(Base):
    """Membership of a movie in one of a user's watched or liked sets."""

    __tablename__ = "user_movies"
    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", "kind", name="uq_user_movie_kind"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    movie_id: Mapped[int] = mapped_column(Integer)
    kind: Mapped[str] = mapped_column(String(16))
    added_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class WatchEventRecord(Base):
    """Detailed watch data keyed by ``"{user_id}_{movie_id}"``."""

    __tablename__ = "watched_movies"

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    movie_id: Mapped[int] = mapped_column(Integer)
    watched_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    review: Mapped[str | None] = mapped_column(Text, nullable=True)
