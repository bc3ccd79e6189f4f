"""Pydantic models describing catalog, profile and feed payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .utils import build_image_url, unique_ids

SectionType = Literal["recommended", "trending", "genre-based", "similar", "watched"]

DEFAULT_PREFERRED_RATING = 6.0


class Movie(BaseModel):
    """A single movie as returned by the catalog."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    title: str = Field(default="", validation_alias=AliasChoices("title", "name"))
    overview: str = ""
    poster_path: str | None = None
    backdrop_path: str | None = None
    vote_average: float = 0.0
    release_date: str = ""
    genre_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _flatten_detail_genres(cls, data: Any) -> Any:
        """Detail payloads carry ``genres: [{id, name}]`` instead of ids."""

        if not isinstance(data, dict) or data.get("genre_ids") is not None:
            return data
        genres = data.get("genres")
        if not isinstance(genres, list):
            return data
        genre_ids = [
            genre["id"]
            for genre in genres
            if isinstance(genre, dict) and isinstance(genre.get("id"), int)
        ]
        return {**data, "genre_ids": genre_ids}

    @field_validator("title", "overview", "release_date", mode="before")
    @classmethod
    def _blank_text(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("vote_average", mode="before")
    @classmethod
    def _missing_score(cls, value: object) -> object:
        return 0.0 if value is None else value

    @field_validator("genre_ids", mode="before")
    @classmethod
    def _missing_genres(cls, value: object) -> object:
        return [] if value is None else value

    def poster_url(self, base_url: str) -> str | None:
        if not self.poster_path:
            return None
        return build_image_url(self.poster_path, base_url)

    def backdrop_url(self, base_url: str) -> str | None:
        if not self.backdrop_path:
            return None
        return build_image_url(self.backdrop_path, base_url)


class MoviePage(BaseModel):
    """One page of a paginated movie listing."""

    model_config = ConfigDict(extra="ignore")

    results: list[Movie] = Field(default_factory=list)
    page: int = 1
    total_pages: int = 0
    total_results: int = 0

    @field_validator("results", mode="before")
    @classmethod
    def _drop_malformed(cls, value: object) -> object:
        if value is None:
            return []
        if not isinstance(value, list):
            return value
        cleaned: list[object] = []
        for entry in value:
            if isinstance(entry, Movie):
                cleaned.append(entry)
            elif isinstance(entry, dict) and entry.get("id") is not None:
                cleaned.append(entry)
        return cleaned


class Genre(BaseModel):
    id: int
    name: str


class UserProfile(BaseModel):
    """Per-user preferences and viewing state."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str = ""
    preferred_genres: list[int] = Field(default_factory=list, alias="preferredGenres")
    watched_movies: list[int] = Field(default_factory=list, alias="watchedMovies")
    liked_movies: list[int] = Field(default_factory=list, alias="likedMovies")
    favorite_actors: list[str] = Field(default_factory=list, alias="favoriteActors")
    preferred_rating: float = Field(
        default=DEFAULT_PREFERRED_RATING, ge=0, le=10, alias="preferredRating"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")
    last_updated: datetime = Field(default_factory=datetime.utcnow, alias="lastUpdated")

    @field_validator("preferred_genres", "watched_movies", "liked_movies", mode="after")
    @classmethod
    def _unique(cls, value: list[int]) -> list[int]:
        return unique_ids(value)

    @field_validator("preferred_rating", mode="before")
    @classmethod
    def _default_rating(cls, value: object) -> object:
        return DEFAULT_PREFERRED_RATING if value is None else value


class WatchEvent(BaseModel):
    """A single timestamped viewing of a movie."""

    model_config = ConfigDict(populate_by_name=True)

    movie_id: int = Field(alias="movieId")
    watched_at: datetime = Field(default_factory=datetime.utcnow, alias="watchedAt")
    rating: float | None = Field(default=None, ge=0, le=10)
    review: str | None = None


class RecommendationSection(BaseModel):
    """A titled, typed, ordered group of movies shown together in the feed."""

    title: str
    movies: list[Movie] = Field(default_factory=list)
    type: SectionType


# Request payloads accepted by the HTTP API.


class Credentials(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)


class ProfileSetupRequest(BaseModel):
    """Onboarding payload: creates the profile or replaces its genres."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(min_length=1, alias="userId")
    email: str = ""
    preferred_genres: list[int] = Field(min_length=1, alias="preferredGenres")
    preferred_rating: float | None = Field(
        default=None, ge=0, le=10, alias="preferredRating"
    )


class GenresUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    genre_ids: list[int] = Field(alias="genreIds")


class RatingUpdate(BaseModel):
    rating: float = Field(ge=0, le=10)


class WatchedMovieRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    movie_id: int = Field(alias="movieId")
    rating: float | None = Field(default=None, ge=0, le=10)
    review: str | None = None


class LikedMovieRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    movie_id: int = Field(alias="movieId")
