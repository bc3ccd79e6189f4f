"""Client for The Movie Database (TMDB) listing and lookup endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Settings, is_api_configured
from ..exceptions import CatalogConfigurationError, CatalogTransportError
from ..models import Genre, Movie, MoviePage

logger = logging.getLogger(__name__)

TRENDING_WINDOWS = frozenset({"day", "week"})


class TMDBClient:
    """Thin wrapper around the TMDB v3 HTTP API.

    Every call checks the configured credential before touching the network
    and raises :class:`CatalogConfigurationError` when it is missing. HTTP
    failures are raised as :class:`CatalogTransportError`; nothing is retried.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def is_configured(self) -> bool:
        return is_api_configured(self._settings)

    async def get_popular_movies(self, page: int = 1) -> MoviePage:
        return await self._get_page("/movie/popular", label="popular movies", page=page)

    async def get_top_rated_movies(self, page: int = 1) -> MoviePage:
        return await self._get_page(
            "/movie/top_rated", label="top rated movies", page=page
        )

    async def get_now_playing_movies(self, page: int = 1) -> MoviePage:
        return await self._get_page(
            "/movie/now_playing", label="now playing movies", page=page
        )

    async def get_trending_movies(self, time_window: str = "week") -> MoviePage:
        if time_window not in TRENDING_WINDOWS:
            raise ValueError("time_window must be 'day' or 'week'")
        return await self._get_page(
            f"/trending/movie/{time_window}", label="trending movies"
        )

    async def get_movies_by_genre(self, genre_id: int, page: int = 1) -> MoviePage:
        """Return the most popular movies tagged with ``genre_id``."""

        return await self._get_page(
            "/discover/movie",
            label=f"genre {genre_id} movies",
            page=page,
            params={"with_genres": genre_id, "sort_by": "popularity.desc"},
        )

    async def get_similar_movies(self, movie_id: int, page: int = 1) -> MoviePage:
        return await self._get_page(
            f"/movie/{movie_id}/similar",
            label=f"movies similar to {movie_id}",
            page=page,
        )

    async def search_movies(self, query: str, page: int = 1) -> MoviePage:
        return await self._get_page(
            "/search/movie",
            label=f"search {query!r}",
            page=page,
            params={"query": query, "include_adult": "false"},
        )

    async def get_movie_details(self, movie_id: int) -> Movie:
        payload = await self._request(f"/movie/{movie_id}", label=f"movie {movie_id}")
        try:
            return Movie.model_validate(payload)
        except ValidationError as exc:
            raise CatalogTransportError(
                f"Unexpected TMDB response structure for movie {movie_id}"
            ) from exc

    async def get_genres(self) -> list[Genre]:
        payload = await self._request("/genre/movie/list", label="genres")
        genres = payload.get("genres") if isinstance(payload, dict) else None
        if not isinstance(genres, list):
            raise CatalogTransportError("Unexpected TMDB response structure for genres")
        return [
            Genre.model_validate(entry)
            for entry in genres
            if isinstance(entry, dict) and "id" in entry and "name" in entry
        ]

    async def _get_page(
        self,
        path: str,
        *,
        label: str,
        page: int | None = None,
        params: dict[str, Any] | None = None,
    ) -> MoviePage:
        query = dict(params or {})
        if page is not None:
            if page < 1:
                raise ValueError("page must be a positive integer")
            query["page"] = page
        payload = await self._request(path, label=label, params=query)
        try:
            return MoviePage.model_validate(payload)
        except ValidationError as exc:
            raise CatalogTransportError(
                f"Unexpected TMDB response structure for {label}"
            ) from exc

    async def _request(
        self,
        path: str,
        *,
        label: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        if not self.is_configured():
            raise CatalogConfigurationError(
                "TMDB API key not configured. Set TMDB_API_KEY in the environment or .env file."
            )

        query: dict[str, Any] = {"api_key": self._settings.tmdb_api_key}
        if self._settings.tmdb_language:
            query["language"] = self._settings.tmdb_language
        if params:
            query.update(params)

        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request for %s failed: %s", label, exc)
            raise CatalogTransportError(f"Unable to reach TMDB for {label}") from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB request for %s failed with status %s: %s",
                label,
                response.status_code,
                response.text,
            )
            raise CatalogTransportError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON TMDB response for %s", label)
            raise CatalogTransportError(
                f"Unexpected non-JSON TMDB response for {label}",
                status_code=response.status_code,
            ) from exc
