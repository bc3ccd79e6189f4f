"""Personalized recommendation feed assembled from catalog listings."""

from __future__ import annotations

import asyncio
import logging
import random
from itertools import chain
from typing import Awaitable, Callable, Sequence

from ..config import FailureMode, Settings
from ..models import Movie, MoviePage, RecommendationSection, UserProfile
from ..utils import dedupe_by_id
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

SECTION_SIZE = 10

RECOMMENDED_GENRES = 3
RECOMMENDED_PER_GENRE = 5
RECOMMENDED_LIMIT = 15

GENRE_BASED_GENRES = 2
GENRE_BASED_PER_GENRE = 8
GENRE_BASED_LIMIT = 12

TOP_RATED_MIN_PREFERENCE = 7.0
GENRE_PREVIEW_SIZE = 6

ONBOARDING_GENRES = 3
ONBOARDING_POPULAR_SIZE = 20
ONBOARDING_LIMIT = 30

WATCHED_DETAILS_LIMIT = 10
WATCHED_TITLE = "Watched Movies"

FALLBACK_TITLE = "Trending Movies"

SectionBuilder = Callable[[UserProfile], Awaitable[RecommendationSection | None]]


def filter_movies_by_preferences(
    movies: Sequence[Movie], profile: UserProfile
) -> list[Movie]:
    """Keep unwatched movies above the genre floor that share a preferred genre.

    The genre check only applies when the profile has preferred genres. Input
    order is preserved.
    """

    watched = set(profile.watched_movies)
    preferred = set(profile.preferred_genres)
    kept: list[Movie] = []
    for movie in movies:
        if movie.id in watched:
            continue
        if movie.vote_average < profile.preferred_rating:
            continue
        if preferred and preferred.isdisjoint(movie.genre_ids):
            continue
        kept.append(movie)
    return kept


class RecommendationService:
    """Combines trending, popular, top rated and genre listings into feed sections."""

    def __init__(
        self,
        catalog: TMDBClient,
        *,
        rng: random.Random | None = None,
        shuffle: bool = True,
        failure_mode: FailureMode = "isolate",
    ):
        if failure_mode not in ("isolate", "fallback"):
            raise ValueError("failure_mode must be 'isolate' or 'fallback'")
        self._catalog = catalog
        self._rng = rng or random.Random()
        self._shuffle = shuffle
        self._failure_mode = failure_mode

    @classmethod
    def from_settings(
        cls, settings: Settings, catalog: TMDBClient
    ) -> "RecommendationService":
        return cls(
            catalog,
            rng=random.Random(settings.recommendation_seed),
            shuffle=settings.recommendation_shuffle,
            failure_mode=settings.recommendation_failure_mode,
        )

    @property
    def failure_mode(self) -> FailureMode:
        return self._failure_mode

    async def get_personalized_recommendations(
        self, profile: UserProfile
    ) -> list[RecommendationSection]:
        """Return the ordered feed sections for ``profile``.

        Sections are built one after another. In ``fallback`` mode the first
        failing step discards everything built so far and the feed degrades to
        a single trending section. In ``isolate`` mode a failing step only
        loses its own section; the trending fallback is used when steps failed
        and nothing could be built. Never raises.
        """

        builders = self._section_builders()

        if self._failure_mode == "fallback":
            sections: list[RecommendationSection] = []
            try:
                for _, build in builders:
                    section = await build(profile)
                    if section is not None:
                        sections.append(section)
            except Exception:
                logger.exception(
                    "Error getting personalized recommendations for %s", profile.id
                )
                return await self._fallback_sections()
            return sections

        sections = []
        failed: list[str] = []
        for name, build in builders:
            try:
                section = await build(profile)
            except Exception:
                logger.exception(
                    "Section %s failed for profile %s, skipping", name, profile.id
                )
                failed.append(name)
                continue
            if section is not None:
                sections.append(section)

        if failed and not sections:
            logger.warning(
                "No sections built for profile %s (failed: %s), using fallback",
                profile.id,
                ", ".join(failed),
            )
            return await self._fallback_sections()
        return sections

    async def get_recommended_movies(self, profile: UserProfile) -> list[Movie]:
        """Pick well rated, unwatched titles from the first preferred genres."""

        genre_ids = profile.preferred_genres[:RECOMMENDED_GENRES]
        if not genre_ids:
            return []

        watched = set(profile.watched_movies)
        try:
            pages = await self._fetch_genre_pages(genre_ids)
            candidates: list[Movie] = []
            for page in pages:
                matches = [
                    movie
                    for movie in page.results
                    if movie.vote_average >= profile.preferred_rating
                    and movie.id not in watched
                ]
                candidates.extend(matches[:RECOMMENDED_PER_GENRE])

            unique = dedupe_by_id(candidates)
            if self._shuffle:
                self._rng.shuffle(unique)
            return unique[:RECOMMENDED_LIMIT]
        except Exception:
            logger.exception("Error getting recommended movies for %s", profile.id)
            return []

    async def get_genre_based_recommendations(
        self, genre_ids: Sequence[int], min_rating: float
    ) -> list[Movie]:
        selected = list(genre_ids[:GENRE_BASED_GENRES])
        if not selected:
            return []

        try:
            pages = await self._fetch_genre_pages(selected)
            movies: list[Movie] = []
            for page in pages:
                matches = [
                    movie for movie in page.results if movie.vote_average >= min_rating
                ]
                movies.extend(matches[:GENRE_BASED_PER_GENRE])
            return dedupe_by_id(movies)[:GENRE_BASED_LIMIT]
        except Exception:
            logger.exception(
                "Error getting genre-based recommendations for genres %s", selected
            )
            return []

    async def get_similar_movies(
        self, movie_id: int, profile: UserProfile | None = None
    ) -> list[Movie]:
        try:
            page = await self._catalog.get_similar_movies(movie_id)
        except Exception:
            logger.exception("Error getting movies similar to %s", movie_id)
            return []

        movies = page.results
        if profile is not None:
            movies = filter_movies_by_preferences(movies, profile)
        return movies[:SECTION_SIZE]

    async def get_genre_selection_movies(
        self, genre_ids: Sequence[int]
    ) -> dict[int, list[Movie]]:
        """Preview the first few movies of each genre.

        Genres are fetched independently: one failing genre is left out of the
        mapping without affecting the others.
        """

        selected = list(dict.fromkeys(genre_ids))
        results = await asyncio.gather(
            *(self._catalog.get_movies_by_genre(genre_id) for genre_id in selected),
            return_exceptions=True,
        )

        previews: dict[int, list[Movie]] = {}
        for genre_id, result in zip(selected, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Error getting genre selection movies for genre %s: %s",
                    genre_id,
                    result,
                )
                continue
            if isinstance(result, BaseException):
                raise result
            previews[genre_id] = result.results[:GENRE_PREVIEW_SIZE]
        return previews

    async def get_onboarding_movies(self, profile: UserProfile | None) -> list[Movie]:
        """Movies offered for the "what have you watched" onboarding step."""

        if profile is None or not profile.preferred_genres:
            page = await self._catalog.get_popular_movies()
            return page.results[:ONBOARDING_POPULAR_SIZE]

        previews = await self.get_genre_selection_movies(
            profile.preferred_genres[:ONBOARDING_GENRES]
        )
        return list(chain.from_iterable(previews.values()))[:ONBOARDING_LIMIT]

    async def get_watched_section(self, profile: UserProfile) -> RecommendationSection:
        """Resolve the first watched movies into full catalog details.

        Lookups run concurrently and a failed lookup only drops that movie.
        """

        movie_ids = profile.watched_movies[:WATCHED_DETAILS_LIMIT]
        results = await asyncio.gather(
            *(self._catalog.get_movie_details(movie_id) for movie_id in movie_ids),
            return_exceptions=True,
        )

        movies: list[Movie] = []
        for movie_id, result in zip(movie_ids, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Error getting details for watched movie %s: %s", movie_id, result
                )
                continue
            if isinstance(result, BaseException):
                raise result
            movies.append(result)
        return RecommendationSection(title=WATCHED_TITLE, movies=movies, type="watched")

    def _section_builders(self) -> tuple[tuple[str, SectionBuilder], ...]:
        return (
            ("recommended", self._recommended_section),
            ("trending", self._trending_section),
            ("genre-based", self._genre_based_section),
            ("popular", self._popular_section),
            ("top-rated", self._top_rated_section),
        )

    async def _recommended_section(
        self, profile: UserProfile
    ) -> RecommendationSection | None:
        movies = await self.get_recommended_movies(profile)
        if not movies:
            return None
        return RecommendationSection(
            title="Recommended for You", movies=movies, type="recommended"
        )

    async def _trending_section(self, profile: UserProfile) -> RecommendationSection:
        page = await self._catalog.get_trending_movies()
        return RecommendationSection(
            title="Trending Now", movies=page.results[:SECTION_SIZE], type="trending"
        )

    async def _genre_based_section(
        self, profile: UserProfile
    ) -> RecommendationSection | None:
        if not profile.preferred_genres:
            return None
        movies = await self.get_genre_based_recommendations(
            profile.preferred_genres, profile.preferred_rating
        )
        if not movies:
            return None
        return RecommendationSection(
            title="More Like Your Favorites", movies=movies, type="genre-based"
        )

    async def _popular_section(
        self, profile: UserProfile
    ) -> RecommendationSection | None:
        page = await self._catalog.get_popular_movies(1)
        movies = filter_movies_by_preferences(page.results, profile)
        if not movies:
            return None
        return RecommendationSection(
            title="Popular Movies You Might Like",
            movies=movies[:SECTION_SIZE],
            type="recommended",
        )

    async def _top_rated_section(
        self, profile: UserProfile
    ) -> RecommendationSection | None:
        if profile.preferred_rating < TOP_RATED_MIN_PREFERENCE:
            return None
        page = await self._catalog.get_top_rated_movies(1)
        return RecommendationSection(
            title="Top Rated Movies",
            movies=page.results[:SECTION_SIZE],
            type="recommended",
        )

    async def _fallback_sections(self) -> list[RecommendationSection]:
        try:
            page = await self._catalog.get_trending_movies()
        except Exception:
            logger.exception("Error getting fallback recommendations")
            return []
        return [
            RecommendationSection(
                title=FALLBACK_TITLE, movies=page.results[:SECTION_SIZE], type="trending"
            )
        ]

    async def _fetch_genre_pages(self, genre_ids: Sequence[int]) -> list[MoviePage]:
        """Fetch every genre concurrently; results keep the order of ``genre_ids``.

        When one fetch fails the others are cancelled and awaited before the
        error propagates.
        """

        tasks = [
            asyncio.ensure_future(self._catalog.get_movies_by_genre(genre_id))
            for genre_id in genre_ids
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
