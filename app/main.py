"""Entry point for the FastAPI-powered Daekho service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Literal

import httpx
from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import is_api_configured, settings
from .database import Database
from .exceptions import (
    CatalogConfigurationError,
    CatalogTransportError,
    IdentityError,
    ProfileNotFoundError,
    StoreError,
)
from .models import (
    Credentials,
    GenresUpdate,
    LikedMovieRequest,
    Movie,
    MoviePage,
    ProfileSetupRequest,
    RatingUpdate,
    RecommendationSection,
    WatchedMovieRequest,
)
from .services.profiles import ProfileStore
from .services.recommendations import RecommendationService
from .services.session import IdentityClient, SessionManager
from .services.tmdb import TMDBClient
from .utils import parse_id_list

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ONBOARDING_ROUTE = "/onboarding/genre-selection"

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
        )
    )
    identity_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.identity_api_url),
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    tmdb = TMDBClient(settings, tmdb_http_client)
    if not tmdb.is_configured():
        logger.warning("TMDB_API_KEY is not configured; catalog requests will fail")

    fastapi_app.state.database = database
    fastapi_app.state.tmdb_client = tmdb
    fastapi_app.state.profile_store = ProfileStore(
        database.session_factory, default_rating=settings.default_preferred_rating
    )
    fastapi_app.state.recommendation_service = RecommendationService.from_settings(
        settings, tmdb
    )
    fastapi_app.state.identity_client = IdentityClient(settings, identity_http_client)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Personalized movie discovery backed by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def _service(fastapi_app: FastAPI, name: str, expected: type) -> Any:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{expected.__name__} not initialised")
    return service


def get_tmdb_client(fastapi_app: FastAPI) -> TMDBClient:
    return _service(fastapi_app, "tmdb_client", TMDBClient)


def get_profile_store(fastapi_app: FastAPI) -> ProfileStore:
    return _service(fastapi_app, "profile_store", ProfileStore)


def get_recommendation_service(fastapi_app: FastAPI) -> RecommendationService:
    return _service(fastapi_app, "recommendation_service", RecommendationService)


def get_session_manager(fastapi_app: FastAPI) -> SessionManager:
    """Return a request-scoped session manager.

    The service is shared by every user, so the signed-in user only lives for
    one request; clients keep the ID token and restore it per call.
    """

    identity = _service(fastapi_app, "identity_client", IdentityClient)
    return SessionManager(identity, get_profile_store(fastapi_app))


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(CatalogConfigurationError)
    async def _catalog_not_configured(
        _: Request, exc: CatalogConfigurationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"error": "catalog_not_configured", "detail": str(exc)},
        )

    @fastapi_app.exception_handler(CatalogTransportError)
    async def _catalog_unavailable(
        _: Request, exc: CatalogTransportError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={
                "error": "catalog_unavailable",
                "detail": str(exc),
                "upstreamStatus": exc.status_code,
            },
        )

    @fastapi_app.exception_handler(ProfileNotFoundError)
    async def _profile_missing(_: Request, exc: ProfileNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={
                "error": "profile_missing",
                "detail": str(exc),
                "redirect": ONBOARDING_ROUTE,
            },
        )

    @fastapi_app.exception_handler(StoreError)
    async def _store_unavailable(_: Request, exc: StoreError) -> JSONResponse:
        return JSONResponse(
            status_code=503, content={"error": "store_unavailable", "detail": str(exc)}
        )

    @fastapi_app.exception_handler(IdentityError)
    async def _identity_failed(_: Request, exc: IdentityError) -> JSONResponse:
        if exc.code == "IDENTITY_NOT_CONFIGURED":
            status_code = 503
        elif exc.code == "NETWORK_ERROR":
            status_code = 502
        elif exc.code in {"EMAIL_EXISTS", "WEAK_PASSWORD", "INVALID_EMAIL"}:
            status_code = 400
        else:
            status_code = 401
        return JSONResponse(
            status_code=status_code, content={"error": exc.code, "detail": str(exc)}
        )

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, Any]:
        return {"status": "ok", "catalogConfigured": is_api_configured(settings)}

    # Authentication

    @fastapi_app.post("/api/auth/signup", status_code=201)
    async def sign_up(credentials: Credentials) -> dict[str, Any]:
        session = get_session_manager(fastapi_app)
        user = await session.sign_up(credentials.email, credentials.password)
        return user.to_payload()

    @fastapi_app.post("/api/auth/login")
    async def sign_in(credentials: Credentials) -> dict[str, Any]:
        session = get_session_manager(fastapi_app)
        user = await session.sign_in(credentials.email, credentials.password)
        return user.to_payload()

    @fastapi_app.get("/api/auth/session")
    async def current_session(
        authorization: str | None = Header(default=None),
    ) -> dict[str, Any]:
        token = _bearer_token(authorization)
        if token is None:
            raise HTTPException(status_code=401, detail="Missing bearer token")
        session = get_session_manager(fastapi_app)
        user = await session.restore(token)
        profile = await get_profile_store(fastapi_app).get_user_profile(user.uid)
        payload = user.to_payload()
        payload["hasProfile"] = profile is not None
        payload["needsOnboarding"] = profile is None or not profile.preferred_genres
        return payload

    # Profiles

    @fastapi_app.post("/api/users")
    async def setup_profile(request_body: ProfileSetupRequest) -> JSONResponse:
        store = get_profile_store(fastapi_app)
        existing = await store.get_user_profile(request_body.user_id)
        if existing is None:
            defaults: dict[str, Any] = {
                "preferred_genres": request_body.preferred_genres
            }
            if request_body.preferred_rating is not None:
                defaults["preferred_rating"] = request_body.preferred_rating
            profile = await store.create_user_profile(
                request_body.user_id, request_body.email, defaults
            )
            return JSONResponse(
                status_code=201, content=profile.model_dump(mode="json", by_alias=True)
            )

        await store.update_preferences(
            request_body.user_id,
            request_body.preferred_genres,
            request_body.preferred_rating,
        )
        profile = await store.get_user_profile(request_body.user_id)
        if profile is None:
            raise ProfileNotFoundError(request_body.user_id)
        return JSONResponse(content=profile.model_dump(mode="json", by_alias=True))

    @fastapi_app.get("/api/users/{user_id}")
    async def get_profile(user_id: str) -> dict[str, Any]:
        profile = await get_profile_store(fastapi_app).get_user_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return profile.model_dump(mode="json", by_alias=True)

    @fastapi_app.put("/api/users/{user_id}/genres", status_code=204)
    async def update_genres(user_id: str, request_body: GenresUpdate) -> Response:
        await get_profile_store(fastapi_app).update_preferred_genres(
            user_id, request_body.genre_ids
        )
        return Response(status_code=204)

    @fastapi_app.put("/api/users/{user_id}/rating", status_code=204)
    async def update_rating(user_id: str, request_body: RatingUpdate) -> Response:
        await get_profile_store(fastapi_app).update_preferred_rating(
            user_id, request_body.rating
        )
        return Response(status_code=204)

    @fastapi_app.post("/api/users/{user_id}/watched", status_code=201)
    async def add_watched(
        user_id: str, request_body: WatchedMovieRequest
    ) -> dict[str, Any]:
        event = await get_profile_store(fastapi_app).add_watched_movie(
            user_id,
            request_body.movie_id,
            rating=request_body.rating,
            review=request_body.review,
        )
        return event.model_dump(mode="json", by_alias=True)

    @fastapi_app.get("/api/users/{user_id}/watched")
    async def list_watched(user_id: str) -> dict[str, Any]:
        store = get_profile_store(fastapi_app)
        profile = await store.get_user_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        events = await store.get_watched_movies_details(user_id)
        section = await get_recommendation_service(fastapi_app).get_watched_section(
            profile
        )
        return {
            "userId": user_id,
            "watched": [event.model_dump(mode="json", by_alias=True) for event in events],
            "section": _section_payload(section),
        }

    @fastapi_app.post("/api/users/{user_id}/liked", status_code=204)
    async def add_liked(user_id: str, request_body: LikedMovieRequest) -> Response:
        await get_profile_store(fastapi_app).add_liked_movie(
            user_id, request_body.movie_id
        )
        return Response(status_code=204)

    # Recommendations

    @fastapi_app.get("/api/users/{user_id}/feed")
    async def personalized_feed(user_id: str) -> JSONResponse:
        profile = await get_profile_store(fastapi_app).get_user_profile(user_id)
        if profile is None:
            return JSONResponse(
                status_code=404,
                content={"error": "profile_missing", "redirect": ONBOARDING_ROUTE},
            )
        if not profile.preferred_genres:
            return JSONResponse(
                status_code=409,
                content={"error": "preferences_required", "redirect": ONBOARDING_ROUTE},
            )

        recommender = get_recommendation_service(fastapi_app)
        sections = await recommender.get_personalized_recommendations(profile)
        return JSONResponse(
            content={
                "userId": user_id,
                "imageBaseUrl": settings.tmdb_image_base_url,
                "sections": [_section_payload(section) for section in sections],
            }
        )

    @fastapi_app.get("/api/users/{user_id}/onboarding-movies")
    async def onboarding_movies(user_id: str) -> dict[str, Any]:
        profile = await get_profile_store(fastapi_app).get_user_profile(user_id)
        recommender = get_recommendation_service(fastapi_app)
        movies = await recommender.get_onboarding_movies(profile)
        return {"movies": [_movie_payload(movie) for movie in movies]}

    # Catalog pass-through

    @fastapi_app.get("/api/movies/popular")
    async def popular_movies(page: int = Query(default=1, ge=1)) -> dict[str, Any]:
        result = await get_tmdb_client(fastapi_app).get_popular_movies(page)
        return _page_payload(result)

    @fastapi_app.get("/api/movies/top-rated")
    async def top_rated_movies(page: int = Query(default=1, ge=1)) -> dict[str, Any]:
        result = await get_tmdb_client(fastapi_app).get_top_rated_movies(page)
        return _page_payload(result)

    @fastapi_app.get("/api/movies/now-playing")
    async def now_playing_movies(page: int = Query(default=1, ge=1)) -> dict[str, Any]:
        result = await get_tmdb_client(fastapi_app).get_now_playing_movies(page)
        return _page_payload(result)

    @fastapi_app.get("/api/movies/trending")
    async def trending_movies(
        window: Literal["day", "week"] = Query(default="week"),
    ) -> dict[str, Any]:
        result = await get_tmdb_client(fastapi_app).get_trending_movies(window)
        return _page_payload(result)

    @fastapi_app.get("/api/movies/search")
    async def search_movies(
        query: str = Query(default=""),
        page: int = Query(default=1, ge=1),
    ) -> dict[str, Any]:
        if not query.strip():
            return {"results": [], "page": 1, "total_pages": 0, "total_results": 0}
        result = await get_tmdb_client(fastapi_app).search_movies(query.strip(), page)
        return _page_payload(result)

    @fastapi_app.get("/api/movies/{movie_id}")
    async def movie_details(movie_id: int) -> dict[str, Any]:
        movie = await get_tmdb_client(fastapi_app).get_movie_details(movie_id)
        return _movie_payload(movie)

    @fastapi_app.get("/api/movies/{movie_id}/similar")
    async def similar_movies(
        movie_id: int,
        user_id: str | None = Query(default=None, alias="userId"),
    ) -> dict[str, Any]:
        profile = None
        if user_id:
            profile = await get_profile_store(fastapi_app).get_user_profile(user_id)
        recommender = get_recommendation_service(fastapi_app)
        movies = await recommender.get_similar_movies(movie_id, profile)
        return {"movieId": movie_id, "movies": [_movie_payload(movie) for movie in movies]}

    @fastapi_app.get("/api/genres")
    async def genres() -> dict[str, Any]:
        result = await get_tmdb_client(fastapi_app).get_genres()
        return {"genres": [genre.model_dump(mode="json") for genre in result]}

    @fastapi_app.get("/api/genres/preview")
    async def genre_preview(genres: str = Query(default="")) -> dict[str, Any]:
        try:
            genre_ids = parse_id_list(genres)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not genre_ids:
            raise HTTPException(status_code=400, detail="At least one genre id is required")
        recommender = get_recommendation_service(fastapi_app)
        previews = await recommender.get_genre_selection_movies(genre_ids)
        return {
            "genres": {
                str(genre_id): [_movie_payload(movie) for movie in movies]
                for genre_id, movies in previews.items()
            }
        }


def _movie_payload(movie: Movie) -> dict[str, Any]:
    payload = movie.model_dump(mode="json")
    payload["poster_url"] = movie.poster_url(settings.tmdb_image_base_url)
    payload["backdrop_url"] = movie.backdrop_url(settings.tmdb_image_base_url)
    return payload


def _page_payload(page: MoviePage) -> dict[str, Any]:
    payload = page.model_dump(mode="json")
    payload["results"] = [_movie_payload(movie) for movie in page.results]
    return payload


def _section_payload(section: RecommendationSection) -> dict[str, Any]:
    payload = section.model_dump(mode="json")
    payload["movies"] = [_movie_payload(movie) for movie in section.movies]
    return payload


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
