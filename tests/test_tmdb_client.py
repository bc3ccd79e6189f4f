"""Tests for the TMDB catalog client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.config import Settings
from app.exceptions import CatalogConfigurationError, CatalogTransportError
from app.services.tmdb import TMDBClient


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"_env_file": None, "TMDB_API_KEY": "test-key"}
    base.update(overrides)
    return Settings(**base)  # type: ignore[arg-type]


def movie_payload(movie_id: int, **extra: Any) -> dict[str, Any]:
    payload = {
        "id": movie_id,
        "title": f"Movie {movie_id}",
        "overview": "",
        "poster_path": f"/poster-{movie_id}.jpg",
        "backdrop_path": None,
        "vote_average": 7.0,
        "release_date": "2024-01-01",
        "genre_ids": [28],
    }
    payload.update(extra)
    return payload


def page_payload(*movie_ids: int, page: int = 1) -> dict[str, Any]:
    return {
        "page": page,
        "results": [movie_payload(movie_id) for movie_id in movie_ids],
        "total_pages": 3,
        "total_results": 60,
    }


@pytest.mark.anyio("asyncio")
async def test_popular_movies_sends_key_and_page() -> None:
    """Listings should authenticate via the api_key query parameter."""

    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=page_payload(1, 2, page=2))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        page = await client.get_popular_movies(2)

    assert [movie.id for movie in page.results] == [1, 2]
    assert page.page == 2
    assert page.total_pages == 3
    assert requests[0].url.path == "/3/movie/popular"
    assert requests[0].url.params["api_key"] == "test-key"
    assert requests[0].url.params["page"] == "2"


@pytest.mark.anyio("asyncio")
async def test_movies_by_genre_uses_discover_filter() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=page_payload(10))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(TMDB_LANGUAGE="en-US"), http_client)
        await client.get_movies_by_genre(28)

    params = requests[0].url.params
    assert requests[0].url.path == "/3/discover/movie"
    assert params["with_genres"] == "28"
    assert params["sort_by"] == "popularity.desc"
    assert params["language"] == "en-US"


@pytest.mark.anyio("asyncio")
async def test_trending_and_similar_paths() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json=page_payload(1))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        await client.get_trending_movies()
        await client.get_similar_movies(603)
        await client.get_top_rated_movies()
        await client.get_now_playing_movies()

    assert paths == [
        "/3/trending/movie/week",
        "/3/movie/603/similar",
        "/3/movie/top_rated",
        "/3/movie/now_playing",
    ]


@pytest.mark.anyio("asyncio")
async def test_missing_key_fails_before_any_request() -> None:
    """An unconfigured client must raise without touching the network."""

    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=page_payload(1))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(TMDB_API_KEY="YOUR_TMDB_API_KEY"), http_client)
        assert client.is_configured() is False
        with pytest.raises(CatalogConfigurationError):
            await client.get_popular_movies()
        with pytest.raises(CatalogConfigurationError):
            await client.get_genres()

    assert requests == []


@pytest.mark.anyio("asyncio")
async def test_error_status_raises_transport_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"status_message": "Invalid API key"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(CatalogTransportError) as excinfo:
            await client.get_top_rated_movies()

    assert excinfo.value.status_code == 401


@pytest.mark.anyio("asyncio")
async def test_network_failure_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(CatalogTransportError) as excinfo:
            await client.get_trending_movies()

    assert excinfo.value.status_code is None


@pytest.mark.anyio("asyncio")
async def test_movie_details_and_genres() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/genre/movie/list"):
            return httpx.Response(
                200,
                json={"genres": [{"id": 28, "name": "Action"}, {"id": 12, "name": "Adventure"}]},
            )
        return httpx.Response(
            200,
            json={
                "id": 603,
                "title": "The Matrix",
                "vote_average": 8.2,
                "genres": [{"id": 28, "name": "Action"}],
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        movie = await client.get_movie_details(603)
        genres = await client.get_genres()

    assert movie.title == "The Matrix"
    assert movie.genre_ids == [28]
    assert [(genre.id, genre.name) for genre in genres] == [(28, "Action"), (12, "Adventure")]


@pytest.mark.anyio("asyncio")
async def test_search_passes_query() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=page_payload(7))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        page = await client.search_movies("star wars", page=3)

    assert [movie.id for movie in page.results] == [7]
    assert requests[0].url.params["query"] == "star wars"
    assert requests[0].url.params["page"] == "3"


