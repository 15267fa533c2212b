from __future__ import annotations

import asyncio
from collections import Counter
from pathlib import Path

import httpx

from letterboxd_viewer.core.enrichment import (
    FALLBACK_POSTER_COUNT,
    EnrichmentNotifier,
    EnrichmentResult,
    MetadataEnrichmentClient,
    fallback_poster_index,
    has_usable_api_key,
)
from letterboxd_viewer.core.settings import Settings


def _tmdb_handler(calls: list[httpx.Request], *, movie=None, tv=None, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if status != 200:
            return httpx.Response(status, json={"status_message": "nope"})
        results = movie if request.url.path.endswith("/search/movie") else tv
        return httpx.Response(200, json={"results": results or []})

    return handler


def _resolve_all(handler, lookups, **kwargs):
    async def runner():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = MetadataEnrichmentClient(api_key="k", client=http_client, **kwargs)
            results = [await client.resolve(title, year) for title, year in lookups]
            return client, results

    return asyncio.run(runner())


HEAT = {"id": 949, "poster_path": "/heat.jpg", "overview": "A group of robbers..."}


def test_movie_search_result() -> None:
    calls: list[httpx.Request] = []
    client, [result] = _resolve_all(_tmdb_handler(calls, movie=[HEAT]), [("Heat", "1995")])

    assert result == EnrichmentResult(
        status="ok",
        tmdb_id=949,
        poster_path="/heat.jpg",
        media_type="movie",
        overview="A group of robbers...",
    )
    assert len(calls) == 1
    assert calls[0].url.params["query"] == "Heat"
    assert calls[0].url.params["year"] == "1995"
    assert client.poster_url(result, "Heat", "1995") == "https://image.tmdb.org/t/p/w500/heat.jpg"
    assert client.tmdb_url(result, "Heat", "1995") == "https://www.themoviedb.org/movie/949"
    assert client.online is True


def test_falls_back_to_tv_search() -> None:
    calls: list[httpx.Request] = []
    show = {"id": 1396, "poster_path": None, "overview": "Chemistry."}
    client, [result] = _resolve_all(_tmdb_handler(calls, tv=[show]), [("Breaking Bad", "2008")])

    assert result.status == "ok"
    assert result.media_type == "tv"
    assert [c.url.path for c in calls] == ["/3/search/movie", "/3/search/tv"]
    assert calls[1].url.params["first_air_date_year"] == "2008"
    # No poster path: a deterministic fallback poster instead.
    assert client.poster_url(result, "Breaking Bad", "2008").startswith("img/fallback/poster-")


def test_no_results_is_cached_and_never_refetched() -> None:
    calls: list[httpx.Request] = []
    client, results = _resolve_all(
        _tmdb_handler(calls), [("Nonexistent", "1901"), ("Nonexistent", "1901")]
    )

    assert [r.status for r in results] == ["no_results", "no_results"]
    assert len(calls) == 2  # movie + tv, once
    assert results[0] is results[1]
    assert client.tmdb_url(results[0], "Nonexistent", "1901").endswith("search?query=Nonexistent+1901")


def test_concurrent_resolves_share_one_lookup() -> None:
    calls: list[httpx.Request] = []

    async def runner():
        transport = httpx.MockTransport(_tmdb_handler(calls, movie=[HEAT]))
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = MetadataEnrichmentClient(api_key="k", client=http_client)
            results = await asyncio.gather(*(client.resolve("Heat", 1995) for _ in range(5)))
            return client, results

    client, results = asyncio.run(runner())
    assert len(calls) == 1
    assert all(r is results[0] for r in results)
    # Locks only live while a lookup is in flight.
    assert client._locks == {}


def test_missing_api_key_skips_network_and_notifies() -> None:
    notices: list[str] = []
    notifier = EnrichmentNotifier()
    notifier.subscribe(notices.append)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async def runner():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = MetadataEnrichmentClient(
                api_key="your_actual_api_key_here", client=http_client, notifier=notifier
            )
            return client, await client.resolve("Heat", "1995")

    client, result = asyncio.run(runner())
    assert result.status == "no_api_key"
    assert notices == ["no_api_key"]
    assert len(client.cache) == 0
    assert client.poster_url(result, "Heat", "1995") == client.fallback_poster_url("Heat", "1995")


def test_invalid_key_and_connectivity_failures_are_cached() -> None:
    calls: list[httpx.Request] = []
    client, results = _resolve_all(_tmdb_handler(calls, status=401), [("Heat", "1995")] * 2)
    assert [r.status for r in results] == ["invalid_api_key", "invalid_api_key"]
    assert len(calls) == 1
    assert results[0] is results[1]
    assert client.online is False

    calls = []
    client, results = _resolve_all(_tmdb_handler(calls, status=503), [("Heat", "1995")] * 2)
    assert [r.status for r in results] == ["connectivity", "connectivity"]
    assert len(calls) == 1
    assert len(client.cache) == 1

    attempts: list[httpx.Request] = []

    def offline(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectTimeout("timed out", request=request)

    client, results = _resolve_all(offline, [("Heat", "1995")] * 3)
    assert all(r.status == "connectivity" for r in results)
    assert len(attempts) == 1


def test_clear_cache_allows_a_retry() -> None:
    calls: list[httpx.Request] = []

    async def runner():
        transport = httpx.MockTransport(_tmdb_handler(calls, status=401))
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = MetadataEnrichmentClient(api_key="k", client=http_client)
            await client.resolve("Heat", "1995")
            await client.resolve("Heat", "1995")
            client.clear_cache()
            await client.resolve("Heat", "1995")
            return client

    client = asyncio.run(runner())
    assert len(calls) == 2
    assert client._locks == {}


def test_notifier_rate_limits_and_respects_dismissal() -> None:
    now = [0.0]
    dismissed = [False]
    notifier = EnrichmentNotifier(
        interval_s=1800, is_dismissed=lambda: dismissed[0], clock=lambda: now[0]
    )
    sent: list[str] = []
    notifier.subscribe(sent.append)

    assert notifier.notify("connectivity") is True
    now[0] = 100.0
    assert notifier.notify("connectivity") is False
    now[0] = 1800.0
    assert notifier.notify("invalid_api_key") is True

    dismissed[0] = True
    now[0] = 10_000.0
    assert notifier.notify("connectivity") is False
    assert sent == ["connectivity", "invalid_api_key"]
    assert notifier.last_reason == "connectivity"

    once = EnrichmentNotifier(once_per_session=True, clock=lambda: now[0])
    assert once.notify("no_api_key") is True
    now[0] = 1e9
    assert once.notify("no_api_key") is False


def test_fallback_poster_is_stable_and_spread() -> None:
    assert fallback_poster_index("Heat", "1995") == fallback_poster_index("Heat", "1995")

    indexes = Counter(fallback_poster_index(f"Film {i}", 2000) for i in range(400))
    assert set(indexes) == set(range(1, FALLBACK_POSTER_COUNT + 1))
    assert min(indexes.values()) > 20


def test_settings_configure_client(tmp_path: Path) -> None:
    settings = Settings(
        export_dir=tmp_path,
        data_dir=tmp_path,
        tmdb_api_key="abc",
        fallback_poster_template="/static/poster-{index}.png",
    )
    client = MetadataEnrichmentClient(settings)
    assert client.has_api_key
    assert client.fallback_poster_url("Heat", "1995") == (
        f"/static/poster-{fallback_poster_index('Heat', '1995')}.png"
    )
    assert not has_usable_api_key("  ")
