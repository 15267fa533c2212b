"""Poster / overview enrichment from The Movie Database (TMDB)."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import quote_plus

import httpx

from letterboxd_viewer.core.settings import DEFAULT_FALLBACK_POSTER, Settings

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"
TMDB_SITE = "https://www.themoviedb.org"

FALLBACK_POSTER_COUNT = 8

PLACEHOLDER_API_KEYS = frozenset(
    {"your_actual_api_key_here", "YOUR_TMDB_API_KEY", "your_tmdb_api_key", "changeme"}
)

EnrichmentStatus = Literal["ok", "no_results", "no_api_key", "invalid_api_key", "connectivity"]
OfflineReason = Literal["no_api_key", "invalid_api_key", "connectivity"]

# Outcomes that mean TMDB answered.
_ONLINE: frozenset[str] = frozenset({"ok", "no_results"})


@dataclass(frozen=True)
class EnrichmentResult:
    status: EnrichmentStatus
    tmdb_id: int | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    media_type: Literal["movie", "tv"] | None = None
    overview: str = ""

    @property
    def has_poster(self) -> bool:
        return bool(self.poster_path)


def has_usable_api_key(api_key: str | None) -> bool:
    key = (api_key or "").strip()
    return bool(key) and key not in PLACEHOLDER_API_KEYS


def cache_key(title: str, year: str | int | None) -> str:
    return f"{title}_{'' if year is None else year}"


class EnrichmentNotifier:
    """Rate-limited "posters are offline" notification.

    Listeners are called with the reason. In `once_per_session` mode a
    notification fires at most once for the notifier's lifetime; otherwise at
    most once per `interval_s`. Nothing fires while `is_dismissed()` is true
    (the user's "don't show again" preference).
    """

    def __init__(
        self,
        *,
        interval_s: float = 30 * 60,
        once_per_session: bool = False,
        is_dismissed: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval_s = interval_s
        self._once_per_session = once_per_session
        self._is_dismissed = is_dismissed or (lambda: False)
        self._clock = clock
        self._listeners: list[Callable[[OfflineReason], None]] = []
        self._last_sent: float | None = None
        self.last_reason: OfflineReason | None = None

    def subscribe(self, listener: Callable[[OfflineReason], None]) -> None:
        self._listeners.append(listener)

    def notify(self, reason: OfflineReason) -> bool:
        self.last_reason = reason
        if self._is_dismissed():
            return False

        now = self._clock()
        if self._last_sent is not None:
            if self._once_per_session or now - self._last_sent < self._interval_s:
                return False

        self._last_sent = now
        logger.warning("Poster enrichment unavailable (%s)", reason)
        for listener in self._listeners:
            listener(reason)
        return True


@dataclass
class EnrichmentCache:
    """Write-once result cache keyed by title/year."""

    _results: dict[str, EnrichmentResult] = field(default_factory=dict)

    def get(self, key: str) -> EnrichmentResult | None:
        return self._results.get(key)

    def put(self, key: str, result: EnrichmentResult) -> EnrichmentResult:
        return self._results.setdefault(key, result)

    def __contains__(self, key: str) -> bool:
        return key in self._results

    def __len__(self) -> int:
        return len(self._results)

    def clear(self) -> None:
        self._results.clear()


def fallback_poster_index(title: str, year: str | int | None) -> int:
    """Stable 1-based index into the fallback poster set."""

    digest = hashlib.sha256(cache_key(title, year).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % FALLBACK_POSTER_COUNT + 1


class MetadataEnrichmentClient:
    """Resolve (title, year) to TMDB poster metadata.

    Movie search first, TV search as a fallback. Every outcome that reached
    the network, failures included, is cached for the lifetime of the client;
    `clear_cache()` is the only way to retry a key.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        cache: EnrichmentCache | None = None,
        notifier: EnrichmentNotifier | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else (settings.tmdb_api_key if settings else None)
        self._base_url = (settings.tmdb_base_url if settings else TMDB_BASE_URL).rstrip("/")
        self._timeout_s = settings.http_timeout_s if settings else 20.0
        self._poster_template = (
            settings.fallback_poster_template if settings else DEFAULT_FALLBACK_POSTER
        )
        self._client = client
        self.cache = cache or EnrichmentCache()
        self.notifier = notifier or EnrichmentNotifier(
            interval_s=settings.notify_interval_s if settings else 30 * 60
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._poster_indexes: dict[str, int] = {}
        self.online = True

    @property
    def has_api_key(self) -> bool:
        return has_usable_api_key(self._api_key)

    async def resolve(self, title: str, year: str | int | None) -> EnrichmentResult:
        key = cache_key(title, year)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if not self.has_api_key:
            self.notifier.notify("no_api_key")
            return EnrichmentResult(status="no_api_key")

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

            result = self.cache.put(key, await self._lookup(title, year))
        self._locks.pop(key, None)

        self.online = result.status in _ONLINE
        if not self.online:
            self.notifier.notify(result.status)  # type: ignore[arg-type]
        return result

    async def _lookup(self, title: str, year: str | int | None) -> EnrichmentResult:
        client = self._client
        close_client = False
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout_s)
            close_client = True

        try:
            movie = await self._search(client, "movie", title, year)
            if isinstance(movie, EnrichmentResult):
                return movie
            if movie:
                return self._to_result(movie, "movie")

            tv = await self._search(client, "tv", title, year)
            if isinstance(tv, EnrichmentResult):
                return tv
            if tv:
                return self._to_result(tv, "tv")

            logger.debug("No TMDB match for %s (%s)", title, year)
            return EnrichmentResult(status="no_results")
        finally:
            if close_client:
                await client.aclose()

    async def _search(
        self,
        client: httpx.AsyncClient,
        media_type: Literal["movie", "tv"],
        title: str,
        year: str | int | None,
    ) -> dict[str, Any] | None | EnrichmentResult:
        params: dict[str, Any] = {"api_key": self._api_key, "query": title}
        if year:
            params["year" if media_type == "movie" else "first_air_date_year"] = year

        try:
            resp = await client.get(f"{self._base_url}/search/{media_type}", params=params)
        except httpx.HTTPError as e:
            logger.info("TMDB %s search for %s failed: %s", media_type, title, e)
            return EnrichmentResult(status="connectivity")

        if resp.status_code == 401:
            return EnrichmentResult(status="invalid_api_key")
        if resp.status_code >= 300:
            logger.info("TMDB %s search for %s returned %s", media_type, title, resp.status_code)
            return EnrichmentResult(status="connectivity")

        try:
            results = resp.json().get("results") or []
        except (ValueError, AttributeError):
            return EnrichmentResult(status="connectivity")

        return results[0] if results else None

    @staticmethod
    def _to_result(item: dict[str, Any], media_type: Literal["movie", "tv"]) -> EnrichmentResult:
        tmdb_id = item.get("id")
        return EnrichmentResult(
            status="ok",
            tmdb_id=int(tmdb_id) if tmdb_id is not None else None,
            poster_path=item.get("poster_path"),
            backdrop_path=item.get("backdrop_path"),
            media_type=media_type,
            overview=item.get("overview") or "",
        )

    def fallback_poster_index(self, title: str, year: str | int | None) -> int:
        key = cache_key(title, year)
        index = self._poster_indexes.get(key)
        if index is None:
            index = self._poster_indexes[key] = fallback_poster_index(title, year)
        return index

    def fallback_poster_url(self, title: str, year: str | int | None) -> str:
        return self._poster_template.format(index=self.fallback_poster_index(title, year))

    def poster_url(
        self,
        result: EnrichmentResult,
        title: str,
        year: str | int | None,
        *,
        size: str = "w500",
    ) -> str:
        if result.poster_path:
            if result.poster_path.startswith("http"):
                return result.poster_path
            return f"{TMDB_IMAGE_BASE}/{size}{result.poster_path}"
        return self.fallback_poster_url(title, year)

    @staticmethod
    def tmdb_url(result: EnrichmentResult, title: str, year: str | int | None) -> str:
        if result.tmdb_id:
            return f"{TMDB_SITE}/{result.media_type or 'movie'}/{result.tmdb_id}"
        query = f"{title} {year or ''}".strip()
        return f"{TMDB_SITE}/search?query={quote_plus(query)}"

    def clear_cache(self) -> None:
        self.cache.clear()
        self._poster_indexes.clear()
        self._locks.clear()
