from __future__ import annotations

import base64
import binascii
import logging
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Literal
from urllib.parse import quote

import httpx

from letterboxd_viewer.core.records import FilmRecord, format_rating, parse_iso_date
from letterboxd_viewer.core.settings import DEFAULT_FEED_RELAY, Settings
from letterboxd_viewer.core.title_extraction import FilmInfo, TitleExtractor, is_usable_title

logger = logging.getLogger(__name__)

LETTERBOXD_BASE = "https://letterboxd.com"
LETTERBOXD_NS = "https://letterboxd.com"
ATOM_NS = "http://www.w3.org/2005/Atom"

ActivityType = Literal["diary", "review", "like", "watchlist", "list", "activity"]


class FeedUnavailableError(RuntimeError):
    pass


@dataclass(frozen=True)
class FeedEntry:
    title: str
    link: str
    description: str
    published: datetime | None
    activity_type: ActivityType
    film: FilmInfo
    # Only set when the feed carries letterboxd:watchedDate.
    watched_date: str | None = None
    rewatch: bool = False

    @property
    def has_usable_title(self) -> bool:
        return is_usable_title(self.film.title)

    def entry_date(self, *, permissive: bool = False) -> str | None:
        if self.watched_date:
            return self.watched_date
        if permissive and self.published is not None:
            return self.published.date().isoformat()
        return None

    def is_diary_candidate(self, *, permissive: bool = False) -> bool:
        """A publish time says when the activity was posted, not when the
        film was watched, so only an explicit watched date qualifies unless
        `permissive` is set."""

        return self.has_usable_title and self.entry_date(permissive=permissive) is not None

    def to_diary_record(self, *, permissive: bool = False) -> FilmRecord:
        day = self.entry_date(permissive=permissive) or ""
        return FilmRecord(
            fields={
                "Date": day,
                "Name": self.film.title or "",
                "Year": str(self.film.year) if self.film.year else "",
                "Letterboxd URI": self.film.url or self.link,
                "Rating": format_rating(self.film.rating),
                "Rewatch": "Yes" if self.rewatch else "",
                "Tags": "",
                "Watched Date": day,
            },
            live=True,
        )

    def to_watched_record(self, *, permissive: bool = False) -> FilmRecord:
        return FilmRecord(
            fields={
                "Date": self.entry_date(permissive=permissive) or "",
                "Name": self.film.title or "",
                "Year": str(self.film.year) if self.film.year else "",
                "Letterboxd URI": self.film.url or self.link,
            },
            live=True,
        )


@dataclass(frozen=True)
class ActivitySummary:
    total_activities: int
    watched_count: int
    reviewed_count: int
    liked_count: int
    last_activity: datetime | None


@dataclass
class _CacheEntry:
    entries: list[FeedEntry]
    stored_at: float


@dataclass
class FeedCache:
    """Per-username feed cache with a fixed time-to-live."""

    ttl_s: float = 300.0
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, _CacheEntry] = field(default_factory=dict)

    def get(self, username: str) -> list[FeedEntry] | None:
        hit = self._entries.get(username.lower())
        if hit is None:
            return None
        if self.clock() - hit.stored_at >= self.ttl_s:
            del self._entries[username.lower()]
            return None
        return hit.entries

    def put(self, username: str, entries: list[FeedEntry]) -> None:
        self._entries[username.lower()] = _CacheEntry(entries=entries, stored_at=self.clock())

    def clear(self) -> None:
        self._entries.clear()


def feed_url(username: str) -> str:
    return f"{LETTERBOXD_BASE}/{username}/rss/"


def relay_url(target: str, template: str = DEFAULT_FEED_RELAY) -> str:
    return template.format(url=quote(target, safe=""))


def determine_activity_type(title: str) -> ActivityType:
    lowered = title.lower()
    if "watched" in lowered:
        return "diary"
    if "reviewed" in lowered:
        return "review"
    if "liked" in lowered:
        return "like"
    if "added" in lowered and "watchlist" in lowered:
        return "watchlist"
    if "created a list" in lowered:
        return "list"
    return "activity"


def unwrap_relay_payload(contents: str) -> str:
    """Return the feed document from a relay payload.

    The relay sometimes hands back a data URL
    (data:application/rss+xml;charset=utf-8;base64,...) instead of the raw
    document.
    """

    text = (contents or "").strip()
    if text.startswith("data:"):
        header, _, payload = text.partition(",")
        if header.endswith(";base64"):
            try:
                text = base64.b64decode(payload).decode("utf-8", errors="replace").strip()
            except (binascii.Error, ValueError) as e:
                raise FeedUnavailableError("Relay returned undecodable base64 content") from e
        else:
            text = payload.strip()

    if not text.startswith(("<?xml", "<rss", "<feed")):
        raise FeedUnavailableError("Relay response is not an RSS/Atom document")
    return text


def _parse_timestamp(value: str | None) -> datetime | None:
    raw = (value or "").strip()
    if not raw:
        return None

    parsed: datetime | None
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(el: ET.Element, *names: str) -> str:
    for child in el:
        if _local_name(child.tag) in names and child.text:
            return child.text.strip()
    return ""


def _letterboxd_fields(el: ET.Element) -> dict[str, str]:
    out: dict[str, str] = {}
    prefix = f"{{{LETTERBOXD_NS}}}"
    for child in el:
        if child.tag.startswith(prefix) and child.text:
            out[child.tag[len(prefix) :]] = child.text.strip()
    return out


def _build_entry(
    extractor: TitleExtractor,
    *,
    title: str,
    link: str,
    description: str,
    published: str,
    structured: dict[str, str],
) -> FeedEntry:
    watched = parse_iso_date(structured.get("watchedDate"))
    return FeedEntry(
        title=title,
        link=link,
        description=description,
        published=_parse_timestamp(published),
        activity_type=determine_activity_type(title),
        film=extractor.extract(title, link, description, structured),
        watched_date=watched.isoformat() if watched else None,
        rewatch=structured.get("rewatch", "").lower() == "yes",
    )


def parse_feed(xml_text: str, *, extractor: TitleExtractor | None = None) -> list[FeedEntry]:
    """Parse an RSS 2.0 or Atom document into feed entries, in feed order."""

    extractor = extractor or TitleExtractor()
    root = ET.fromstring(xml_text)

    entries: list[FeedEntry] = []
    for item in root.iter("item"):
        entries.append(
            _build_entry(
                extractor,
                title=_child_text(item, "title"),
                link=_child_text(item, "link"),
                description=_child_text(item, "description"),
                published=_child_text(item, "pubDate"),
                structured=_letterboxd_fields(item),
            )
        )
    if entries:
        return entries

    atom_entries = [
        el for el in root.iter() if el.tag in (f"{{{ATOM_NS}}}entry", "entry")
    ]
    for entry in atom_entries:
        link = ""
        for child in entry:
            if _local_name(child.tag) == "link":
                link = child.get("href") or (child.text or "").strip()
                break
        entries.append(
            _build_entry(
                extractor,
                title=_child_text(entry, "title"),
                link=link,
                description=_child_text(entry, "summary", "content"),
                published=_child_text(entry, "published") or _child_text(entry, "updated"),
                structured=_letterboxd_fields(entry),
            )
        )
    return entries


def _since_string(since: str | date | datetime) -> str:
    if isinstance(since, datetime):
        return since.date().isoformat()
    if isinstance(since, date):
        return since.isoformat()
    return since.strip()[:10]


class ActivityFeedClient:
    """Polls a member's public Letterboxd RSS feed through a relay."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        cache: FeedCache | None = None,
        extractor: TitleExtractor | None = None,
        permissive: bool = False,
    ) -> None:
        self._relay = settings.feed_relay if settings else DEFAULT_FEED_RELAY
        self._timeout_s = settings.http_timeout_s if settings else 20.0
        self._client = client
        self.cache = cache or FeedCache(ttl_s=settings.feed_ttl_s if settings else 300.0)
        self._extractor = extractor or TitleExtractor()
        self.permissive = permissive

    async def _fetch_document(self, username: str) -> str:
        client = self._client
        close_client = False
        if client is None:
            client = httpx.AsyncClient(
                headers={"User-Agent": "letterboxd-viewer/0.1"},
                timeout=self._timeout_s,
                follow_redirects=True,
            )
            close_client = True

        try:
            resp = await client.get(relay_url(feed_url(username), self._relay))
        except httpx.HTTPError as e:
            raise FeedUnavailableError(f"Could not reach feed relay: {e}") from e
        finally:
            if close_client:
                await client.aclose()

        if resp.status_code >= 400:
            raise FeedUnavailableError(f"Feed relay responded with {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise FeedUnavailableError("Feed relay returned invalid JSON") from e

        contents = payload.get("contents") if isinstance(payload, dict) else None
        if not contents:
            raise FeedUnavailableError("No content received from feed relay")
        return unwrap_relay_payload(contents)

    async def probe(self, username: str) -> list[FeedEntry]:
        """Fetch (or reuse) the feed, raising FeedUnavailableError on failure."""

        if not username:
            raise FeedUnavailableError("No username provided")

        cached = self.cache.get(username)
        if cached is not None:
            return cached

        logger.info("Fetching activity feed for %s", username)
        document = await self._fetch_document(username)
        try:
            entries = parse_feed(document, extractor=self._extractor)
        except ET.ParseError as e:
            raise FeedUnavailableError(f"Feed XML parsing failed: {e}") from e

        if not entries:
            logger.info("Activity feed for %s has no items", username)
        self.cache.put(username, entries)
        return entries

    async def fetch_feed(self, username: str) -> list[FeedEntry]:
        try:
            return await self.probe(username)
        except FeedUnavailableError as e:
            logger.warning("Activity feed unavailable for %s: %s", username, e)
            return []

    async def get_entries_since(
        self, username: str, since: str | date | datetime
    ) -> list[FeedEntry]:
        """Diary candidates dated strictly after `since`.

        Dates are compared as YYYY-MM-DD strings so a feed timestamp late in
        the evening is never shifted onto the next day.
        """

        cutoff = _since_string(since)
        out: list[FeedEntry] = []
        for entry in await self.fetch_feed(username):
            if not entry.is_diary_candidate(permissive=self.permissive):
                continue
            day = entry.entry_date(permissive=self.permissive)
            if day is not None and day > cutoff:
                out.append(entry)
        return out

    async def get_recent_diary_entries(self, username: str, limit: int = 10) -> list[FilmRecord]:
        out: list[FilmRecord] = []
        for entry in await self.fetch_feed(username):
            if len(out) >= limit:
                break
            if entry.is_diary_candidate(permissive=self.permissive):
                out.append(entry.to_diary_record(permissive=self.permissive))
        return out

    async def activity_summary(
        self, username: str, *, now: datetime | None = None
    ) -> ActivitySummary | None:
        entries = await self.fetch_feed(username)
        if not entries:
            return None

        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=7)
        recent = [e for e in entries if e.published is not None and e.published >= cutoff]

        return ActivitySummary(
            total_activities=len(recent),
            watched_count=sum(1 for e in recent if e.activity_type == "diary"),
            reviewed_count=sum(1 for e in recent if e.activity_type == "review"),
            liked_count=sum(1 for e in recent if e.activity_type == "like"),
            last_activity=entries[0].published,
        )

    def clear_cache(self) -> None:
        self.cache.clear()
