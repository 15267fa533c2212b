from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from letterboxd_viewer.core.enrichment import EnrichmentResult, MetadataEnrichmentClient
from letterboxd_viewer.core.export_repository import ExportBundle, ExportRepository, ProfileConfig
from letterboxd_viewer.core.feed import ActivityFeedClient, ActivitySummary, FeedUnavailableError
from letterboxd_viewer.core.preferences import PreferenceStore
from letterboxd_viewer.core.reconciler import ActivityReconciler, MergeOptions, latest_date
from letterboxd_viewer.core.records import FilmRecord
from letterboxd_viewer.core.stats import DashboardStats, average_rating, build_dashboard_stats
from letterboxd_viewer.core.view_state import PageSlice, ViewState, default_view_states, select_page

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10


class UnknownViewError(RuntimeError):
    pass


@dataclass(frozen=True)
class EnrichedRecord:
    record: FilmRecord
    enrichment: EnrichmentResult
    poster_url: str
    tmdb_url: str


@dataclass(frozen=True)
class LiveToggleResult:
    enabled: bool
    ok: bool
    added_diary: int = 0
    added_watched: int = 0
    error: str | None = None


@dataclass(frozen=True)
class DashboardSummary:
    display_name: str
    total_watched: int
    total_reviews: int
    total_watchlist: int
    average_rating: str
    recent_entries: list[FilmRecord]
    favorite_films: list[FilmRecord]
    live_enabled: bool


class DashboardSession:
    """State of one viewer session.

    Owns the selected profile's bundle, per-view navigation state and the
    live-mode flag. Renderers call the methods and re-read state afterwards,
    or subscribe to change notifications.
    """

    def __init__(
        self,
        repository: ExportRepository,
        enrichment: MetadataEnrichmentClient,
        feed: ActivityFeedClient,
        *,
        preferences: PreferenceStore | None = None,
        reconciler: ActivityReconciler | None = None,
        merge_options: MergeOptions | None = None,
    ) -> None:
        self.repository = repository
        self.enrichment = enrichment
        self.feed = feed
        self.preferences = preferences
        self.reconciler = reconciler or ActivityReconciler()
        self.merge_options = merge_options or MergeOptions()
        self.views: dict[str, ViewState] = default_view_states()
        self.live_enabled = False
        self._listeners: list[Callable[[str], None]] = []

    # -- notifications ------------------------------------------------------

    def subscribe(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def _changed(self, what: str) -> None:
        for listener in self._listeners:
            listener(what)

    # -- profile ------------------------------------------------------------

    @property
    def bundle(self) -> ExportBundle | None:
        return self.repository.bundle

    @property
    def profile(self) -> ProfileConfig | None:
        return self.repository.current_profile

    def _require_bundle(self) -> ExportBundle:
        if self.repository.bundle is None:
            raise LookupError("No profile selected")
        return self.repository.bundle

    async def select_profile(self, profile_id: str) -> ExportBundle | None:
        bundle = await self.repository.select_profile(profile_id)
        if bundle is None:
            return None

        self.live_enabled = False
        self.views = default_view_states()
        if self.preferences is not None and self.preferences.live_enabled(profile_id):
            result = await self.enable_live(persist=False)
            if not result.ok:
                logger.warning("Live data could not be restored for %s: %s", profile_id, result.error)

        self._changed("profile")
        return bundle

    def feed_username(self) -> str:
        bundle = self._require_bundle()
        profile = self.repository.current_profile
        if profile is not None and profile.letterboxd_username:
            return profile.letterboxd_username
        return bundle.profile.username or bundle.profile_id

    # -- views --------------------------------------------------------------

    def view_records(self, view: str) -> list[FilmRecord]:
        bundle = self._require_bundle()
        sources: dict[str, Callable[[], list[FilmRecord]]] = {
            "diary": lambda: bundle.diary,
            "watched": lambda: bundle.watched,
            "all_films": bundle.all_films,
            "watchlist": lambda: bundle.watchlist,
            "reviews": bundle.reviews_with_text,
            "ratings": lambda: bundle.ratings,
        }
        source = sources.get(view)
        if source is None:
            raise UnknownViewError(f"Unknown view: {view}")
        return source()

    def view_state(self, view: str) -> ViewState:
        state = self.views.get(view)
        if state is None:
            raise UnknownViewError(f"Unknown view: {view}")
        return state

    def page(self, view: str) -> PageSlice:
        return select_page(self.view_records(view), self.view_state(view))

    async def enrich(self, record: FilmRecord) -> EnrichedRecord:
        result = await self.enrichment.resolve(record.name, record.year)
        return EnrichedRecord(
            record=record,
            enrichment=result,
            poster_url=self.enrichment.poster_url(result, record.name, record.year),
            tmdb_url=self.enrichment.tmdb_url(result, record.name, record.year),
        )

    async def enrich_page(self, records: Sequence[FilmRecord]) -> list[EnrichedRecord]:
        # One record at a time; the enrichment cache makes repeats free.
        out: list[EnrichedRecord] = []
        for record in records:
            if not record.name:
                continue
            out.append(await self.enrich(record))
        return out

    def dashboard(self) -> DashboardSummary:
        bundle = self._require_bundle()
        recent = sorted(
            bundle.diary, key=lambda r: r.get("Date") or r.date, reverse=True
        )[:RECENT_ACTIVITY_LIMIT]
        return DashboardSummary(
            display_name=bundle.display_name,
            total_watched=len(bundle.watched),
            total_reviews=len(bundle.reviews),
            total_watchlist=len(bundle.watchlist),
            average_rating=average_rating(bundle.ratings),
            recent_entries=recent,
            favorite_films=list(bundle.favorite_films),
            live_enabled=self.live_enabled,
        )

    def stats(self) -> DashboardStats:
        return build_dashboard_stats(self._require_bundle())

    # -- live mode ----------------------------------------------------------

    async def enable_live(self, *, persist: bool = True) -> LiveToggleResult:
        """Check the feed is reachable, then merge new entries into the diary.

        The bundle is only touched once the whole merge has been computed, and
        not at all if another profile was selected in the meantime.
        """

        bundle = self._require_bundle()
        username = self.feed_username()

        try:
            await self.feed.probe(username)
        except FeedUnavailableError as e:
            logger.warning("Cannot enable live data for %s: %s", username, e)
            return LiveToggleResult(enabled=self.live_enabled, ok=False, error=str(e))

        permissive = self.feed.permissive
        base_diary = bundle.diary_snapshot
        base_watched = bundle.watched_snapshot
        latest = latest_date(base_diary)
        if latest is not None:
            entries = await self.feed.get_entries_since(username, latest)
        else:
            entries = [
                e
                for e in await self.feed.fetch_feed(username)
                if e.is_diary_candidate(permissive=permissive)
            ]
        live_records = [e.to_diary_record(permissive=permissive) for e in entries]

        if self.repository.bundle is not bundle:
            logger.info("Profile changed while fetching live data for %s; not merging", username)
            return LiveToggleResult(
                enabled=self.live_enabled, ok=False, error="Profile changed during live fetch"
            )

        diary = self.reconciler.merge(base_diary, live_records, self.merge_options)
        added_diary = len(self.reconciler.last_accepted)
        watched = self.reconciler.merge_watched(base_watched)

        bundle.diary = diary
        bundle.watched = watched
        self.live_enabled = True
        if persist and self.preferences is not None:
            self.preferences.set_live_enabled(bundle.profile_id, True)

        self.views["diary"].page = 1
        self._changed("live")
        return LiveToggleResult(
            enabled=True,
            ok=True,
            added_diary=added_diary,
            added_watched=len(watched) - len(base_watched),
        )

    def disable_live(self, *, persist: bool = True) -> LiveToggleResult:
        bundle = self._require_bundle()
        bundle.restore_snapshot()
        self.live_enabled = False
        if persist and self.preferences is not None:
            self.preferences.set_live_enabled(bundle.profile_id, False)

        self.views["diary"].page = 1
        self._changed("live")
        return LiveToggleResult(enabled=False, ok=True)

    async def live_summary(self) -> ActivitySummary | None:
        if not self.live_enabled:
            return None
        return await self.feed.activity_summary(self.feed_username())

    def clear_caches(self) -> None:
        self.enrichment.clear_cache()
        self.feed.clear_cache()
        self._changed("caches")
