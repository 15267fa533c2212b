from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from letterboxd_viewer.core.enrichment import EnrichmentResult
from letterboxd_viewer.core.records import FilmRecord, format_star_rating
from letterboxd_viewer.core.schemas import (
    ActivitySummaryResponse,
    CountItem,
    DashboardResponse,
    EnrichmentResponse,
    FilmItem,
    ListDetailResponse,
    ListSummary,
    LiveToggleResponse,
    ProfileItem,
    ProfilesResponse,
    SelectProfileResponse,
    StatsResponse,
    ViewPageResponse,
)
from letterboxd_viewer.core.viewer import DashboardSession, EnrichedRecord, UnknownViewError

router = APIRouter()


def _session(request: Request) -> DashboardSession:
    return request.app.state.session


def _require_profile(session: DashboardSession) -> None:
    if session.bundle is None:
        raise HTTPException(status_code=409, detail="No profile selected")


def _film_item(record: FilmRecord, enriched: EnrichedRecord | None = None) -> FilmItem:
    result: EnrichmentResult | None = enriched.enrichment if enriched else None
    return FilmItem(
        name=record.name,
        year=record.year or None,
        date=record.date or None,
        rating=record.rating,
        stars=format_star_rating(record.rating),
        uri=record.uri or None,
        rewatch=record.is_rewatch,
        tags=record.get("Tags") or None,
        review=record.review or None,
        position=record.position or None,
        notes=record.notes or None,
        live=record.live,
        poster_url=enriched.poster_url if enriched else None,
        tmdb_url=enriched.tmdb_url if enriched else None,
        overview=result.overview if result else None,
        enrichment_status=result.status if result else None,
    )


async def _enriched_items(session: DashboardSession, records: list[FilmRecord]) -> list[FilmItem]:
    enriched = {id(e.record): e for e in await session.enrich_page(records)}
    return [_film_item(r, enriched.get(id(r))) for r in records]


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/profiles", response_model=ProfilesResponse)
def profiles(request: Request) -> ProfilesResponse:
    session = _session(request)
    current = session.profile.id if session.profile else None
    return ProfilesResponse(
        profiles=[
            ProfileItem(
                id=p.id,
                display_name=p.display_name or p.id,
                single_user_mode=p.single_user_mode,
                last_updated=p.last_updated,
            )
            for p in session.repository.load_profiles()
        ],
        current=current,
    )


@router.post("/api/profiles/{profile_id}/select", response_model=SelectProfileResponse)
async def select_profile(profile_id: str, request: Request) -> SelectProfileResponse:
    session = _session(request)
    bundle = await session.select_profile(profile_id)
    if bundle is None:
        raise HTTPException(status_code=404, detail=f"User not found: {profile_id}")

    return SelectProfileResponse(
        profile_id=bundle.profile_id,
        display_name=bundle.display_name,
        diary_count=len(bundle.diary),
        watched_count=len(bundle.watched),
        list_count=len(bundle.lists),
        live_enabled=session.live_enabled,
    )


@router.get("/api/dashboard", response_model=DashboardResponse)
async def dashboard(request: Request) -> DashboardResponse:
    session = _session(request)
    _require_profile(session)

    summary = session.dashboard()
    return DashboardResponse(
        display_name=summary.display_name,
        total_watched=summary.total_watched,
        total_reviews=summary.total_reviews,
        total_watchlist=summary.total_watchlist,
        average_rating=summary.average_rating,
        recent_entries=[_film_item(r) for r in summary.recent_entries],
        favorite_films=await _enriched_items(session, summary.favorite_films),
        live_enabled=summary.live_enabled,
    )


@router.get("/api/views/{view}", response_model=ViewPageResponse)
async def view_page(
    view: str,
    request: Request,
    page: int | None = Query(default=None, ge=1),
    sort: str | None = Query(default=None, pattern="^(date|name|year|rating)(-(asc|desc))?$"),
    filter: str | None = Query(default=None, max_length=200),
    enrich: bool = True,
) -> ViewPageResponse:
    session = _session(request)
    _require_profile(session)

    try:
        state = session.view_state(view)
    except UnknownViewError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    # Sort / filter changes reset the page, so apply them before the page.
    if sort is not None:
        state.apply_sort_value(sort)
    if filter is not None and (filter.strip() or None) != state.filter:
        state.set_filter(filter)
    if page is not None:
        state.set_page(page)

    sliced = session.page(view)
    items = (
        await _enriched_items(session, sliced.items)
        if enrich
        else [_film_item(r) for r in sliced.items]
    )
    return ViewPageResponse(
        view=view,
        page=sliced.page,
        page_size=sliced.page_size,
        total=sliced.total,
        total_pages=sliced.total_pages,
        sort_key=state.sort_key,
        sort_direction=state.sort_direction,
        filter=state.filter,
        items=items,
    )


@router.get("/api/lists", response_model=list[ListSummary])
def lists(request: Request) -> list[ListSummary]:
    session = _session(request)
    _require_profile(session)
    return [
        ListSummary(
            filename=lst.filename,
            name=lst.name,
            description=lst.description,
            item_count=len(lst.items),
        )
        for lst in session.bundle.lists
    ]


@router.get("/api/lists/{filename}", response_model=ListDetailResponse)
async def list_detail(filename: str, request: Request) -> ListDetailResponse:
    session = _session(request)
    _require_profile(session)

    lst = session.bundle.find_list(filename)
    if lst is None:
        raise HTTPException(status_code=404, detail=f"List not found: {filename}")

    named = [item for item in lst.items if item.name]
    return ListDetailResponse(
        filename=lst.filename,
        name=lst.name,
        description=lst.description,
        item_count=len(lst.items),
        items=await _enriched_items(session, named),
    )


@router.get("/api/stats", response_model=StatsResponse)
def stats(request: Request) -> StatsResponse:
    session = _session(request)
    _require_profile(session)

    s = session.stats()
    return StatsResponse(
        total_watched=s.total_watched,
        total_reviews=s.total_reviews,
        total_watchlist=s.total_watchlist,
        average_rating=s.average_rating,
        monthly_counts=[CountItem(name=k, count=v) for k, v in s.monthly_counts],
        rating_distribution=[CountItem(name=k, count=v) for k, v in s.rating_distribution],
    )


@router.post("/api/live/enable", response_model=LiveToggleResponse)
async def enable_live(request: Request) -> LiveToggleResponse:
    session = _session(request)
    _require_profile(session)

    result = await session.enable_live()
    if not result.ok:
        raise HTTPException(
            status_code=502,
            detail=f"Live data is unavailable: {result.error}",
        )
    return LiveToggleResponse(
        enabled=result.enabled,
        added_diary=result.added_diary,
        added_watched=result.added_watched,
    )


@router.post("/api/live/disable", response_model=LiveToggleResponse)
def disable_live(request: Request) -> LiveToggleResponse:
    session = _session(request)
    _require_profile(session)

    result = session.disable_live()
    return LiveToggleResponse(enabled=result.enabled)


@router.get("/api/live/summary", response_model=ActivitySummaryResponse | None)
async def live_summary(request: Request) -> ActivitySummaryResponse | None:
    session = _session(request)
    _require_profile(session)

    summary = await session.live_summary()
    if summary is None:
        return None
    return ActivitySummaryResponse(
        total_activities=summary.total_activities,
        watched_count=summary.watched_count,
        reviewed_count=summary.reviewed_count,
        liked_count=summary.liked_count,
        last_activity=summary.last_activity,
    )


@router.get("/api/enrichment", response_model=EnrichmentResponse)
async def enrichment(
    request: Request,
    title: str = Query(min_length=1, max_length=300),
    year: str | None = Query(default=None, pattern=r"^\d{4}$"),
) -> EnrichmentResponse:
    client = _session(request).enrichment
    result = await client.resolve(title, year)
    return EnrichmentResponse(
        title=title,
        year=year,
        status=result.status,
        tmdb_id=result.tmdb_id,
        media_type=result.media_type,
        overview=result.overview,
        poster_url=client.poster_url(result, title, year),
        tmdb_url=client.tmdb_url(result, title, year),
        online=client.online,
    )


@router.get("/api/notices")
def notices(request: Request) -> dict[str, list[str]]:
    pending = list(request.app.state.notices)
    request.app.state.notices.clear()
    return {"notices": pending}


@router.post("/api/preferences/dismiss-enrichment-errors")
def dismiss_enrichment_errors(request: Request) -> dict[str, bool]:
    preferences = _session(request).preferences
    if preferences is None:
        raise HTTPException(status_code=503, detail="Preferences are not available")
    preferences.dismiss_enrichment_errors()
    request.app.state.notices.clear()
    return {"dismissed": True}


@router.post("/api/cache/clear")
def clear_cache(request: Request) -> dict[str, str]:
    _session(request).clear_caches()
    return {"status": "cleared"}
