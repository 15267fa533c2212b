from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ProfileItem(BaseModel):
    id: str
    display_name: str
    single_user_mode: bool = False
    last_updated: str | None = None


class ProfilesResponse(BaseModel):
    profiles: list[ProfileItem]
    current: str | None = None


class FilmItem(BaseModel):
    name: str
    year: str | None = None
    date: str | None = None
    rating: float | None = None
    stars: str = ""
    uri: str | None = None
    rewatch: bool = False
    tags: str | None = None
    review: str | None = None
    position: str | None = None
    notes: str | None = None
    live: bool = False

    # Enrichment, filled for paged views.
    poster_url: str | None = None
    tmdb_url: str | None = None
    overview: str | None = None
    enrichment_status: str | None = None


class SelectProfileResponse(BaseModel):
    profile_id: str
    display_name: str
    diary_count: int = Field(ge=0)
    watched_count: int = Field(ge=0)
    list_count: int = Field(ge=0)
    live_enabled: bool


class ViewPageResponse(BaseModel):
    view: str
    page: int = Field(ge=1)
    page_size: int = Field(ge=1)
    total: int = Field(ge=0)
    total_pages: int = Field(ge=0)
    sort_key: str
    sort_direction: str
    filter: str | None = None
    items: list[FilmItem]


class DashboardResponse(BaseModel):
    display_name: str
    total_watched: int = Field(ge=0)
    total_reviews: int = Field(ge=0)
    total_watchlist: int = Field(ge=0)
    average_rating: str
    recent_entries: list[FilmItem]
    favorite_films: list[FilmItem]
    live_enabled: bool


class CountItem(BaseModel):
    name: str
    count: int = Field(ge=0)


class StatsResponse(BaseModel):
    total_watched: int = Field(ge=0)
    total_reviews: int = Field(ge=0)
    total_watchlist: int = Field(ge=0)
    average_rating: str
    monthly_counts: list[CountItem]
    rating_distribution: list[CountItem]


class ListSummary(BaseModel):
    filename: str
    name: str
    description: str
    item_count: int = Field(ge=0)


class ListDetailResponse(ListSummary):
    items: list[FilmItem]


class LiveToggleResponse(BaseModel):
    enabled: bool
    added_diary: int = Field(default=0, ge=0)
    added_watched: int = Field(default=0, ge=0)


class ActivitySummaryResponse(BaseModel):
    total_activities: int = Field(ge=0)
    watched_count: int = Field(ge=0)
    reviewed_count: int = Field(ge=0)
    liked_count: int = Field(ge=0)
    last_activity: datetime | None = None


class EnrichmentResponse(BaseModel):
    title: str
    year: str | None = None
    status: str
    tmdb_id: int | None = None
    media_type: str | None = None
    overview: str = ""
    poster_url: str
    tmdb_url: str
    online: bool
