from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Literal

from letterboxd_viewer.core.records import FilmRecord

SortKey = Literal["date", "name", "year", "rating"]
SortDirection = Literal["asc", "desc"]

SORT_KEYS: tuple[str, ...] = ("date", "name", "year", "rating")
_UNDATED = date(1900, 1, 1)


@dataclass
class ViewState:
    """Pagination / sort / filter settings of one view.

    Only explicit navigation changes it; it never touches the data.
    """

    page_size: int = 32
    sort_key: SortKey = "date"
    sort_direction: SortDirection = "desc"
    page: int = 1
    filter: str | None = None

    def set_page(self, page: int) -> None:
        if page < 1:
            raise ValueError("page must be >= 1")
        self.page = page

    def set_sort(self, key: str, direction: str | None = None) -> None:
        if key not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {key}")
        if direction is not None and direction not in ("asc", "desc"):
            raise ValueError(f"Unknown sort direction: {direction}")
        self.sort_key = key  # type: ignore[assignment]
        if direction is not None:
            self.sort_direction = direction  # type: ignore[assignment]
        self.page = 1

    def apply_sort_value(self, value: str) -> None:
        """Accept the combined form used by sort dropdowns, e.g. "rating-desc"."""

        key, _, direction = value.partition("-")
        self.set_sort(key, direction or None)

    def set_filter(self, text: str | None) -> None:
        self.filter = (text or "").strip() or None
        self.page = 1

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.page_size) if total > 0 else 0


@dataclass(frozen=True)
class PageSlice:
    items: list[FilmRecord]
    total: int
    page: int
    page_size: int
    total_pages: int


def _year(record: FilmRecord) -> int:
    try:
        return int(record.year)
    except ValueError:
        return 0


def sort_records(
    records: Sequence[FilmRecord], key: str, direction: str = "desc"
) -> list[FilmRecord]:
    reverse = direction == "desc"

    if key == "rating":
        # Unrated films go last whichever way the list is sorted.
        rated = [r for r in records if r.rating is not None]
        unrated = [r for r in records if r.rating is None]
        return sorted(rated, key=lambda r: r.rating, reverse=reverse) + unrated
    if key == "name":
        return sorted(records, key=lambda r: r.name.lower(), reverse=reverse)
    if key == "year":
        return sorted(records, key=_year, reverse=reverse)
    return sorted(records, key=lambda r: r.watch_date or _UNDATED, reverse=reverse)


def filter_records(records: Sequence[FilmRecord], text: str | None) -> list[FilmRecord]:
    needle = (text or "").strip().lower()
    if not needle:
        return list(records)
    return [r for r in records if needle in r.name.lower()]


def paginate(records: Sequence[FilmRecord], state: ViewState) -> list[FilmRecord]:
    start = (state.page - 1) * state.page_size
    return list(records[start : start + state.page_size])


def select_page(records: Sequence[FilmRecord], state: ViewState) -> PageSlice:
    filtered = filter_records(records, state.filter)
    ordered = sort_records(filtered, state.sort_key, state.sort_direction)
    return PageSlice(
        items=paginate(ordered, state),
        total=len(ordered),
        page=state.page,
        page_size=state.page_size,
        total_pages=state.total_pages(len(ordered)),
    )


def default_view_states() -> dict[str, ViewState]:
    return {
        "diary": ViewState(page_size=32, sort_key="date", sort_direction="desc"),
        "watched": ViewState(page_size=32, sort_key="year", sort_direction="desc"),
        "all_films": ViewState(page_size=32, sort_key="year", sort_direction="desc"),
        "watchlist": ViewState(page_size=32, sort_key="date", sort_direction="desc"),
        "reviews": ViewState(page_size=10, sort_key="date", sort_direction="desc"),
        "ratings": ViewState(page_size=32, sort_key="rating", sort_direction="desc"),
    }
