from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

import pandas as pd

from letterboxd_viewer.core.export_repository import ExportBundle
from letterboxd_viewer.core.records import FilmRecord

RATING_BUCKETS: Final[tuple[str, ...]] = (
    "0.5", "1.0", "1.5", "2.0", "2.5", "3.0", "3.5", "4.0", "4.5", "5.0",
)


@dataclass(frozen=True)
class DashboardStats:
    total_watched: int
    total_reviews: int
    total_watchlist: int
    average_rating: str
    monthly_counts: list[tuple[str, int]]
    rating_distribution: list[tuple[str, int]]


def _ratings_series(records: Sequence[FilmRecord]) -> pd.Series:
    return pd.Series([r.rating for r in records if r.rating is not None], dtype=float)


def average_rating(records: Sequence[FilmRecord]) -> str:
    """Mean rating to one decimal place; "0.0" when nothing is rated."""

    ratings = _ratings_series(records)
    if ratings.empty:
        return "0.0"
    return f"{ratings.mean():.1f}"


def monthly_counts(diary: Sequence[FilmRecord], *, months: int = 12) -> list[tuple[str, int]]:
    """Diary entries per YYYY-MM, for the last `months` months that have any.

    Uses the diary's logged Date column, falling back to the watch date.
    """

    dates = [r.get("Date") or r.date for r in diary]
    parsed = pd.to_datetime(pd.Series(dates, dtype="object"), format="%Y-%m-%d", errors="coerce")
    parsed = parsed.dropna()
    if parsed.empty:
        return []

    counts = parsed.dt.strftime("%Y-%m").value_counts().sort_index()
    counts = counts.iloc[-months:]
    return [(str(month), int(count)) for month, count in counts.items()]


def rating_distribution(ratings: Sequence[FilmRecord]) -> list[tuple[str, int]]:
    series = _ratings_series(ratings)
    labels = series.map(lambda v: f"{v:.1f}")
    counts = labels.value_counts()
    return [(bucket, int(counts.get(bucket, 0))) for bucket in RATING_BUCKETS]


def build_dashboard_stats(bundle: ExportBundle) -> DashboardStats:
    return DashboardStats(
        total_watched=len(bundle.watched),
        total_reviews=len(bundle.reviews),
        total_watchlist=len(bundle.watchlist),
        average_rating=average_rating(bundle.ratings),
        monthly_counts=monthly_counts(bundle.diary),
        rating_distribution=rating_distribution(bundle.ratings),
    )
