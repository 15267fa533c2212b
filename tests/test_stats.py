from __future__ import annotations

from letterboxd_viewer.core.export_repository import ExportBundle
from letterboxd_viewer.core.records import FilmRecord
from letterboxd_viewer.core.stats import (
    average_rating,
    build_dashboard_stats,
    monthly_counts,
    rating_distribution,
)


def _rated(value: str) -> FilmRecord:
    return FilmRecord(fields={"Name": f"Film {value}", "Rating": value})


def _logged(day: str) -> FilmRecord:
    return FilmRecord(fields={"Name": "x", "Date": day})


def test_average_rating() -> None:
    assert average_rating([]) == "0.0"
    assert average_rating([_rated("4"), _rated("3.5"), _rated("")]) == "3.8"


def test_rating_distribution_covers_every_half_star() -> None:
    dist = dict(rating_distribution([_rated("4"), _rated("4.0"), _rated("0.5"), _rated("5")]))
    assert list(dist) == ["0.5", "1.0", "1.5", "2.0", "2.5", "3.0", "3.5", "4.0", "4.5", "5.0"]
    assert dist["4.0"] == 2
    assert dist["0.5"] == 1
    assert dist["5.0"] == 1
    assert sum(dist.values()) == 4


def test_monthly_counts_keeps_last_months_in_order() -> None:
    diary = [_logged(f"2023-{m:02d}-15") for m in range(1, 13)]
    diary += [_logged("2024-01-02"), _logged("2024-01-20"), _logged("not a date"), _logged("")]

    counts = monthly_counts(diary)
    assert len(counts) == 12
    assert counts[0] == ("2023-02", 1)
    assert counts[-1] == ("2024-01", 2)
    assert monthly_counts([]) == []


def test_build_dashboard_stats() -> None:
    bundle = ExportBundle(
        profile_id="alice",
        display_name="alice",
        diary=[_logged("2024-03-01")],
        watched=[FilmRecord(fields={"Name": "Heat"}), FilmRecord(fields={"Name": "Alien"})],
        ratings=[_rated("4.5")],
        reviews=[FilmRecord(fields={"Name": "Heat", "Review": "Great."})],
    )
    stats = build_dashboard_stats(bundle)
    assert stats.total_watched == 2
    assert stats.total_reviews == 1
    assert stats.total_watchlist == 0
    assert stats.average_rating == "4.5"
    assert stats.monthly_counts == [("2024-03", 1)]
