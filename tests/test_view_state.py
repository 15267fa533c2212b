from __future__ import annotations

import pytest

from letterboxd_viewer.core.records import FilmRecord
from letterboxd_viewer.core.view_state import (
    ViewState,
    default_view_states,
    filter_records,
    select_page,
    sort_records,
)


def _film(name: str, year: str = "", day: str = "", rating: str = "") -> FilmRecord:
    return FilmRecord(fields={"Name": name, "Year": year, "Date": day, "Rating": rating})


def test_rating_sort_puts_unrated_last_both_ways() -> None:
    films = [_film("A", rating="3"), _film("B"), _film("C", rating="4.5"), _film("D", rating="0.5")]

    assert [f.name for f in sort_records(films, "rating", "desc")] == ["C", "A", "D", "B"]
    assert [f.name for f in sort_records(films, "rating", "asc")] == ["D", "A", "C", "B"]


def test_year_name_and_date_sorts() -> None:
    films = [
        _film("beta", "1999", "2024-01-02"),
        _film("Alpha"),
        _film("gamma", "2010", "2023-05-01"),
    ]

    assert [f.name for f in sort_records(films, "year", "desc")] == ["gamma", "beta", "Alpha"]
    assert [f.name for f in sort_records(films, "name", "asc")] == ["Alpha", "beta", "gamma"]
    assert [f.name for f in sort_records(films, "date", "desc")] == ["beta", "gamma", "Alpha"]


def test_filter_is_case_insensitive_substring() -> None:
    films = [_film("The Thing"), _film("Things to Come"), _film("Alien")]
    assert [f.name for f in filter_records(films, "THING")] == ["The Thing", "Things to Come"]
    assert len(filter_records(films, "  ")) == 3


def test_sort_and_filter_changes_reset_page() -> None:
    state = ViewState(page=4)
    state.set_sort("name", "asc")
    assert (state.page, state.sort_key, state.sort_direction) == (1, "name", "asc")

    state.set_page(3)
    state.set_filter("heat")
    assert state.page == 1
    assert state.filter == "heat"

    state.set_page(2)
    state.apply_sort_value("rating-desc")
    assert (state.page, state.sort_key, state.sort_direction) == (1, "rating", "desc")

    with pytest.raises(ValueError):
        state.set_page(0)
    with pytest.raises(ValueError):
        state.set_sort("runtime")


def test_select_page_slices_after_filter_and_sort() -> None:
    films = [_film(f"Film {i:02d}", day=f"2024-01-{i:02d}") for i in range(1, 31)]
    state = ViewState(page_size=10, page=3)

    page = select_page(films, state)
    assert page.total == 30
    assert page.total_pages == 3
    assert [f.name for f in page.items] == [f"Film {i:02d}" for i in range(10, 0, -1)]

    state.set_filter("Film 2")
    page = select_page(films, state)
    assert page.total == 10
    assert page.page == 1
    assert page.items[0].name == "Film 29"

    state.set_page(5)
    assert select_page(films, state).items == []


def test_default_views() -> None:
    views = default_view_states()
    assert views["reviews"].page_size == 10
    assert views["diary"].page_size == 32
    assert (views["watched"].sort_key, views["watched"].sort_direction) == ("year", "desc")
    assert ViewState().total_pages(0) == 0
