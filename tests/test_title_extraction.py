from __future__ import annotations

from letterboxd_viewer.core.title_extraction import (
    FilmInfo,
    TitleExtractor,
    is_usable_title,
    normalise_mojibake,
    stars_to_rating,
)


def test_rated_title() -> None:
    link = "https://letterboxd.com/alice/film/heat/"
    info = TitleExtractor().extract("alice Heat, 1995 - ★★★★½", link)
    assert info == FilmInfo(title="Heat", year=1995, rating=4.5, url=link)


def test_title_with_comma_and_no_rating() -> None:
    info = TitleExtractor().extract("bob Crouching Tiger, Hidden Dragon, 2000")
    assert info.title == "Crouching Tiger, Hidden Dragon"
    assert info.year == 2000
    assert info.rating is None


def test_structured_fields_win() -> None:
    info = TitleExtractor().extract(
        "garbage",
        structured={"filmTitle": "Dune: Part Two", "filmYear": "2024", "memberRating": "4.0"},
    )
    assert (info.title, info.year, info.rating) == ("Dune: Part Two", 2024, 4.0)


def test_mojibake_stars_are_repaired() -> None:
    assert normalise_mojibake("â˜…â˜…Â½") == "★★½"
    info = TitleExtractor().extract("carol Alien, 1979 - â˜…â˜…â˜…")
    assert (info.title, info.year, info.rating) == ("Alien", 1979, 3.0)


def test_slug_fallback_keeps_partial_rating() -> None:
    info = TitleExtractor().extract("★★★", "https://letterboxd.com/dave/film/the-thing/")
    assert info.title == "The Thing"
    assert info.rating == 3.0


def test_unusable_title_falls_through_to_slug() -> None:
    link = "https://letterboxd.com/erin/film/heat/"
    info = TitleExtractor().extract("erin 1995", link)
    assert info == FilmInfo(title="Heat", year=1995, url=link)


def test_unusable_titles_are_dropped() -> None:
    info = TitleExtractor().extract("1995")
    assert info.title is None
    assert info.year == 1995

    assert not is_usable_title("Unknown Film")
    assert not is_usable_title(" - , ")
    assert not is_usable_title("x")
    assert is_usable_title("Up")


def test_stars_to_rating() -> None:
    assert stars_to_rating("★★★★★") == 5.0
    assert stars_to_rating("½") == 0.5
    assert stars_to_rating("") is None
