"""Shared fixtures: a small Letterboxd export and a matching activity feed."""

from __future__ import annotations

from pathlib import Path

import pytest

LIST_CSV = (
    "Letterboxd list export v7\n"
    "Date,Name,Tags,URL,Description\n"
    "2023-05-01,Heat Week,,https://boxd.it/list,Michael Mann\n"
    "\n"
    "Position,Name,Year,URL,Description\n"
    "1,Heat,1995,https://letterboxd.com/film/heat/,\n"
    "2,Collateral,2004,https://letterboxd.com/film/collateral/,\n"
)


def _write_export(root: Path) -> None:
    root.mkdir(parents=True, exist_ok=True)
    (root / "profile.csv").write_text(
        "Date Joined,Username,Given Name,Favorite Films\n"
        '2019-01-01,alice,Alice,"https://letterboxd.com/film/heat/, '
        'https://letterboxd.com/film/alien/, https://letterboxd.com/film/missing/"\n',
        encoding="utf-8",
    )
    (root / "diary.csv").write_text(
        "Date,Name,Year,Letterboxd URI,Rating,Rewatch,Tags,Watched Date\n"
        "2024-01-10,Heat,1995,https://letterboxd.com/film/heat/,4.5,,,2024-01-10\n"
        "2024-01-12,Heat,1995,https://letterboxd.com/alice/film/heat/1/,5,Yes,,2024-01-12\n",
        encoding="utf-8",
    )
    (root / "watched.csv").write_text(
        "Date,Name,Year,Letterboxd URI\n"
        "2024-01-10,Heat,1995,https://letterboxd.com/film/heat/\n"
        "2020-05-01,Alien,1979,https://letterboxd.com/film/alien/\n",
        encoding="utf-8",
    )
    (root / "ratings.csv").write_text(
        "Date,Name,Year,Letterboxd URI,Rating\n"
        "2020-05-01,Alien,1979,https://letterboxd.com/film/alien/,4\n",
        encoding="utf-8",
    )
    (root / "reviews.csv").write_text(
        "Date,Name,Year,Letterboxd URI,Rating,Rewatch,Review,Tags,Watched Date\n"
        "2024-01-10,Heat,1995,https://letterboxd.com/film/heat/,4.5,,Coffee scene.,,2024-01-10\n"
        "2024-01-11,Alien,1979,https://letterboxd.com/film/alien/,4,,,,2024-01-11\n",
        encoding="utf-8",
    )
    (root / "likes").mkdir(exist_ok=True)
    (root / "likes" / "films.csv").write_text(
        "Date,Name,Year,Letterboxd URI\n2024-01-10,Heat,1995,https://letterboxd.com/film/heat/\n",
        encoding="utf-8",
    )
    (root / "lists").mkdir(exist_ok=True)
    (root / "lists" / "heat-week.csv").write_text(LIST_CSV, encoding="utf-8")
    (root / "lists" / "broken.csv").write_text("only\ntwo lines\n", encoding="utf-8")




# Dune is new; the Heat rewatch on 2024-01-12 is already in the export;
# Alien is only a like.
FEED_RSS = """<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0" xmlns:letterboxd="https://letterboxd.com">
  <channel>
    <title>Letterboxd - alice</title>
    <item>
      <title>alice Dune: Part Two, 2024 - ★★★★</title>
      <link>https://letterboxd.com/alice/film/dune-part-two/</link>
      <pubDate>Sat, 09 Mar 2024 21:15:00 +0000</pubDate>
      <letterboxd:watchedDate>2024-03-09</letterboxd:watchedDate>
      <letterboxd:filmTitle>Dune: Part Two</letterboxd:filmTitle>
      <letterboxd:filmYear>2024</letterboxd:filmYear>
      <letterboxd:memberRating>4.0</letterboxd:memberRating>
    </item>
    <item>
      <title>alice Heat, 1995 - ★★★★★</title>
      <link>https://letterboxd.com/alice/film/heat/2/</link>
      <pubDate>Fri, 01 Mar 2024 22:00:00 +0000</pubDate>
      <letterboxd:watchedDate>2024-01-12</letterboxd:watchedDate>
      <letterboxd:rewatch>Yes</letterboxd:rewatch>
    </item>
    <item>
      <title>alice liked Alien, 1979</title>
      <link>https://letterboxd.com/alice/film/alien/</link>
      <pubDate>Thu, 29 Feb 2024 10:00:00 +0000</pubDate>
      <letterboxd:filmTitle>Alien</letterboxd:filmTitle>
    </item>
  </channel>
</rss>
"""


@pytest.fixture
def write_export():
    return _write_export


@pytest.fixture
def feed_rss() -> str:
    return FEED_RSS
