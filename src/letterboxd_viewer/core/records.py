from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import PurePosixPath
from typing import NamedTuple

NAME_FIELDS = ("Name", "Film Name", "Title", "Film")
YEAR_FIELDS = ("Year", "Release Year")
DATE_FIELDS = ("Watched Date", "WatchedDate", "Date")
URI_FIELDS = ("Letterboxd URI", "LetterboxdURI", "URL")
NOTES_FIELDS = ("Notes", "Description")

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def normalise_title(value: str | None) -> str:
    return " ".join((value or "").strip().lower().split())


def parse_iso_date(value: str | None) -> date | None:
    """Parse the leading YYYY-MM-DD of a value; anything else is None."""

    m = _DATE_RE.match((value or "").strip())
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def parse_rating(value: str | None) -> float | None:
    try:
        rating = float((value or "").strip())
    except ValueError:
        return None
    if not 0 <= rating <= 5:
        return None
    return rating


def format_rating(rating: float | None) -> str:
    if rating is None:
        return ""
    return f"{rating:g}"


def format_star_rating(value: str | float | None) -> str:
    """Render a rating as stars, e.g. "3.5" -> "★★★½"."""

    rating = value if isinstance(value, float | int) else parse_rating(value)
    if not rating:
        return ""
    full = int(rating)
    half = (rating % 1) >= 0.5
    return "★" * full + ("½" if half else "")


class FilmKey(NamedTuple):
    title: str
    year: str


@dataclass(eq=True)
class FilmRecord(Mapping[str, str]):
    """One row of an export file.

    Behaves as a read-only mapping of column name to value. Well-known fields
    are exposed as properties that try the alternate column spellings used
    across export files (e.g. "Name" in diary.csv, "Film Name" in some lists).
    """

    fields: dict[str, str] = field(default_factory=dict)
    live: bool = False

    def __getitem__(self, key: str) -> str:
        return self.fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def first(self, names: Iterable[str]) -> str:
        for name in names:
            value = self.fields.get(name)
            if value:
                return value
        return ""

    @property
    def name(self) -> str:
        return self.first(NAME_FIELDS)

    @property
    def year(self) -> str:
        return self.first(YEAR_FIELDS)

    @property
    def date(self) -> str:
        return self.first(DATE_FIELDS)

    @property
    def watch_date(self) -> date | None:
        return parse_iso_date(self.date)

    @property
    def rating(self) -> float | None:
        return parse_rating(self.fields.get("Rating"))

    @property
    def uri(self) -> str:
        return self.first(URI_FIELDS)

    @property
    def position(self) -> str:
        return self.fields.get("Position", "")

    @property
    def notes(self) -> str:
        return self.first(NOTES_FIELDS)

    @property
    def review(self) -> str:
        return self.fields.get("Review", "")

    @property
    def is_rewatch(self) -> bool:
        return self.fields.get("Rewatch", "").strip().lower() == "yes"

    @property
    def key(self) -> FilmKey:
        return FilmKey(normalise_title(self.name), self.year.strip())

    def matches(self, other: FilmRecord) -> bool:
        """True when both records describe the same film.

        An exact URI match wins; otherwise fall back to title + year.
        """

        if self.uri and self.uri == other.uri:
            return True
        return bool(self.key.title) and self.key == other.key

    def as_live(self) -> FilmRecord:
        return replace(self, fields=dict(self.fields), live=True)

    def merged_with(self, other: FilmRecord) -> FilmRecord:
        return FilmRecord(fields={**self.fields, **other.fields}, live=self.live or other.live)


def to_records(rows: Iterable[Mapping[str, str]]) -> list[FilmRecord]:
    return [FilmRecord(fields=dict(row)) for row in rows]


def find_first(records: Iterable[FilmRecord], target: FilmRecord) -> FilmRecord | None:
    for record in records:
        if record.matches(target):
            return record
    return None


def find_by_uri(records: Iterable[FilmRecord], uri: str) -> FilmRecord | None:
    if not uri:
        return None
    for record in records:
        if record.uri == uri:
            return record
    return None


@dataclass(frozen=True)
class Profile:
    fields: dict[str, str] = field(default_factory=dict)

    @property
    def username(self) -> str:
        return self.fields.get("Username", "").strip()

    @property
    def favorite_film_uris(self) -> list[str]:
        raw = self.fields.get("Favorite Films", "")
        return [u.strip() for u in raw.split(", ") if u.strip()]


@dataclass(frozen=True)
class NamedList:
    filename: str
    metadata: dict[str, str] = field(default_factory=dict)
    items: list[FilmRecord] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.metadata.get("Name") or PurePosixPath(self.filename).stem

    @property
    def description(self) -> str:
        return self.metadata.get("Description", "")
