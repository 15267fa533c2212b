"""Extract film title / year / rating from Letterboxd feed items.

Feed titles look like "alice Heat, 1995 - ★★★★½", but older relays and some
feed readers mangle the UTF-8 star glyphs, and not every item follows the
layout. Extraction is therefore a chain of strategies tried in order of
reliability; each one returns a `FilmInfo` or None.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Protocol

logger = logging.getLogger(__name__)

STAR = "★"
HALF = "½"

# UTF-8 decoded as Latin-1/cp1252. Longest patterns first.
_MOJIBAKE: tuple[tuple[str, str], ...] = (
    ("â˜…", STAR),
    ("â€™", "'"),
    ("â€œ", '"'),
    ("â€", '"'),
    ("ââÂ½", STAR * 2 + HALF),
    ("âÂ½", STAR + HALF),
    ("ââââ", STAR * 4),
    ("âââ", STAR * 3),
    ("ââ", STAR * 2),
    ("â½", HALF),
    ("Â½", HALF),
    ("â", STAR),
)

_RATED_RE = re.compile(rf"^\S+\s+(.+?),\s*(\d{{4}})\s*-\s*({STAR}*{HALF}?)$")
_UNRATED_RE = re.compile(r"^\S+\s+(.+?),\s*(\d{4}).*$")
_STARS_RE = re.compile(rf"[{STAR}{HALF}]+")
_YEAR_RE = re.compile(r"(\d{4})")
_SLUG_RE = re.compile(r"/film/([^/]+)/")
_JUNK_TITLE_RE = re.compile(rf"^[\s\-,{STAR}]+$")

_UNKNOWN_TITLES = {"unknown", "unknown film"}


@dataclass(frozen=True)
class FilmInfo:
    title: str | None = None
    year: int | None = None
    rating: float | None = None
    url: str = ""


@dataclass(frozen=True)
class ExtractionInput:
    """What a strategy gets to look at.

    `title` is already mojibake-normalised. `structured` holds the
    letterboxd: namespace fields keyed by local name (filmTitle, filmYear,
    memberRating, ...).
    """

    title: str
    link: str = ""
    description: str = ""
    structured: Mapping[str, str] = field(default_factory=dict)


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, item: ExtractionInput) -> FilmInfo | None: ...


def normalise_mojibake(text: str) -> str:
    out = text or ""
    for bad, good in _MOJIBAKE:
        out = out.replace(bad, good)
    return out.strip()


def stars_to_rating(stars: str) -> float | None:
    full = stars.count(STAR)
    half = HALF in stars
    if not full and not half:
        return None
    return full + (0.5 if half else 0.0)


def _rating_anywhere(text: str) -> float | None:
    runs = _STARS_RE.findall(text)
    if not runs:
        return None
    return stars_to_rating("".join(runs))


def is_usable_title(title: str | None) -> bool:
    if not title or not title.strip():
        return False
    if title.strip().isdigit():
        return False
    if len(title) < 2:
        return False
    if _JUNK_TITLE_RE.match(title):
        return False
    return title.strip().lower() not in _UNKNOWN_TITLES


def _to_int(value: str | None) -> int | None:
    try:
        return int((value or "").strip())
    except ValueError:
        return None


def _to_float(value: str | None) -> float | None:
    try:
        return float((value or "").strip())
    except ValueError:
        return None


class StructuredFieldsStrategy:
    name = "structured"

    def extract(self, item: ExtractionInput) -> FilmInfo | None:
        title = (item.structured.get("filmTitle") or "").strip()
        if not title:
            return None
        return FilmInfo(
            title=title,
            year=_to_int(item.structured.get("filmYear")),
            rating=_to_float(item.structured.get("memberRating")),
        )


class RatedTitleStrategy:
    name = "rated-title"

    def extract(self, item: ExtractionInput) -> FilmInfo | None:
        m = _RATED_RE.match(item.title)
        if not m:
            return None
        return FilmInfo(
            title=m.group(1).strip(),
            year=int(m.group(2)),
            rating=stars_to_rating(m.group(3)),
        )


class UnratedTitleStrategy:
    name = "unrated-title"

    def extract(self, item: ExtractionInput) -> FilmInfo | None:
        m = _UNRATED_RE.match(item.title)
        if not m:
            return None
        return FilmInfo(
            title=m.group(1).strip(),
            year=int(m.group(2)),
            rating=_rating_anywhere(item.title),
        )


class HeuristicStrategy:
    """Drop the leading username token and any trailing year/stars."""

    name = "heuristic"

    def extract(self, item: ExtractionInput) -> FilmInfo | None:
        words = item.title.split(" ")
        title: str | None = None
        if len(words) > 1:
            part = " ".join(words[1:])
            part = re.sub(r",\s*\d{4}.*$", "", part)
            part = re.sub(rf"[{STAR}\-,\s]+$", "", part).strip()
            title = part or None

        year_match = _YEAR_RE.search(item.title)
        info = FilmInfo(
            title=title,
            year=int(year_match.group(1)) if year_match else None,
            rating=_rating_anywhere(item.title),
        )
        if info == FilmInfo():
            return None
        return info


class SlugStrategy:
    """Last resort: turn /film/the-thing/ into "The Thing"."""

    name = "slug"

    def extract(self, item: ExtractionInput) -> FilmInfo | None:
        m = _SLUG_RE.search(item.link or "")
        if not m:
            return None
        title = re.sub(r"\b\w", lambda w: w.group(0).upper(), m.group(1).replace("-", " "))
        return FilmInfo(title=title)


DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    StructuredFieldsStrategy(),
    RatedTitleStrategy(),
    UnratedTitleStrategy(),
    HeuristicStrategy(),
    SlugStrategy(),
)


class TitleExtractor:
    """Run strategies in order until one produces a usable title.

    A strategy may return a partial result (year/rating but no usable title);
    those fields are kept and later strategies only fill in what is missing.
    """

    def __init__(self, strategies: Sequence[ExtractionStrategy] | None = None) -> None:
        self._strategies = tuple(strategies or DEFAULT_STRATEGIES)

    def extract(
        self,
        title: str,
        link: str = "",
        description: str = "",
        structured: Mapping[str, str] | None = None,
    ) -> FilmInfo:
        item = ExtractionInput(
            title=normalise_mojibake(title),
            link=link,
            description=description,
            structured=structured or {},
        )

        partial = FilmInfo()
        for strategy in self._strategies:
            info = strategy.extract(item)
            if info is None:
                continue
            if is_usable_title(info.title):
                partial = FilmInfo(
                    title=info.title,
                    year=info.year if info.year is not None else partial.year,
                    rating=info.rating if info.rating is not None else partial.rating,
                )
                logger.debug("Extracted %r via %s", info.title, strategy.name)
                break
            partial = replace(
                partial,
                year=partial.year if partial.year is not None else info.year,
                rating=partial.rating if partial.rating is not None else info.rating,
            )

        if not is_usable_title(partial.title):
            logger.debug("No usable title in feed item %r", title)
            partial = replace(partial, title=None)

        return replace(partial, url=link)
