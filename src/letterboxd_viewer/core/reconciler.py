from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from letterboxd_viewer.core.records import FilmRecord, normalise_title
from letterboxd_viewer.core.title_extraction import is_usable_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeOptions:
    max_live_entries: int = 50
    only_newer_than_latest: bool = True
    # False restricts duplicate detection to exact URI matches.
    strict_duplicate_check: bool = True


def duplicate_keys(record: FilmRecord, *, strict: bool = True) -> set[str]:
    """Keys under which two diary records are considered the same viewing.

    The bare-title key is deliberately loose: it also matches the same title
    from a different year when one side has no year.
    """

    keys: set[str] = set()
    if record.uri:
        keys.add(f"uri:{record.uri}")
    if not strict:
        return keys

    title = normalise_title(record.name)
    if not title:
        return keys
    keys.add(f"title:{title}")
    if record.year:
        keys.add(f"title-year:{title}|{record.year.strip()}")
    if record.date:
        keys.add(f"title-date:{title}|{record.date.strip()}")
    return keys


def latest_date(records: Iterable[FilmRecord]) -> date | None:
    dates = [d for d in (r.watch_date for r in records) if d is not None]
    return max(dates) if dates else None


def sort_newest_first(records: Sequence[FilmRecord]) -> list[FilmRecord]:
    # Stable: records with equal dates keep their relative order; undated last.
    dated = [r for r in records if r.watch_date is not None]
    undated = [r for r in records if r.watch_date is None]
    return sorted(dated, key=lambda r: r.watch_date, reverse=True) + undated


class ActivityReconciler:
    """Merge live feed entries into exported diary / watched history."""

    def __init__(self) -> None:
        self._last_accepted: list[FilmRecord] = []

    @property
    def last_accepted(self) -> list[FilmRecord]:
        return list(self._last_accepted)

    def merge(
        self,
        existing: Sequence[FilmRecord],
        live_entries: Sequence[FilmRecord],
        options: MergeOptions | None = None,
    ) -> list[FilmRecord]:
        opts = options or MergeOptions()
        self._last_accepted = []

        if not live_entries:
            return list(existing)

        candidates = list(live_entries)
        if opts.only_newer_than_latest:
            latest = latest_date(existing)
            if latest is not None:
                candidates = [
                    e for e in candidates if e.watch_date is not None and e.watch_date > latest
                ]

        if not candidates:
            logger.debug("No live entries newer than the exported diary")
            return list(existing)

        candidates = candidates[: max(opts.max_live_entries, 0)]

        seen: set[str] = set()
        for record in existing:
            # Records merged earlier always match on every key so a live
            # entry is never merged twice, even in URI-only mode.
            seen |= duplicate_keys(record, strict=opts.strict_duplicate_check or record.live)

        accepted: list[FilmRecord] = []
        for entry in candidates:
            keys = duplicate_keys(entry)
            if keys & seen:
                logger.debug("Skipping duplicate live entry %s", entry.name)
                continue
            accepted.append(entry.as_live())
            seen |= keys

        self._last_accepted = list(accepted)
        if not accepted:
            return list(existing)

        logger.info("Merged %d live diary entries", len(accepted))
        return sort_newest_first([*accepted, *existing])

    def merge_watched(self, existing_watched: Sequence[FilmRecord]) -> list[FilmRecord]:
        """Add films accepted by the preceding `merge` to the watched list."""

        accepted, self._last_accepted = self._last_accepted, []
        if not accepted:
            return list(existing_watched)

        known = {r.key for r in existing_watched if r.name}
        additions: list[FilmRecord] = []
        for entry in accepted:
            if not is_usable_title(entry.name):
                continue
            if entry.key in known:
                logger.debug("%s (%s) already in watched", entry.name, entry.year)
                continue
            known.add(entry.key)
            additions.append(
                FilmRecord(
                    fields={
                        "Date": entry.date,
                        "Name": entry.name,
                        "Year": entry.year,
                        "Letterboxd URI": entry.uri,
                    },
                    live=True,
                )
            )

        if not additions:
            return list(existing_watched)
        return sort_newest_first([*existing_watched, *additions])
