from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from letterboxd_viewer.core.records import (
    FilmRecord,
    NamedList,
    Profile,
    find_by_uri,
    find_first,
    to_records,
)
from letterboxd_viewer.core.tabular import parse_list_table, parse_table

logger = logging.getLogger(__name__)

MANIFEST_NAME = "users.json"

TABLE_FILES: tuple[str, ...] = (
    "diary",
    "watched",
    "ratings",
    "reviews",
    "watchlist",
    "comments",
)
LIKE_TYPES: tuple[str, ...] = ("films", "reviews", "lists")

# Used when a profile does not name its list files. Kept for exports set up
# before users.json supported a "lists" entry.
LEGACY_LIST_FILES: tuple[str, ...] = (
    "2019.csv",
    "lapflix-2023-watchlist.csv",
    "lapflix-movie-club.csv",
    "the-tarantino-movies-ranked.csv",
)


class ProfileConfig(BaseModel):
    """One entry of users.json."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: str = Field(default="", alias="displayName")
    folder: str = "."
    lists: list[str] | None = None
    letterboxd_username: str | None = Field(default=None, alias="letterboxdUsername")
    last_updated: str | None = Field(default=None, alias="lastUpdated")
    single_user_mode: bool = Field(default=False, alias="isSingleUserMode")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


def single_user_profile() -> ProfileConfig:
    return ProfileConfig(id="default", display_name="User", folder=".", single_user_mode=True)


@dataclass
class ExportBundle:
    profile_id: str
    display_name: str
    profile: Profile = field(default_factory=Profile)
    diary: list[FilmRecord] = field(default_factory=list)
    watched: list[FilmRecord] = field(default_factory=list)
    ratings: list[FilmRecord] = field(default_factory=list)
    reviews: list[FilmRecord] = field(default_factory=list)
    watchlist: list[FilmRecord] = field(default_factory=list)
    comments: list[FilmRecord] = field(default_factory=list)
    likes: dict[str, list[FilmRecord]] = field(
        default_factory=lambda: {kind: [] for kind in LIKE_TYPES}
    )
    lists: list[NamedList] = field(default_factory=list)
    favorite_films: list[FilmRecord] = field(default_factory=list)
    # As loaded, before any live feed merge.
    diary_snapshot: list[FilmRecord] = field(default_factory=list)
    watched_snapshot: list[FilmRecord] = field(default_factory=list)

    def take_snapshot(self) -> None:
        self.diary_snapshot = copy.deepcopy(self.diary)
        self.watched_snapshot = copy.deepcopy(self.watched)

    def restore_snapshot(self) -> None:
        self.diary = copy.deepcopy(self.diary_snapshot)
        self.watched = copy.deepcopy(self.watched_snapshot)

    @property
    def has_live_entries(self) -> bool:
        return any(r.live for r in self.diary)

    def find_by_uri(self, uri: str) -> FilmRecord | None:
        """Look a film up by URI: diary first (most detail), then watched, then ratings."""

        for records in (self.diary, self.watched, self.ratings):
            hit = find_by_uri(records, uri)
            if hit is not None:
                return hit
        return None

    def resolve_favorites(self) -> list[FilmRecord]:
        out: list[FilmRecord] = []
        for uri in self.profile.favorite_film_uris:
            film = self.find_by_uri(uri)
            if film is None:
                logger.debug("Favorite film %s not found in export", uri)
                continue
            out.append(film)
        return out

    def find_diary_entry(self, record: FilmRecord) -> FilmRecord | None:
        return find_first(self.diary, record)

    def all_films(self) -> list[FilmRecord]:
        """Watched films, each overlaid with its first matching diary entry."""

        out: list[FilmRecord] = []
        for film in self.watched:
            diary_entry = self.find_diary_entry(film)
            out.append(film.merged_with(diary_entry) if diary_entry else film)
        return out

    def reviews_with_text(self) -> list[FilmRecord]:
        return [r for r in self.reviews if r.review.strip()]

    def find_list(self, filename: str) -> NamedList | None:
        return next((lst for lst in self.lists if lst.filename == filename), None)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


class ExportRepository:
    """Loads the Letterboxd export of one profile at a time."""

    def __init__(
        self,
        export_dir: Path,
        *,
        reader: Callable[[Path], str] | None = None,
    ) -> None:
        self.export_dir = Path(export_dir)
        self._reader = reader or _read_text
        self._profiles: list[ProfileConfig] | None = None
        self.current_profile: ProfileConfig | None = None
        self.bundle: ExportBundle | None = None

    # -- profiles -----------------------------------------------------------

    def load_profiles(self) -> list[ProfileConfig]:
        """Read users.json; anything unusable means a single implicit profile."""

        path = self.export_dir / MANIFEST_NAME
        try:
            raw = json.loads(self._reader(path))
        except FileNotFoundError:
            logger.info("%s not found, using single user mode", path)
            raw = None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Could not read %s (%s), using single user mode", path, e)
            raw = None

        entries = raw.get("users") if isinstance(raw, dict) else raw
        profiles: list[ProfileConfig] = []
        if isinstance(entries, list):
            for entry in entries:
                try:
                    profiles.append(ProfileConfig.model_validate(entry))
                except ValidationError as e:
                    logger.warning("Skipping invalid user entry in %s: %s", path, e)

        if not profiles:
            if raw is not None:
                logger.warning("%s has no valid users, using single user mode", path)
            profiles = [single_user_profile()]

        self._profiles = profiles
        return profiles

    @property
    def profiles(self) -> list[ProfileConfig]:
        if self._profiles is None:
            return self.load_profiles()
        return self._profiles

    def get_profile(self, profile_id: str) -> ProfileConfig | None:
        return next((p for p in self.profiles if p.id == profile_id), None)

    def profile_dir(self, profile: ProfileConfig) -> Path:
        if profile.folder in ("", "."):
            return self.export_dir
        return self.export_dir / profile.folder

    async def select_profile(self, profile_id: str) -> ExportBundle | None:
        profile = self.get_profile(profile_id)
        if profile is None:
            logger.warning("User not found: %s", profile_id)
            return None

        bundle = await self.load_bundle(profile)
        self.current_profile = profile
        self.bundle = bundle
        return bundle

    # -- loading ------------------------------------------------------------

    async def _read(self, path: Path) -> str | None:
        try:
            return await asyncio.to_thread(self._reader, path)
        except FileNotFoundError:
            logger.warning("Could not load %s: file not found", path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Error loading %s: %s", path, e)
        return None

    async def _load_table(self, path: Path) -> list[FilmRecord]:
        text = await self._read(path)
        return to_records(parse_table(text)) if text else []

    async def _load_list(self, path: Path) -> NamedList | None:
        text = await self._read(path)
        if not text:
            return None
        table = parse_list_table(text)
        if table is None:
            logger.warning("List file %s is empty or malformed", path)
            return None
        return NamedList(filename=path.name, metadata=table.metadata, items=to_records(table.items))

    async def load_bundle(self, profile: ProfileConfig) -> ExportBundle:
        """Load every export file of a profile concurrently.

        A file that cannot be read leaves its category empty; nothing here
        aborts the whole load.
        """

        base = self.profile_dir(profile)
        list_files = profile.lists if profile.lists is not None else list(LEGACY_LIST_FILES)

        profile_task = self._load_table(base / "profile.csv")
        table_tasks = [self._load_table(base / f"{name}.csv") for name in TABLE_FILES]
        like_tasks = [self._load_table(base / "likes" / f"{kind}.csv") for kind in LIKE_TYPES]
        list_tasks = [self._load_list(base / "lists" / name) for name in list_files]

        results = await asyncio.gather(profile_task, *table_tasks, *like_tasks, *list_tasks)

        profile_rows = results[0]
        tables = dict(zip(TABLE_FILES, results[1 : 1 + len(TABLE_FILES)]))
        likes_start = 1 + len(TABLE_FILES)
        likes = dict(zip(LIKE_TYPES, results[likes_start : likes_start + len(LIKE_TYPES)]))
        lists = [lst for lst in results[likes_start + len(LIKE_TYPES) :] if lst is not None]

        exported = Profile(fields=dict(profile_rows[0].fields)) if profile_rows else Profile()
        bundle = ExportBundle(
            profile_id=profile.id,
            display_name=exported.username or profile.display_name or profile.id,
            profile=exported,
            likes=likes,
            lists=lists,
            **tables,
        )
        bundle.favorite_films = bundle.resolve_favorites()
        bundle.take_snapshot()

        logger.info(
            "Loaded export for %s: %d diary, %d watched, %d ratings, %d lists",
            profile.id,
            len(bundle.diary),
            len(bundle.watched),
            len(bundle.ratings),
            len(bundle.lists),
        )
        return bundle
