from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_FEED_RELAY = "https://api.allorigins.win/get?url={url}"
DEFAULT_FALLBACK_POSTER = "img/fallback/poster-{index}.jpg"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def default_data_dir() -> Path:
    return Path(os.environ.get("LETTERBOXD_VIEWER_DATA_DIR", "data")).resolve()


def default_export_dir() -> Path:
    return Path(os.environ.get("LETTERBOXD_VIEWER_EXPORT_DIR", "letterboxd-export")).resolve()


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from environment variables.

    Values are resolved once per process (see `load_settings`); tests build
    their own instance directly.
    """

    export_dir: Path
    data_dir: Path
    tmdb_api_key: str | None = None
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    feed_relay: str = DEFAULT_FEED_RELAY
    feed_ttl_s: float = 300.0
    http_timeout_s: float = 20.0
    fallback_poster_template: str = DEFAULT_FALLBACK_POSTER
    notify_interval_s: float = 30 * 60
    max_live_entries: int = 50

    @property
    def preferences_db(self) -> Path:
        override = os.environ.get("LETTERBOXD_VIEWER_PREFS_DB")
        if override:
            return Path(override).resolve()
        return self.data_dir / "preferences.sqlite3"


def load_settings() -> Settings:
    api_key = os.environ.get("TMDB_API_KEY") or os.environ.get("LETTERBOXD_VIEWER_TMDB_API_KEY")
    return Settings(
        export_dir=default_export_dir(),
        data_dir=default_data_dir(),
        tmdb_api_key=api_key,
        feed_relay=os.environ.get("LETTERBOXD_VIEWER_FEED_RELAY", DEFAULT_FEED_RELAY),
        feed_ttl_s=_env_float("LETTERBOXD_VIEWER_FEED_TTL_S", 300.0),
        http_timeout_s=_env_float("LETTERBOXD_VIEWER_HTTP_TIMEOUT_S", 20.0),
        fallback_poster_template=os.environ.get(
            "LETTERBOXD_VIEWER_FALLBACK_POSTER", DEFAULT_FALLBACK_POSTER
        ),
        notify_interval_s=_env_float("LETTERBOXD_VIEWER_NOTIFY_INTERVAL_S", 30 * 60),
        max_live_entries=_env_int("LETTERBOXD_VIEWER_MAX_LIVE_ENTRIES", 50),
    )
