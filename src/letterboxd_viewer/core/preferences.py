from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from threading import Lock

DISMISS_ENRICHMENT_ERRORS = "dismiss_enrichment_errors"


def _live_key(profile_id: str) -> str:
    return f"live_enabled:{profile_id}"


class PreferenceStore:
    """SQLite-backed user preferences.

    Holds two flags:
      - live_enabled:<profile id>: live feed merging on/off per profile
      - dismiss_enrichment_errors: never show poster-offline notices again

    Values are stored as text ("1"/"0") so the table can grow new keys without
    a migration.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path).resolve()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = Lock()
        # check_same_thread=False because TestClient may access across threads.
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS preferences (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL,
              updated_at REAL NOT NULL
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM preferences WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO preferences(key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, time.time()),
            )
            self._conn.commit()

    def _get_flag(self, key: str) -> bool:
        return (self.get(key) or "").strip().lower() in {"1", "true", "yes", "on"}

    def _set_flag(self, key: str, enabled: bool) -> None:
        self.set(key, "1" if enabled else "0")

    def live_enabled(self, profile_id: str) -> bool:
        return self._get_flag(_live_key(profile_id))

    def set_live_enabled(self, profile_id: str, enabled: bool) -> None:
        self._set_flag(_live_key(profile_id), enabled)

    def enrichment_errors_dismissed(self) -> bool:
        return self._get_flag(DISMISS_ENRICHMENT_ERRORS)

    def dismiss_enrichment_errors(self, dismissed: bool = True) -> None:
        self._set_flag(DISMISS_ENRICHMENT_ERRORS, dismissed)
