from __future__ import annotations

import logging
import os

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from letterboxd_viewer.api.routes import router
from letterboxd_viewer.core.enrichment import EnrichmentNotifier, MetadataEnrichmentClient
from letterboxd_viewer.core.export_repository import ExportRepository
from letterboxd_viewer.core.feed import ActivityFeedClient
from letterboxd_viewer.core.preferences import PreferenceStore
from letterboxd_viewer.core.reconciler import MergeOptions
from letterboxd_viewer.core.settings import Settings, load_settings
from letterboxd_viewer.core.viewer import DashboardSession

logging.basicConfig(level=os.environ.get("LETTERBOXD_VIEWER_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def _parse_csv_env(name: str) -> list[str]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return []

    # Support both comma-separated values and newline-separated values (common in PaaS).
    parts = [p.strip() for p in raw.replace("\n", ",").split(",")]
    return [p for p in parts if p]


def create_session(
    settings: Settings, *, http_client: httpx.AsyncClient | None = None
) -> DashboardSession:
    preferences = PreferenceStore(settings.preferences_db)
    notifier = EnrichmentNotifier(
        interval_s=settings.notify_interval_s,
        is_dismissed=preferences.enrichment_errors_dismissed,
    )
    return DashboardSession(
        ExportRepository(settings.export_dir),
        MetadataEnrichmentClient(settings, client=http_client, notifier=notifier),
        ActivityFeedClient(settings, client=http_client),
        preferences=preferences,
        merge_options=MergeOptions(max_live_entries=settings.max_live_entries),
    )


def create_app(
    settings: Settings | None = None, *, http_client: httpx.AsyncClient | None = None
) -> FastAPI:
    app = FastAPI(title="Letterboxd Export Viewer", version="0.1.0")

    settings = settings or load_settings()
    app.state.settings = settings
    app.state.session = create_session(settings, http_client=http_client)
    app.state.notices = []
    app.state.session.enrichment.notifier.subscribe(app.state.notices.append)

    # CORS is opt-in; the renderer is usually served from the same origin.
    cors_origins = _parse_csv_env("LETTERBOXD_VIEWER_CORS_ORIGINS")
    if cors_origins:
        allow_all = "*" in cors_origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if allow_all else cors_origins,
            allow_credentials=False,
            allow_methods=["*"] if allow_all else ["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    # Ensure unexpected errors don't leak internals.
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(_request, exc: Exception):
        logger.exception("Unhandled error", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(router)
    return app


app = create_app()
