import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from sqlalchemy import create_engine

from ttreviews.admin.inbound.moderation_router import build_moderation_router
from ttreviews.admin.security.admin_session import AdminSessionVerifier
from ttreviews.admin.services.admin_moderation_gateway import AdminModerationGateway
from ttreviews.catalog.catalog_search import CatalogSearch, SqlCatalogSearch
from ttreviews.config.settings import Settings
from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.discord.inbound.discord_router import build_discord_router
from ttreviews.discord.services.interaction_gateway import DiscordInteractionGateway
from ttreviews.discord.services.webhook_notifier import DiscordWebhookNotifier
from ttreviews.moderation.services.moderation_engine import ModerationEngine
from ttreviews.moderation.store.action_log_store import SqlActionLog
from ttreviews.moderation.store.sql_submission_store import SqlSubmissionStore
from ttreviews.observability.structured_event_logger import StructuredEventLogger

logger = logging.getLogger(__name__)


def build_app(
    engine: ModerationEngine,
    catalog: CatalogSearch,
    discord_config: DiscordConfig,
    admin_verifier: AdminSessionVerifier,
    notifier: Optional[DiscordWebhookNotifier] = None,
    events: Optional[StructuredEventLogger] = None,
) -> FastAPI:
    events = events or StructuredEventLogger()
    gateway = DiscordInteractionGateway(engine, catalog, discord_config, events=events)
    notifier = notifier or DiscordWebhookNotifier(discord_config, events=events)

    app = FastAPI(title="ttreviews moderation")
    app.include_router(build_discord_router(gateway, notifier, admin_verifier, events=events))
    app.include_router(build_moderation_router(AdminModerationGateway(engine), admin_verifier, events=events))

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Production wiring: SQL-backed stores on DATABASE_URL.
    """
    settings = settings or Settings()
    db = create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)
    events = StructuredEventLogger()
    engine = ModerationEngine(
        store=SqlSubmissionStore(db),
        action_log=SqlActionLog(db),
        events=events,
        stats_max_workers=settings.STATS_MAX_WORKERS,
    )
    return build_app(
        engine=engine,
        catalog=SqlCatalogSearch(db),
        discord_config=DiscordConfig.from_settings(settings),
        admin_verifier=AdminSessionVerifier.from_settings(settings),
        events=events,
    )


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    settings = Settings()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = create_app(settings)
    uvicorn.run(app, host=host or settings.HTTP_HOST, port=port or settings.HTTP_PORT)


if __name__ == "__main__":
    run_server()
