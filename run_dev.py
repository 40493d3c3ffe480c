import logging
from datetime import datetime, timezone
from uuid import uuid4

import uvicorn

from ttreviews.admin.security.admin_session import AdminSessionVerifier
from ttreviews.app import build_app
from ttreviews.catalog.catalog_search import EquipmentSummary, InMemoryCatalogSearch, PlayerSummary
from ttreviews.config.settings import Settings
from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.moderation.domain.item_kind import ItemStatus
from ttreviews.moderation.domain.moderatable_item import EquipmentSubmission, PlayerEdit, Review
from ttreviews.moderation.services.moderation_engine import ModerationEngine
from ttreviews.moderation.store.action_log_store import InMemoryActionLog
from ttreviews.moderation.store.in_memory_submission_store import InMemorySubmissionStore

DEV_SECRET = "dev-secret"


def seed(store: InMemorySubmissionStore, catalog: InMemoryCatalogSearch) -> None:
    now = datetime.now(timezone.utc)

    store.add_player("player-1", name="Ma Long", slug="ma-long", active=True, highest_rating="3000")
    catalog.add_player(PlayerSummary(name="Ma Long", slug="ma-long", active=True))
    catalog.add_equipment(
        EquipmentSummary(name="Butterfly Tenergy 05", slug="butterfly-tenergy-05", manufacturer="Butterfly", category="rubber")
    )

    store.add_item(Review(
        id="review-1",
        equipment_id="butterfly-tenergy-05",
        submitter_id="user-1",
        status=ItemStatus.PENDING,
        created_at=now,
        updated_at=now,
        payload={"overall_rating": 9, "review_text": "Fast and spinny."},
    ))
    store.add_item(PlayerEdit(
        id="edit-1",
        player_id="player-1",
        submitter_id="user-2",
        status=ItemStatus.PENDING,
        created_at=now,
        updated_at=now,
        payload={"highest_rating": "3100"},
    ))
    store.add_item(EquipmentSubmission(
        id="submission-1",
        submitter_id="user-3",
        status=ItemStatus.PENDING,
        created_at=now,
        updated_at=now,
        payload={"name": "DHS Hurricane 3", "manufacturer": "DHS", "category": "rubber"},
    ))


def main():
    logging.basicConfig(level=logging.INFO)
    print("Initializing DEV environment...")

    settings = Settings()

    # 1. Stores
    store = InMemorySubmissionStore()
    catalog = InMemoryCatalogSearch()
    seed(store, catalog)

    # 2. Engine
    engine = ModerationEngine(store=store, action_log=InMemoryActionLog())

    # 3. Admin session for local calls
    verifier = AdminSessionVerifier(secret=settings.ADMIN_JWT_SECRET or DEV_SECRET)
    token = verifier.issue_for_tests({"sub": f"dev-{uuid4().hex[:8]}", "roles": ["admin"]})
    print(f"Admin bearer token: {token}")

    # 4. App
    app = build_app(
        engine=engine,
        catalog=catalog,
        discord_config=DiscordConfig.from_settings(settings),
        admin_verifier=verifier,
    )
    uvicorn.run(app, host=settings.HTTP_HOST, port=settings.HTTP_PORT)


if __name__ == "__main__":
    main()
