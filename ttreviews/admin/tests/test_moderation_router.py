from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from ttreviews.admin.security.admin_session import AdminSessionVerifier
from ttreviews.app import build_app
from ttreviews.catalog.catalog_search import InMemoryCatalogSearch
from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.moderation.domain.item_kind import ItemStatus
from ttreviews.moderation.domain.moderatable_item import EquipmentSubmission, PlayerEdit, Review
from ttreviews.moderation.services.moderation_engine import ModerationEngine
from ttreviews.moderation.store.action_log_store import InMemoryActionLog
from ttreviews.moderation.store.in_memory_submission_store import InMemorySubmissionStore

T0 = datetime(2024, 8, 1, tzinfo=timezone.utc)


@pytest.fixture
def store():
    store = InMemorySubmissionStore()
    for i in range(3):
        created = T0 + timedelta(minutes=i)
        store.add_item(Review(
            id=f"r{i}", equipment_id="eq", submitter_id="u", status=ItemStatus.PENDING,
            created_at=created, updated_at=created, payload={"overall_rating": 7 + i},
        ))
    store.add_player("p1", name="Dima Ovtcharov", highest_rating="2700")
    store.add_item(PlayerEdit(
        id="pe1", player_id="p1", submitter_id="u", status=ItemStatus.PENDING,
        created_at=T0, updated_at=T0, payload={"highest_rating": "2750"},
    ))
    store.add_item(EquipmentSubmission(
        id="es1", submitter_id="u", status=ItemStatus.PENDING,
        created_at=T0, updated_at=T0, payload={"name": "Xiom Vega Pro"},
    ))
    return store


@pytest.fixture
def verifier():
    return AdminSessionVerifier(secret="test-secret", admin_emails=["owner@example.com"])


@pytest.fixture
def client(store, verifier):
    app = build_app(
        engine=ModerationEngine(store=store, action_log=InMemoryActionLog()),
        catalog=InMemoryCatalogSearch(),
        discord_config=DiscordConfig(),
        admin_verifier=verifier,
    )
    return TestClient(app)


@pytest.fixture
def admin_headers(verifier):
    return {"Authorization": f"Bearer {verifier.issue_for_tests({'sub': 'admin-1', 'roles': ['admin']})}"}


def test_requires_admin_identity(client, verifier):
    operator = verifier.issue_for_tests({"sub": "op", "roles": ["operator"]})
    owner = verifier.issue_for_tests({"sub": "owner", "email": "owner@example.com"})

    assert client.get("/moderation/stats").status_code == 401
    assert client.get("/moderation/stats", headers={"Authorization": "Bearer nonsense"}).status_code == 401
    assert client.get("/moderation/stats", headers={"Authorization": f"Bearer {operator}"}).status_code == 403
    assert client.get("/moderation/stats", headers={"Authorization": f"Bearer {owner}"}).status_code == 200


def test_admin_review_approval_is_single_step(client, store, admin_headers):
    first = client.post("/moderation/reviews/r0/approve", headers=admin_headers)
    again = client.post("/moderation/reviews/r0/approve", headers=admin_headers)
    missing = client.post("/moderation/reviews/nope/approve", headers=admin_headers)

    assert first.status_code == 200
    assert first.json()["status"] == "fully_approved"
    review = store.get_review("r0")
    assert review.status == ItemStatus.APPROVED
    assert review.moderator_id == "admin-1"
    assert again.status_code == 400
    assert again.json()["detail"] == "Review already processed"
    assert missing.status_code == 404


def test_player_edit_and_equipment_approvals(client, store, admin_headers):
    edit = client.post("/moderation/player-edits/pe1/approve", headers=admin_headers)
    equipment = client.post("/moderation/equipment-submissions/es1/approve", headers=admin_headers)

    assert edit.status_code == 200
    assert store.get_player("p1")["highest_rating"] == "2750"
    assert equipment.status_code == 200
    assert equipment.json()["message"] == "Equipment submission approved successfully!"
    assert store.list_equipment()[0]["slug"] == "xiom-vega-pro"


def test_rejection_status_codes(client, store, admin_headers):
    rejected = client.post("/moderation/player-edits/pe1/reject", json={"reason": "no source"}, headers=admin_headers)
    again = client.post("/moderation/player-edits/pe1/reject", headers=admin_headers)
    missing = client.post("/moderation/reviews/nope/reject", headers=admin_headers)

    assert rejected.status_code == 200
    assert store.get_player_edit("pe1").moderator_notes == "no source"
    assert again.status_code == 409
    assert missing.status_code == 404


def test_pending_reviews_are_paginated(client, admin_headers):
    response = client.get("/moderation/reviews/pending?limit=2&offset=1", headers=admin_headers)

    data = response.json()["data"]
    assert [item["id"] for item in data["items"]] == ["r1", "r2"]
    assert data["total"] == 3
    assert data["items"][0]["status"] == "pending"
    assert data["items"][0]["kind"] == "review"


def test_stats_and_audit_trail(client, admin_headers):
    client.post("/moderation/reviews/r0/approve", headers=admin_headers)
    client.post("/moderation/reviews/r1/reject", json={"reason": "spam"}, headers=admin_headers)

    stats = client.get("/moderation/stats", headers=admin_headers).json()["data"]
    actions = client.get("/moderation/reviews/r1/actions", headers=admin_headers).json()["data"]

    assert stats["reviews"] == {
        "pending": 1,
        "approved": 1,
        "rejected": 1,
        "total": 3,
        "awaiting_second_approval": 0,
    }
    assert stats["equipment_submissions"]["pending"] == 1
    assert [(a["action"], a["reason"], a["moderator_id"]) for a in actions] == [("rejected", "spam", "admin-1")]


def test_recent_actions_across_queues(client, admin_headers):
    client.post("/moderation/player-edits/pe1/approve", headers=admin_headers)
    client.post("/moderation/equipment-submissions/es1/reject", json={"notes": "duplicate"}, headers=admin_headers)

    response = client.get("/moderation/actions?limit=5", headers=admin_headers)

    assert response.status_code == 200
    assert [(a["item_kind"], a["item_id"], a["action"]) for a in response.json()["data"]] == [
        ("player_edit", "pe1", "approved"),
        ("equipment_submission", "es1", "rejected"),
    ]
    assert client.get("/moderation/actions").status_code == 401


def test_get_item_and_unknown_queue(client, admin_headers):
    found = client.get("/moderation/equipment-submissions/es1", headers=admin_headers)
    missing = client.get("/moderation/equipment-submissions/none", headers=admin_headers)
    unknown = client.get("/moderation/comments/pending", headers=admin_headers)

    assert found.json()["data"]["payload"]["name"] == "Xiom Vega Pro"
    assert missing.status_code == 404
    assert unknown.status_code == 404
