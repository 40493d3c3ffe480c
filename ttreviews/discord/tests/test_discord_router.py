import json
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from nacl.signing import SigningKey

from ttreviews.admin.security.admin_session import AdminSessionVerifier
from ttreviews.app import build_app
from ttreviews.catalog.catalog_search import InMemoryCatalogSearch
from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.discord.services.webhook_notifier import DiscordWebhookNotifier
from ttreviews.discord.tests.test_signature_verifier import public_key_hex, sign
from ttreviews.discord.tests.test_webhook_notifier import FakeSession
from ttreviews.moderation.domain.item_kind import ItemStatus
from ttreviews.moderation.domain.moderatable_item import Review
from ttreviews.moderation.services.moderation_engine import ModerationEngine
from ttreviews.moderation.store.action_log_store import InMemoryActionLog
from ttreviews.moderation.store.in_memory_submission_store import InMemorySubmissionStore

T0 = datetime(2024, 7, 1, tzinfo=timezone.utc)
TIMESTAMP = "1719792000"


@pytest.fixture
def signing_key():
    return SigningKey.generate()


@pytest.fixture
def store():
    store = InMemorySubmissionStore()
    store.add_item(Review(
        id="r1", equipment_id="eq", submitter_id="u", status=ItemStatus.PENDING, created_at=T0, updated_at=T0,
    ))
    return store


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def verifier():
    return AdminSessionVerifier(secret="test-secret")


def make_client(store, verifier, session, public_key):
    config = DiscordConfig(public_key=public_key, webhook_url="https://discord.example/hook")
    app = build_app(
        engine=ModerationEngine(store=store, action_log=InMemoryActionLog()),
        catalog=InMemoryCatalogSearch(),
        discord_config=config,
        admin_verifier=verifier,
        notifier=DiscordWebhookNotifier(config, session=session),
    )
    return TestClient(app)


@pytest.fixture
def client(store, verifier, session, signing_key):
    return make_client(store, verifier, session, public_key_hex(signing_key))


def signed_post(client, signing_key, path, payload):
    body = json.dumps(payload).encode("utf-8")
    headers = {
        "X-Signature-Ed25519": sign(signing_key, TIMESTAMP, body),
        "X-Signature-Timestamp": TIMESTAMP,
        "Content-Type": "application/json",
    }
    return client.post(path, content=body, headers=headers)


def test_missing_signature_headers_are_rejected(client):
    response = client.post("/discord/interactions", json={"type": 1})

    assert response.status_code == 401


def test_invalid_signature_is_rejected(client, store):
    body = json.dumps({"type": 3, "data": {"custom_id": "approve_r1"}}).encode("utf-8")
    forged = sign(SigningKey.generate(), TIMESTAMP, body)

    response = client.post(
        "/discord/interactions",
        content=body,
        headers={"X-Signature-Ed25519": forged, "X-Signature-Timestamp": TIMESTAMP},
    )

    assert response.status_code == 401
    assert store.get_review("r1").status == ItemStatus.PENDING


def test_signed_ping_gets_pong(client, signing_key):
    response = signed_post(client, signing_key, "/discord/interactions", {"type": 1})

    assert response.status_code == 200
    assert response.json() == {"type": 1}


def test_signed_button_moves_review_forward(client, signing_key, store):
    payload = {
        "type": 3,
        "data": {"custom_id": "approve_r1"},
        "member": {"roles": [], "user": {"id": "42", "username": "umpire"}},
    }

    response = signed_post(client, signing_key, "/discord/interactions", payload)

    assert response.status_code == 200
    assert response.json()["type"] == 4
    assert store.get_review("r1").status == ItemStatus.AWAITING_SECOND_APPROVAL


def test_signed_button_on_notification_updates_it(client, signing_key, store):
    payload = {
        "type": 3,
        "data": {"custom_id": "reject_r1"},
        "member": {"roles": [], "user": {"id": "42", "username": "umpire"}},
        "message": {"id": "m-1", "embeds": [{"title": "🆕 New Review Submitted", "fields": []}]},
    }

    response = signed_post(client, signing_key, "/discord/interactions", payload)

    body = response.json()
    assert body["type"] == 7
    assert body["data"]["embeds"][0]["fields"][-1]["value"].startswith("❌ **Rejected**")
    assert all(button["disabled"] for button in body["data"]["components"][0]["components"])
    assert store.get_review("r1").status == ItemStatus.REJECTED


def test_signed_envelope_with_malformed_data_is_answered(client, signing_key):
    response = signed_post(client, signing_key, "/discord/interactions", {"type": 2, "data": "x"})

    assert response.status_code == 200
    assert response.json()["data"]["flags"] == 64


def test_unknown_interaction_type_is_bad_request(client, signing_key):
    response = signed_post(client, signing_key, "/discord/interactions", {"type": 7})

    assert response.status_code == 400


def test_placeholder_public_key_is_a_server_error(store, verifier, session):
    client = make_client(store, verifier, session, "your_discord_application_public_key_here")

    response = client.post(
        "/discord/interactions",
        content=b"{}",
        headers={"X-Signature-Ed25519": "00" * 64, "X-Signature-Timestamp": TIMESTAMP},
    )

    assert response.status_code == 500


def test_prefix_messages(client, signing_key):
    matched = signed_post(client, signing_key, "/discord/messages", {"content": "!equipment viscaria"})
    ignored = signed_post(client, signing_key, "/discord/messages", {"content": "nice rally"})

    assert matched.json() == {"content": '🔍 No equipment found for "viscaria"'}
    assert ignored.json() == {"message": "No action taken"}


def test_notify_requires_operator_token(client, verifier, session):
    viewer = verifier.issue_for_tests({"sub": "v", "roles": ["viewer"]})
    operator = verifier.issue_for_tests({"sub": "o", "roles": ["operator"]})
    body = {"type": "new_review", "data": {"id": "r1", "overall_rating": 8}}

    missing = client.post("/discord/notify", json=body)
    weak = client.post("/discord/notify", json=body, headers={"Authorization": f"Bearer {viewer}"})
    ok = client.post("/discord/notify", json=body, headers={"Authorization": f"Bearer {operator}"})
    unknown = client.post(
        "/discord/notify",
        json={"type": "review_approved", "data": {}},
        headers={"Authorization": f"Bearer {operator}"},
    )

    assert missing.status_code == 401
    assert weak.status_code == 403
    assert ok.status_code == 200
    assert ok.json() == {"success": True, "data": {"success": True}}
    assert len(session.calls) == 1
    assert unknown.status_code == 400
