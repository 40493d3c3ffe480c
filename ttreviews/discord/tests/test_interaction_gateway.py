from datetime import datetime, timezone

import pytest

from ttreviews.catalog.catalog_search import EquipmentSummary, InMemoryCatalogSearch, PlayerSummary
from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.discord.services.interaction_gateway import DiscordInteractionGateway
from ttreviews.moderation.domain.item_kind import ItemStatus
from ttreviews.moderation.domain.moderatable_item import EquipmentSubmission, PlayerEdit, Review
from ttreviews.moderation.services.moderation_engine import ModerationEngine
from ttreviews.moderation.store.action_log_store import InMemoryActionLog
from ttreviews.moderation.store.in_memory_submission_store import InMemorySubmissionStore

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)
MOD_ROLE = "900"


class ExplodingEngine:
    def approve_review(self, *args, **kwargs):
        raise RuntimeError("database unreachable")


class BrokenCatalog(InMemoryCatalogSearch):
    def search_equipment(self, query):
        raise RuntimeError("search backend down")


@pytest.fixture
def store():
    store = InMemorySubmissionStore()
    store.add_item(Review(
        id="r1", equipment_id="eq", submitter_id="u", status=ItemStatus.PENDING, created_at=T0, updated_at=T0,
    ))
    store.add_player("p1", name="Ma Long", highest_rating="2900")
    store.add_item(PlayerEdit(
        id="pe1", player_id="p1", submitter_id="u", status=ItemStatus.PENDING, created_at=T0, updated_at=T0,
        payload={"highest_rating": "3000"},
    ))
    store.add_item(EquipmentSubmission(
        id="es1", submitter_id="u", status=ItemStatus.PENDING, created_at=T0, updated_at=T0,
        payload={"name": "Nittaku Acoustic"},
    ))
    return store


@pytest.fixture
def catalog():
    catalog = InMemoryCatalogSearch()
    for i in range(7):
        catalog.add_equipment(EquipmentSummary(f"Butterfly Blade {i}", f"butterfly-blade-{i}", "Butterfly", "blade"))
    catalog.add_player(PlayerSummary("Ma Long", "ma-long", active=True))
    return catalog


@pytest.fixture
def config():
    return DiscordConfig(allowed_role_ids=(MOD_ROLE,), site_url="https://tt.example")


@pytest.fixture
def gateway(store, catalog, config):
    engine = ModerationEngine(store=store, action_log=InMemoryActionLog())
    return DiscordInteractionGateway(engine, catalog, config)


def slash(name, value=None, user_id="1", roles=(MOD_ROLE,)):
    data = {"name": name}
    if value is not None:
        data["options"] = [{"name": "query", "value": value}]
    return {
        "type": 2,
        "data": data,
        "guild_id": "g",
        "member": {"roles": list(roles), "user": {"id": user_id, "username": f"mod{user_id}"}},
    }


def click(custom_id, user_id="1", roles=(MOD_ROLE,), message=None):
    payload = {
        "type": 3,
        "data": {"custom_id": custom_id},
        "member": {"roles": list(roles), "user": {"id": user_id, "username": f"mod{user_id}"}},
    }
    if message is not None:
        payload["message"] = message
    return payload


def notification(title="🆕 New Review Submitted"):
    return {
        "id": "m-1",
        "embeds": [{
            "title": title,
            "color": 0x3498DB,
            "fields": [{"name": "Rating", "value": "8/10", "inline": True}],
        }],
    }


def buttons(reply):
    return reply["data"]["components"][0]["components"]


def test_ping_is_answered_with_pong(gateway):
    assert gateway.handle_interaction({"type": 1}).to_payload() == {"type": 1}


def test_unknown_interaction_type_is_not_handled(gateway):
    assert gateway.handle_interaction({"type": 5}) is None


def test_two_moderators_publish_review_through_slash_commands(gateway, store):
    first = gateway.handle_interaction(slash("approve", "r1", user_id="1")).to_payload()
    repeat = gateway.handle_interaction(slash("approve", "r1", user_id="1")).to_payload()
    second = gateway.handle_interaction(click("approve_r1", user_id="2")).to_payload()

    assert first["type"] == 4
    assert first["data"]["content"].startswith("👍 **First Approval by mod1**")
    assert "flags" not in first["data"]
    assert repeat["data"]["flags"] == 64
    assert "You have already approved this review" in repeat["data"]["content"]
    assert second["data"]["content"].startswith("✅ **Review Fully Approved by mod2**")
    assert store.get_review("r1").status == ItemStatus.APPROVED


def test_missing_role_is_denied_before_any_state_change(gateway, store):
    reply = gateway.handle_interaction(slash("approve", "r1", roles=("1",))).to_payload()

    assert reply["data"] == {"content": "❌ You do not have permission to use this command.", "flags": 64}
    assert store.get_review("r1").status == ItemStatus.PENDING


def test_buttons_are_permission_checked(gateway, store):
    reply = gateway.handle_interaction(click("reject_r1", roles=())).to_payload()

    assert reply["data"]["flags"] == 64
    assert store.get_review("r1").status == ItemStatus.PENDING


def test_player_edit_buttons(gateway, store):
    approved = gateway.handle_interaction(click("approve_player_edit_pe1")).to_payload()
    again = gateway.handle_interaction(click("reject_player_edit_pe1")).to_payload()

    assert approved["data"]["content"].startswith("✅ **Player Edit Approved by mod1**")
    assert store.get_player("p1")["highest_rating"] == "3000"
    assert again["data"]["flags"] == 64
    assert "Failed to reject player edit pe1" in again["data"]["content"]


def test_equipment_buttons(gateway, store):
    reply = gateway.handle_interaction(click("approve_equipment_es1")).to_payload()

    assert reply["data"]["content"].startswith("✅ **Equipment Approved by mod1**")
    assert [row["slug"] for row in store.list_equipment()] == ["nittaku-acoustic"]


def test_review_rejection_is_visible(gateway, store):
    reply = gateway.handle_interaction(slash("reject", "r1")).to_payload()

    assert reply["data"]["content"].startswith("❌ **Review Rejected by mod1**")
    assert "flags" not in reply["data"]
    assert store.get_review("r1").status == ItemStatus.REJECTED


def test_unknown_command_and_component(gateway):
    command = gateway.handle_interaction(slash("ban", "x")).to_payload()
    component = gateway.handle_interaction(click("publish_r1")).to_payload()

    assert command["data"] == {"content": "❌ Unknown command.", "flags": 64}
    assert component["data"] == {"content": "❌ Unknown interaction.", "flags": 64}


def test_moderation_requires_identifiable_user(gateway, store):
    payload = {"type": 3, "data": {"custom_id": "approve_r1"}, "member": {"roles": [MOD_ROLE]}}

    reply = gateway.handle_interaction(payload).to_payload()

    assert reply["data"]["flags"] == 64
    assert store.get_review("r1").status == ItemStatus.PENDING


def test_slash_approve_without_id(gateway):
    reply = gateway.handle_interaction(slash("approve")).to_payload()

    assert reply["data"] == {"content": "❌ Please provide a review ID.", "flags": 64}


def test_equipment_search_lists_top_five(gateway):
    reply = gateway.handle_interaction(slash("equipment-search", "butterfly")).to_payload()
    content = reply["data"]["content"]

    assert content.startswith('🏓 **Equipment Search Results for "butterfly"**')
    assert content.count("https://tt.example/equipment/") == 5
    assert content.endswith("*Showing top 5 of 7 results*")


def test_search_usage_hint_and_empty_results(gateway):
    usage = gateway.handle_interaction(slash("player", "  ")).to_payload()
    empty = gateway.handle_interaction(slash("player", "waldner")).to_payload()

    assert usage["data"]["flags"] == 64
    assert "/player query:" in usage["data"]["content"]
    assert empty["data"]["content"] == '🔍 No players found for "waldner"'


def test_prefix_commands(gateway):
    reply = gateway.handle_prefix_message({"content": "!player ma", "member": {"roles": [MOD_ROLE]}})
    denied = gateway.handle_prefix_message({"content": "!player ma", "member": {"roles": []}})

    assert "https://tt.example/players/ma-long" in reply.to_message()["content"]
    assert "Status: Active" in reply.to_message()["content"]
    assert denied.to_message() == {"content": "❌ You do not have permission to use this command."}
    assert gateway.handle_prefix_message({"content": "good game"}) is None


def test_search_failure_is_reported(store, config):
    engine = ModerationEngine(store=store, action_log=InMemoryActionLog())
    gateway = DiscordInteractionGateway(engine, BrokenCatalog(), config)

    reply = gateway.handle_interaction(slash("equipment", "viscaria")).to_payload()

    assert reply["data"] == {"content": "❌ Error searching equipment. Please try again later.", "flags": 64}


def test_unexpected_engine_failure_becomes_ephemeral_error(catalog, config):
    gateway = DiscordInteractionGateway(ExplodingEngine(), catalog, config)

    reply = gateway.handle_interaction(click("approve_r1")).to_payload()

    assert reply["data"] == {"content": "❌ **Error**: Failed to process approval", "flags": 64}


def test_open_deployment_allows_callers_without_roles(store, catalog):
    engine = ModerationEngine(store=store, action_log=InMemoryActionLog())
    gateway = DiscordInteractionGateway(engine, catalog, DiscordConfig())

    reply = gateway.handle_interaction(click("approve_r1", roles=())).to_payload()

    assert reply["data"]["content"].startswith("👍 **First Approval")


def test_first_approval_click_turns_notification_into_progress(gateway):
    reply = gateway.handle_interaction(click("approve_r1", message=notification())).to_payload()

    assert reply["type"] == 7
    assert reply["data"]["content"].startswith("👍 **First Approval by mod1**")
    assert "flags" not in reply["data"]
    (embed,) = reply["data"]["embeds"]
    assert embed["title"] == "🆕 New Review Submitted"
    assert embed["color"] == 0xF39C12
    assert embed["fields"][0] == {"name": "Rating", "value": "8/10", "inline": True}
    assert embed["fields"][-1]["value"] == "⏳ **Awaiting Second Approval** (1/2)\nModerated by: mod1"
    assert [(b["label"], b["custom_id"]) for b in buttons(reply)] == [
        ("Approve (1/2)", "approve_r1"),
        ("Reject", "reject_r1"),
    ]


def test_final_approval_click_disables_buttons(gateway, store):
    first = gateway.handle_interaction(click("approve_r1", user_id="1", message=notification())).to_payload()
    second = gateway.handle_interaction(
        click("approve_r1", user_id="2", message={"id": "m-1", "embeds": first["data"]["embeds"]})
    ).to_payload()

    assert second["type"] == 7
    statuses = [f for f in second["data"]["embeds"][0]["fields"] if f["name"] == "Status"]
    assert [f["value"] for f in statuses] == ["✅ **Approved**\nModerated by: mod2"]
    assert second["data"]["embeds"][0]["color"] == 0x2ECC71
    assert [(b["label"], b["disabled"]) for b in buttons(second)] == [("Approved", True), ("Reject", True)]
    assert store.get_review("r1").status == ItemStatus.APPROVED


def test_rejection_click_marks_notification_rejected(gateway):
    reply = gateway.handle_interaction(
        click("reject_equipment_es1", message=notification("⚙️ Equipment Submission"))
    ).to_payload()

    assert reply["type"] == 7
    assert reply["data"]["embeds"][0]["color"] == 0xE74C3C
    assert [(b["label"], b["style"], b["disabled"]) for b in buttons(reply)] == [
        ("Approve", 2, True),
        ("Rejected", 4, True),
    ]


def test_click_without_embed_gets_a_status_embed(gateway):
    reply = gateway.handle_interaction(click("approve_player_edit_pe1", message={"id": "m-2"})).to_payload()

    (embed,) = reply["data"]["embeds"]
    assert embed["title"] == "🏓 Player Edit"
    assert embed["fields"] == [{"name": "Status", "value": "✅ **Approved**\nModerated by: mod1", "inline": False}]


def test_failed_click_leaves_notification_untouched(gateway):
    gateway.handle_interaction(click("approve_r1", user_id="1", message=notification()))

    repeat = gateway.handle_interaction(click("approve_r1", user_id="1", message=notification())).to_payload()

    assert repeat["type"] == 4
    assert repeat["data"]["flags"] == 64
    assert "components" not in repeat["data"]
