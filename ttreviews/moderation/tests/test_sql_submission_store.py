from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ttreviews.core.clock import FrozenClock
from ttreviews.moderation.domain.item_kind import ItemKind, ItemStatus
from ttreviews.moderation.domain.moderatable_item import EquipmentSubmission, PlayerEdit, Review
from ttreviews.moderation.domain.moderation_result import ModerationStatus
from ttreviews.moderation.services.moderation_engine import ModerationEngine
from ttreviews.moderation.store.action_log_store import SqlActionLog
from ttreviews.moderation.store.sql_submission_store import SqlSubmissionStore

T0 = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    return create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


@pytest.fixture
def store(db):
    return SqlSubmissionStore(db)


@pytest.fixture
def engine(db, store):
    return ModerationEngine(store=store, action_log=SqlActionLog(db), clock=FrozenClock(T0))


def _review(review_id="r1", status=ItemStatus.PENDING, created_at=T0, **fields):
    return Review(
        id=review_id,
        equipment_id="eq-1",
        submitter_id="u-1",
        status=status,
        created_at=created_at,
        updated_at=created_at,
        payload={"overall_rating": 7, "category_ratings": {"spin": 9}},
        **fields,
    )


def test_item_round_trips_through_rows(store):
    store.add_item(_review(moderator_notes="first pass"))

    review = store.get_review("r1")

    assert review.status == ItemStatus.PENDING
    assert review.payload["category_ratings"] == {"spin": 9}
    assert review.created_at == T0
    assert review.moderator_notes == "first pass"
    assert store.get_review("missing") is None


def test_compare_and_set_only_applies_from_expected_status(store):
    store.add_item(_review(status=ItemStatus.APPROVED))
    store.add_item(_review("r2"))

    with store.unit_of_work() as uow:
        stale = uow.compare_and_set_status(
            ItemKind.REVIEW, "r1", frozenset({ItemStatus.PENDING}), ItemStatus.REJECTED, T0
        )
        fresh = uow.compare_and_set_status(
            ItemKind.REVIEW, "r2", frozenset({ItemStatus.PENDING}), ItemStatus.REJECTED, T0,
            moderator_id="mod-a", moderator_notes="off topic",
        )

    assert stale is False
    assert fresh is True
    assert store.get_review("r1").status == ItemStatus.APPROVED
    rejected = store.get_review("r2")
    assert rejected.status == ItemStatus.REJECTED
    assert rejected.moderator_id == "mod-a"
    assert rejected.moderator_notes == "off topic"


def test_compare_and_set_refuses_first_approver(store):
    store.add_item(_review(status=ItemStatus.AWAITING_SECOND_APPROVAL, first_moderator_id="mod-a"))
    expected = frozenset({ItemStatus.AWAITING_SECOND_APPROVAL})

    with store.unit_of_work() as uow:
        same = uow.compare_and_set_status(
            ItemKind.REVIEW, "r1", expected, ItemStatus.APPROVED, T0, unless_first_moderator="mod-a"
        )
        other = uow.compare_and_set_status(
            ItemKind.REVIEW, "r1", expected, ItemStatus.APPROVED, T0, unless_first_moderator="mod-b"
        )

    assert same is False
    assert other is True


def test_unit_of_work_rolls_back_on_error(store):
    store.add_item(_review())

    with pytest.raises(RuntimeError):
        with store.unit_of_work() as uow:
            uow.publish_review("r1", T0)
            raise RuntimeError("abort")

    assert store.get_review("r1").published_at is None


def test_list_and_count_by_status(store):
    store.add_item(_review("late", created_at=T0 + timedelta(hours=1)))
    store.add_item(_review("early"))
    store.add_item(_review("done", status=ItemStatus.APPROVED))

    pending = store.list_by_status(ItemKind.REVIEW, ItemStatus.PENDING)

    assert [r.id for r in pending] == ["early", "late"]
    assert store.list_by_status(ItemKind.REVIEW, ItemStatus.PENDING, limit=1, offset=1)[0].id == "late"
    assert store.count_by_status(ItemKind.REVIEW, ItemStatus.PENDING) == 2
    assert store.count_by_status(ItemKind.REVIEW, ItemStatus.REJECTED) == 0


def test_consensus_publishes_review(engine, store):
    store.add_item(_review())

    first = engine.approve_review("r1", "mod-a")
    repeat = engine.approve_review("r1", "mod-a")
    second = engine.approve_review("r1", "mod-b")

    assert [first.status, repeat.status, second.status] == [
        ModerationStatus.FIRST_APPROVAL,
        ModerationStatus.ALREADY_APPROVED,
        ModerationStatus.FULLY_APPROVED,
    ]
    review = store.get_review("r1")
    assert review.status == ItemStatus.APPROVED
    assert review.published_at == T0
    assert [a.moderator_id for a in engine.get_item_actions(ItemKind.REVIEW, "r1")] == ["mod-a", "mod-b"]


def test_player_edit_merges_into_players_table(engine, store):
    store.add_player("p1", name="Timo Boll", highest_rating="2700")
    store.add_item(PlayerEdit(
        id="pe1",
        player_id="p1",
        submitter_id="u-2",
        status=ItemStatus.PENDING,
        created_at=T0,
        updated_at=T0,
        payload={"highest_rating": "2750", "represents": "Germany"},
    ))

    result = engine.approve_player_edit("pe1", "mod-a")

    assert result.success
    player = store.get_player("p1")
    assert player["highest_rating"] == "2750"
    assert player["represents"] == "Germany"
    assert store.get_player_edit("pe1").status == ItemStatus.APPROVED


def test_duplicate_equipment_slug_keeps_second_submission_pending(engine, store):
    for submission_id, name in (("es1", "Yasaka Mark V"), ("es2", "yasaka mark-v")):
        store.add_item(EquipmentSubmission(
            id=submission_id,
            submitter_id="u-3",
            status=ItemStatus.PENDING,
            created_at=T0,
            updated_at=T0,
            payload={"name": name, "manufacturer": "Yasaka", "category": "rubber"},
        ))

    first = engine.approve_equipment_submission("es1", "mod-a")
    second = engine.approve_equipment_submission("es2", "mod-a")

    assert first.status == ModerationStatus.FULLY_APPROVED
    assert second.status == ModerationStatus.ERROR
    assert [row["slug"] for row in store.list_equipment()] == ["yasaka-mark-v"]
    assert store.get_equipment_submission("es2").status == ItemStatus.PENDING
