import copy
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from threading import RLock
from typing import Any, Dict, FrozenSet, Iterator, List, Optional
from uuid import uuid4

from ttreviews.moderation.domain.exceptions import StorageError
from ttreviews.moderation.domain.item_kind import ItemKind, ItemStatus
from ttreviews.moderation.domain.moderatable_item import MERGEABLE_PLAYER_FIELDS, ModeratableItem
from ttreviews.moderation.interfaces.submission_store import SubmissionStore, UnitOfWork


class _InMemoryUnitOfWork(UnitOfWork):
    def __init__(self, store: "InMemorySubmissionStore"):
        self._store = store

    def compare_and_set_status(
        self,
        kind: ItemKind,
        item_id: str,
        expected: FrozenSet[ItemStatus],
        new_status: ItemStatus,
        at: datetime,
        moderator_id: Optional[str] = None,
        moderator_notes: Optional[str] = None,
        first_moderator_id: Optional[str] = None,
        unless_first_moderator: Optional[str] = None,
    ) -> bool:
        table = self._store._items[kind]
        item = table.get(item_id)
        if item is None or item.status not in expected:
            return False
        if (
            unless_first_moderator is not None
            and getattr(item, "first_moderator_id", None) == unless_first_moderator
        ):
            return False

        changes: Dict[str, Any] = {"status": new_status, "updated_at": at}
        if moderator_id is not None:
            changes["moderator_id"] = moderator_id
        if moderator_notes is not None:
            changes["moderator_notes"] = moderator_notes
        if first_moderator_id is not None:
            changes["first_moderator_id"] = first_moderator_id
        table[item_id] = replace(item, **changes)
        return True

    def publish_review(self, review_id: str, at: datetime) -> None:
        table = self._store._items[ItemKind.REVIEW]
        review = table.get(review_id)
        if review is None:
            raise StorageError(f"Review {review_id} not found")
        table[review_id] = replace(review, published_at=at)

    def merge_player_fields(self, player_id: str, fields: Dict[str, Any], at: datetime) -> None:
        player = self._store._players.get(player_id)
        if player is None:
            raise StorageError(f"Player {player_id} not found")
        unknown = set(fields) - MERGEABLE_PLAYER_FIELDS
        if unknown:
            raise StorageError(f"Unknown player fields: {sorted(unknown)}")
        player.update(fields)
        player["updated_at"] = at

    def create_equipment(self, record: Dict[str, Any]) -> str:
        equipment_id = str(record.get("id") or uuid4())
        if any(row["slug"] == record["slug"] for row in self._store._equipment.values()):
            raise StorageError(f"Equipment slug already exists: {record['slug']}")
        self._store._equipment[equipment_id] = dict(record, id=equipment_id)
        return equipment_id


class InMemorySubmissionStore(SubmissionStore):
    """
    Process-local store. A single re-entrant lock serialises units of work;
    a snapshot taken on entry is restored if the unit of work raises.
    """

    def __init__(self):
        self._lock = RLock()
        self._items: Dict[ItemKind, Dict[str, ModeratableItem]] = {kind: {} for kind in ItemKind}
        self._players: Dict[str, Dict[str, Any]] = {}
        self._equipment: Dict[str, Dict[str, Any]] = {}

    # --- seeding (submission side of the site) ---

    def add_item(self, item: ModeratableItem) -> None:
        with self._lock:
            self._items[item.kind][item.id] = item

    def add_player(self, player_id: str, **fields: Any) -> None:
        with self._lock:
            self._players[player_id] = dict(fields, id=player_id)

    def add_equipment(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self._equipment[str(record["id"])] = dict(record)

    def get_player(self, player_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            player = self._players.get(player_id)
            return dict(player) if player else None

    def list_players(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(p) for p in self._players.values()]

    def list_equipment(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._equipment.values()]

    # --- SubmissionStore ---

    def get_item(self, kind: ItemKind, item_id: str) -> Optional[ModeratableItem]:
        with self._lock:
            return self._items[kind].get(item_id)

    def list_by_status(
        self, kind: ItemKind, status: ItemStatus, limit: int = 50, offset: int = 0
    ) -> List[ModeratableItem]:
        with self._lock:
            rows = [item for item in self._items[kind].values() if item.status == status]
        rows.sort(key=lambda item: item.created_at)
        if limit <= 0:
            return []
        return rows[offset:offset + limit]

    def count_by_status(self, kind: ItemKind, status: ItemStatus) -> Optional[int]:
        with self._lock:
            return sum(1 for item in self._items[kind].values() if item.status == status)

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        with self._lock:
            snapshot = (
                {kind: dict(rows) for kind, rows in self._items.items()},
                copy.deepcopy(self._players),
                copy.deepcopy(self._equipment),
            )
            try:
                yield _InMemoryUnitOfWork(self)
            except BaseException:
                self._items, self._players, self._equipment = snapshot
                raise
