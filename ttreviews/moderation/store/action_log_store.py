from datetime import datetime
from threading import Lock
from typing import List, Set
from uuid import UUID

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ttreviews.moderation.domain.exceptions import StorageError
from ttreviews.moderation.domain.item_kind import ItemKind
from ttreviews.moderation.domain.moderation_action import ActionVerb, ModerationAction
from ttreviews.moderation.interfaces.action_log import ActionLog


class InMemoryActionLog(ActionLog):
    def __init__(self):
        self._entries: List[ModerationAction] = []
        self._lock = Lock()

    def append(self, action: ModerationAction) -> None:
        with self._lock:
            self._entries.append(action)

    def approvers(self, item_kind: ItemKind, item_id: str) -> Set[str]:
        with self._lock:
            return {
                entry.moderator_id
                for entry in self._entries
                if entry.item_kind == item_kind
                and entry.item_id == item_id
                and entry.action == ActionVerb.APPROVED
            }

    def list_for_item(self, item_kind: ItemKind, item_id: str) -> List[ModerationAction]:
        with self._lock:
            return [e for e in self._entries if e.item_kind == item_kind and e.item_id == item_id]

    def list_recent(self, limit: int = 200) -> List[ModerationAction]:
        if limit <= 0:
            return []
        with self._lock:
            return self._entries[-limit:]


class SqlActionLog(ActionLog):
    def __init__(self, engine: Engine):
        self.engine = engine
        self.ensure_schema()

    @classmethod
    def from_dsn(cls, dsn: str) -> "SqlActionLog":
        engine = create_engine(dsn, pool_pre_ping=True, future=True)
        return cls(engine)

    def ensure_schema(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    CREATE TABLE IF NOT EXISTS moderation_actions (
                        id TEXT PRIMARY KEY,
                        item_kind TEXT NOT NULL,
                        item_id TEXT NOT NULL,
                        moderator_id TEXT NOT NULL,
                        action TEXT NOT NULL,
                        reason TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
            )
            conn.execute(
                text(
                    """
                    CREATE INDEX IF NOT EXISTS ix_moderation_actions_item
                    ON moderation_actions (item_kind, item_id, action)
                    """
                )
            )

    def append(self, action: ModerationAction) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO moderation_actions (id, item_kind, item_id, moderator_id, action, reason, created_at)
                        VALUES (:id, :item_kind, :item_id, :moderator_id, :action, :reason, :created_at)
                        """
                    ),
                    {
                        "id": str(action.id),
                        "item_kind": action.item_kind.value,
                        "item_id": action.item_id,
                        "moderator_id": action.moderator_id,
                        "action": action.action.value,
                        "reason": action.reason,
                        "created_at": action.timestamp.isoformat(),
                    },
                )
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    def approvers(self, item_kind: ItemKind, item_id: str) -> Set[str]:
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(
                    text(
                        """
                        SELECT DISTINCT moderator_id
                        FROM moderation_actions
                        WHERE item_kind=:item_kind AND item_id=:item_id AND action=:action
                        """
                    ),
                    {
                        "item_kind": item_kind.value,
                        "item_id": item_id,
                        "action": ActionVerb.APPROVED.value,
                    },
                ).fetchall()
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        return {row.moderator_id for row in rows}

    def list_for_item(self, item_kind: ItemKind, item_id: str) -> List[ModerationAction]:
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(
                    text(
                        """
                        SELECT * FROM moderation_actions
                        WHERE item_kind=:item_kind AND item_id=:item_id
                        ORDER BY created_at ASC
                        """
                    ),
                    {"item_kind": item_kind.value, "item_id": item_id},
                ).fetchall()
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        return [self._to_action(row) for row in rows]

    def list_recent(self, limit: int = 200) -> List[ModerationAction]:
        if limit <= 0:
            return []
        with self.engine.begin() as conn:
            rows = conn.execute(
                text("SELECT * FROM moderation_actions ORDER BY created_at DESC LIMIT :limit"),
                {"limit": limit},
            ).fetchall()
            return [self._to_action(row) for row in reversed(rows)]

    @staticmethod
    def _to_action(row) -> ModerationAction:
        return ModerationAction(
            id=UUID(row.id),
            item_id=row.item_id,
            item_kind=ItemKind(row.item_kind),
            moderator_id=row.moderator_id,
            action=ActionVerb(row.action),
            timestamp=datetime.fromisoformat(row.created_at),
            reason=row.reason,
        )
