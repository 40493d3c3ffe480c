import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterator, List, Optional
from uuid import uuid4

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ttreviews.moderation.domain.exceptions import StorageError
from ttreviews.moderation.domain.item_kind import ItemKind, ItemStatus
from ttreviews.moderation.domain.moderatable_item import (
    MERGEABLE_PLAYER_FIELDS,
    EquipmentSubmission,
    ModeratableItem,
    PlayerEdit,
    Review,
)
from ttreviews.moderation.interfaces.submission_store import SubmissionStore, UnitOfWork

TABLES: Dict[ItemKind, str] = {
    ItemKind.REVIEW: "equipment_reviews",
    ItemKind.PLAYER_EDIT: "player_edits",
    ItemKind.EQUIPMENT_SUBMISSION: "equipment_submissions",
}

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS equipment_reviews (
        id TEXT PRIMARY KEY,
        equipment_id TEXT NOT NULL,
        submitter_id TEXT NOT NULL,
        status TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        first_moderator_id TEXT,
        moderator_id TEXT,
        moderator_notes TEXT,
        published_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS player_edits (
        id TEXT PRIMARY KEY,
        player_id TEXT NOT NULL,
        submitter_id TEXT NOT NULL,
        status TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        moderator_id TEXT,
        moderator_notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS equipment_submissions (
        id TEXT PRIMARY KEY,
        submitter_id TEXT NOT NULL,
        status TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        moderator_id TEXT,
        moderator_notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT UNIQUE,
        highest_rating TEXT,
        active_years TEXT,
        active BOOLEAN NOT NULL DEFAULT TRUE,
        playing_style TEXT,
        birth_country TEXT,
        represents TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS equipment (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        manufacturer TEXT,
        category TEXT,
        subcategory TEXT,
        specifications TEXT NOT NULL DEFAULT '{}',
        created_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_equipment_reviews_status ON equipment_reviews (status, created_at)",
    "CREATE INDEX IF NOT EXISTS ix_player_edits_status ON player_edits (status, created_at)",
    "CREATE INDEX IF NOT EXISTS ix_equipment_submissions_status ON equipment_submissions (status, created_at)",
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _row_to_item(kind: ItemKind, row) -> ModeratableItem:
    common = {
        "id": row.id,
        "submitter_id": row.submitter_id,
        "status": ItemStatus(row.status),
        "payload": json.loads(row.payload or "{}"),
        "moderator_id": row.moderator_id,
        "moderator_notes": row.moderator_notes,
        "created_at": _parse_ts(row.created_at),
        "updated_at": _parse_ts(row.updated_at),
    }
    if kind is ItemKind.REVIEW:
        return Review(
            equipment_id=row.equipment_id,
            first_moderator_id=row.first_moderator_id,
            published_at=_parse_ts(row.published_at),
            **common,
        )
    if kind is ItemKind.PLAYER_EDIT:
        return PlayerEdit(player_id=row.player_id, **common)
    return EquipmentSubmission(**common)


class _SqlUnitOfWork(UnitOfWork):
    def __init__(self, conn: Connection):
        self.conn = conn

    def _execute(self, statement: str, params: Dict[str, Any]):
        try:
            return self.conn.execute(text(statement), params)
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

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
        if not expected:
            return False
        params: Dict[str, Any] = {"id": item_id, "new_status": new_status.value, "at": _ts(at)}
        assignments = ["status=:new_status", "updated_at=:at"]
        if moderator_id is not None:
            assignments.append("moderator_id=:moderator_id")
            params["moderator_id"] = moderator_id
        if moderator_notes is not None:
            assignments.append("moderator_notes=:moderator_notes")
            params["moderator_notes"] = moderator_notes
        if first_moderator_id is not None:
            assignments.append("first_moderator_id=:first_moderator_id")
            params["first_moderator_id"] = first_moderator_id

        placeholders = []
        for index, status in enumerate(sorted(expected, key=lambda s: s.value)):
            params[f"expected_{index}"] = status.value
            placeholders.append(f":expected_{index}")
        predicate = f"id=:id AND status IN ({', '.join(placeholders)})"
        if unless_first_moderator is not None:
            predicate += " AND (first_moderator_id IS NULL OR first_moderator_id <> :unless_first)"
            params["unless_first"] = unless_first_moderator

        result = self._execute(
            f"UPDATE {TABLES[kind]} SET {', '.join(assignments)} WHERE {predicate}",
            params,
        )
        return result.rowcount == 1

    def publish_review(self, review_id: str, at: datetime) -> None:
        result = self._execute(
            "UPDATE equipment_reviews SET published_at=:at WHERE id=:id",
            {"id": review_id, "at": _ts(at)},
        )
        if result.rowcount != 1:
            raise StorageError(f"Review {review_id} not found")

    def merge_player_fields(self, player_id: str, fields: Dict[str, Any], at: datetime) -> None:
        unknown = set(fields) - MERGEABLE_PLAYER_FIELDS
        if unknown:
            raise StorageError(f"Unknown player fields: {sorted(unknown)}")
        params: Dict[str, Any] = {"id": player_id, "at": _ts(at)}
        assignments = ["updated_at=:at"]
        for column in sorted(fields):
            assignments.append(f"{column}=:{column}")
            params[column] = fields[column]
        result = self._execute(
            f"UPDATE players SET {', '.join(assignments)} WHERE id=:id",
            params,
        )
        if result.rowcount != 1:
            raise StorageError(f"Player {player_id} not found")

    def create_equipment(self, record: Dict[str, Any]) -> str:
        equipment_id = str(record.get("id") or uuid4())
        self._execute(
            """
            INSERT INTO equipment (id, name, slug, manufacturer, category, subcategory, specifications, created_at)
            VALUES (:id, :name, :slug, :manufacturer, :category, :subcategory, :specifications, :created_at)
            """,
            {
                "id": equipment_id,
                "name": record["name"],
                "slug": record["slug"],
                "manufacturer": record.get("manufacturer"),
                "category": record.get("category"),
                "subcategory": record.get("subcategory"),
                "specifications": json.dumps(record.get("specifications") or {}, default=str),
                "created_at": _ts(record.get("created_at")),
            },
        )
        return equipment_id


class SqlSubmissionStore(SubmissionStore):
    """
    SQLAlchemy Core store. Statements are kept portable so the same store
    runs against PostgreSQL in production and SQLite in tests.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.ensure_schema()

    @classmethod
    def from_dsn(cls, dsn: str) -> "SqlSubmissionStore":
        engine = create_engine(dsn, pool_pre_ping=True, future=True)
        return cls(engine)

    def ensure_schema(self) -> None:
        with self.engine.begin() as conn:
            for statement in _SCHEMA:
                conn.execute(text(statement))

    # --- seeding (submission side of the site) ---

    def add_item(self, item: ModeratableItem) -> None:
        params: Dict[str, Any] = {
            "id": item.id,
            "submitter_id": item.submitter_id,
            "status": item.status.value,
            "payload": json.dumps(item.payload, default=str),
            "moderator_id": item.moderator_id,
            "moderator_notes": item.moderator_notes,
            "created_at": _ts(item.created_at),
            "updated_at": _ts(item.updated_at),
        }
        if isinstance(item, Review):
            params.update(
                equipment_id=item.equipment_id,
                first_moderator_id=item.first_moderator_id,
                published_at=_ts(item.published_at),
            )
        elif isinstance(item, PlayerEdit):
            params["player_id"] = item.player_id
        columns = ", ".join(params)
        values = ", ".join(f":{column}" for column in params)
        with self.engine.begin() as conn:
            conn.execute(text(f"INSERT INTO {TABLES[item.kind]} ({columns}) VALUES ({values})"), params)

    def add_player(self, player_id: str, **fields: Any) -> None:
        params = dict(fields, id=player_id)
        columns = ", ".join(params)
        values = ", ".join(f":{column}" for column in params)
        with self.engine.begin() as conn:
            conn.execute(text(f"INSERT INTO players ({columns}) VALUES ({values})"), params)

    def get_player(self, player_id: str) -> Optional[Dict[str, Any]]:
        with self.engine.begin() as conn:
            row = conn.execute(
                text("SELECT * FROM players WHERE id=:id"), {"id": player_id}
            ).mappings().first()
            return dict(row) if row else None

    def list_equipment(self) -> List[Dict[str, Any]]:
        with self.engine.begin() as conn:
            rows = conn.execute(text("SELECT * FROM equipment ORDER BY name ASC")).mappings().all()
            return [dict(row) for row in rows]

    # --- SubmissionStore ---

    def get_item(self, kind: ItemKind, item_id: str) -> Optional[ModeratableItem]:
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    text(f"SELECT * FROM {TABLES[kind]} WHERE id=:id"),
                    {"id": item_id},
                ).first()
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        return _row_to_item(kind, row) if row else None

    def list_by_status(
        self, kind: ItemKind, status: ItemStatus, limit: int = 50, offset: int = 0
    ) -> List[ModeratableItem]:
        if limit <= 0:
            return []
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(
                    text(
                        f"""
                        SELECT * FROM {TABLES[kind]}
                        WHERE status=:status
                        ORDER BY created_at ASC
                        LIMIT :limit OFFSET :offset
                        """
                    ),
                    {"status": status.value, "limit": limit, "offset": max(offset, 0)},
                ).fetchall()
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        return [_row_to_item(kind, row) for row in rows]

    def count_by_status(self, kind: ItemKind, status: ItemStatus) -> Optional[int]:
        try:
            with self.engine.begin() as conn:
                return conn.execute(
                    text(f"SELECT COUNT(*) FROM {TABLES[kind]} WHERE status=:status"),
                    {"status": status.value},
                ).scalar()
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        try:
            with self.engine.begin() as conn:
                yield _SqlUnitOfWork(conn)
        except SQLAlchemyError as exc:
            raise StorageError(f"Transaction failed: {exc}") from exc
