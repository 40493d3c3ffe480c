from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ttreviews.moderation.domain.exceptions import StorageError


@dataclass(frozen=True)
class EquipmentSummary:
    name: str
    slug: str
    manufacturer: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class PlayerSummary:
    name: str
    slug: str
    active: bool = True


class CatalogSearch(ABC):
    """
    Case-insensitive substring lookup over the public catalog, used by the
    chat search commands. Results are ordered by name.
    """

    @abstractmethod
    def search_equipment(self, query: str) -> List[EquipmentSummary]:
        pass

    @abstractmethod
    def search_players(self, query: str) -> List[PlayerSummary]:
        pass


class InMemoryCatalogSearch(CatalogSearch):
    def __init__(self):
        self._equipment: List[EquipmentSummary] = []
        self._players: List[PlayerSummary] = []
        self._lock = Lock()

    def add_equipment(self, summary: EquipmentSummary) -> None:
        with self._lock:
            self._equipment.append(summary)

    def add_player(self, summary: PlayerSummary) -> None:
        with self._lock:
            self._players.append(summary)

    def search_equipment(self, query: str) -> List[EquipmentSummary]:
        needle = (query or "").strip().lower()
        if not needle:
            return []
        with self._lock:
            hits = [e for e in self._equipment if needle in e.name.lower()]
        return sorted(hits, key=lambda e: e.name)

    def search_players(self, query: str) -> List[PlayerSummary]:
        needle = (query or "").strip().lower()
        if not needle:
            return []
        with self._lock:
            hits = [p for p in self._players if needle in p.name.lower()]
        return sorted(hits, key=lambda p: p.name)


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped.lower()}%"


class SqlCatalogSearch(CatalogSearch):
    """
    Reads the `equipment` and `players` tables maintained by the submission store.
    """

    def __init__(self, engine: Engine, limit: int = 50):
        self.engine = engine
        self.limit = limit

    def _query(self, statement: str, query: str) -> List[Dict]:
        needle = (query or "").strip()
        if not needle:
            return []
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(
                    text(statement),
                    {"pattern": _like_pattern(needle), "limit": self.limit},
                ).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        return [dict(row) for row in rows]

    def search_equipment(self, query: str) -> List[EquipmentSummary]:
        rows = self._query(
            """
            SELECT name, slug, manufacturer, category FROM equipment
            WHERE LOWER(name) LIKE :pattern ESCAPE '\\'
            ORDER BY name ASC
            LIMIT :limit
            """,
            query,
        )
        return [
            EquipmentSummary(
                name=row["name"],
                slug=row["slug"],
                manufacturer=row.get("manufacturer"),
                category=row.get("category"),
            )
            for row in rows
        ]

    def search_players(self, query: str) -> List[PlayerSummary]:
        rows = self._query(
            """
            SELECT name, slug, active FROM players
            WHERE LOWER(name) LIKE :pattern ESCAPE '\\'
            ORDER BY name ASC
            LIMIT :limit
            """,
            query,
        )
        return [
            PlayerSummary(name=row["name"], slug=row["slug"] or "", active=bool(row["active"]))
            for row in rows
        ]
