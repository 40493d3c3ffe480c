from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

from ttreviews.moderation.domain.item_kind import ItemKind, ItemStatus


@dataclass(frozen=True)
class Review:
    """
    Community review of an equipment entry.
    Payload carries the rating data (overall_rating, category_ratings,
    review_text, reviewer_context).
    """
    id: str
    equipment_id: str
    submitter_id: str
    status: ItemStatus
    created_at: datetime
    updated_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)
    first_moderator_id: Optional[str] = None
    moderator_id: Optional[str] = None
    moderator_notes: Optional[str] = None
    published_at: Optional[datetime] = None

    @property
    def kind(self) -> ItemKind:
        return ItemKind.REVIEW


@dataclass(frozen=True)
class PlayerEdit:
    """
    Partial-field diff against an existing player record.
    """
    id: str
    player_id: str
    submitter_id: str
    status: ItemStatus
    created_at: datetime
    updated_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)
    moderator_id: Optional[str] = None
    moderator_notes: Optional[str] = None

    @property
    def kind(self) -> ItemKind:
        return ItemKind.PLAYER_EDIT


@dataclass(frozen=True)
class EquipmentSubmission:
    """
    Draft of a new catalog entry (name, manufacturer, category,
    subcategory, specifications).
    """
    id: str
    submitter_id: str
    status: ItemStatus
    created_at: datetime
    updated_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)
    moderator_id: Optional[str] = None
    moderator_notes: Optional[str] = None

    @property
    def kind(self) -> ItemKind:
        return ItemKind.EQUIPMENT_SUBMISSION

    @property
    def name(self) -> str:
        return str(self.payload.get("name") or "")


ModeratableItem = Union[Review, PlayerEdit, EquipmentSubmission]


# Player columns a player edit may overwrite.
MERGEABLE_PLAYER_FIELDS = frozenset({
    "name",
    "highest_rating",
    "active_years",
    "active",
    "playing_style",
    "birth_country",
    "represents",
})
