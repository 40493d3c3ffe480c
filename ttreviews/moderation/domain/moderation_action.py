from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from ttreviews.moderation.domain.item_kind import ItemKind


class ActionVerb(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ModerationAction:
    """
    Append-only record of a single moderation decision.
    """
    id: UUID
    item_id: str
    item_kind: ItemKind
    moderator_id: str
    action: ActionVerb
    timestamp: datetime
    reason: Optional[str] = None
