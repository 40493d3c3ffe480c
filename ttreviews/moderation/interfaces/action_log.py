from abc import ABC, abstractmethod
from typing import List, Set

from ttreviews.moderation.domain.item_kind import ItemKind
from ttreviews.moderation.domain.moderation_action import ModerationAction


class ActionLog(ABC):
    """
    Append-only audit trail of moderation decisions.
    """

    @abstractmethod
    def append(self, action: ModerationAction) -> None:
        pass

    @abstractmethod
    def approvers(self, item_kind: ItemKind, item_id: str) -> Set[str]:
        """Moderator ids that recorded an `approved` action on the item."""
        pass

    @abstractmethod
    def list_for_item(self, item_kind: ItemKind, item_id: str) -> List[ModerationAction]:
        pass

    @abstractmethod
    def list_recent(self, limit: int = 200) -> List[ModerationAction]:
        pass
