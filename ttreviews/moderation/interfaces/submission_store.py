from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from ttreviews.moderation.domain.item_kind import ItemKind, ItemStatus
from ttreviews.moderation.domain.moderatable_item import (
    EquipmentSubmission,
    ModeratableItem,
    PlayerEdit,
    Review,
)


class UnitOfWork(ABC):
    """
    Writes issued through a unit of work are committed together when the
    enclosing context exits cleanly and discarded if it raises.
    """

    @abstractmethod
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
        """
        Move the item to `new_status` only if its current status is in
        `expected` (and, for reviews, its first approver is not
        `unless_first_moderator`). Returns False when the predicate does not hold.
        """
        pass

    @abstractmethod
    def publish_review(self, review_id: str, at: datetime) -> None:
        pass

    @abstractmethod
    def merge_player_fields(self, player_id: str, fields: Dict[str, Any], at: datetime) -> None:
        pass

    @abstractmethod
    def create_equipment(self, record: Dict[str, Any]) -> str:
        pass


class SubmissionStore(ABC):
    """
    Narrow data-access contract over reviews, player edits and equipment
    submissions.
    """

    @abstractmethod
    def get_item(self, kind: ItemKind, item_id: str) -> Optional[ModeratableItem]:
        pass

    @abstractmethod
    def list_by_status(
        self, kind: ItemKind, status: ItemStatus, limit: int = 50, offset: int = 0
    ) -> List[ModeratableItem]:
        pass

    @abstractmethod
    def count_by_status(self, kind: ItemKind, status: ItemStatus) -> Optional[int]:
        pass

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager:
        pass

    def get_review(self, review_id: str) -> Optional[Review]:
        return self.get_item(ItemKind.REVIEW, review_id)

    def get_player_edit(self, edit_id: str) -> Optional[PlayerEdit]:
        return self.get_item(ItemKind.PLAYER_EDIT, edit_id)

    def get_equipment_submission(self, submission_id: str) -> Optional[EquipmentSubmission]:
        return self.get_item(ItemKind.EQUIPMENT_SUBMISSION, submission_id)
