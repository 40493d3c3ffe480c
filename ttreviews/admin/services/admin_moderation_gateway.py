from typing import List, Optional, Tuple

from ttreviews.admin.security.admin_session import AdminIdentity
from ttreviews.moderation.domain.item_kind import ItemKind
from ttreviews.moderation.domain.moderatable_item import ModeratableItem
from ttreviews.moderation.domain.moderation_action import ModerationAction
from ttreviews.moderation.domain.moderation_result import ModerationResult, ModerationStats
from ttreviews.moderation.services.moderation_engine import ModerationEngine


class AdminModerationGateway:
    """
    Admin adapter over ModerationEngine.
    Delegates strictly; review approvals are privileged (single step).
    """

    def __init__(self, engine: ModerationEngine):
        self.engine = engine

    def approve(self, kind: ItemKind, item_id: str, admin: AdminIdentity) -> ModerationResult:
        if kind is ItemKind.REVIEW:
            return self.engine.approve_review(item_id, admin.sub, is_privileged_approval=True)
        if kind is ItemKind.PLAYER_EDIT:
            return self.engine.approve_player_edit(item_id, admin.sub)
        return self.engine.approve_equipment_submission(item_id, admin.sub)

    def reject(self, kind: ItemKind, item_id: str, admin: AdminIdentity, notes: Optional[str] = None) -> bool:
        if kind is ItemKind.REVIEW:
            return self.engine.reject_review(item_id, admin.sub, reason=notes)
        if kind is ItemKind.PLAYER_EDIT:
            return self.engine.reject_player_edit(item_id, admin.sub, notes=notes)
        return self.engine.reject_equipment_submission(item_id, admin.sub, notes=notes)

    def get(self, kind: ItemKind, item_id: str) -> Optional[ModeratableItem]:
        if kind is ItemKind.REVIEW:
            return self.engine.get_review(item_id)
        if kind is ItemKind.PLAYER_EDIT:
            return self.engine.get_player_edit(item_id)
        return self.engine.get_equipment_submission(item_id)

    def list_pending(self, kind: ItemKind, limit: int = 50, offset: int = 0) -> Tuple[List[ModeratableItem], int]:
        if kind is ItemKind.REVIEW:
            return self.engine.get_pending_reviews(limit=limit, offset=offset)
        if kind is ItemKind.PLAYER_EDIT:
            return self.engine.get_pending_player_edits(limit=limit, offset=offset)
        return self.engine.get_pending_equipment_submissions(limit=limit, offset=offset)

    def stats(self) -> ModerationStats:
        return self.engine.get_moderation_stats()

    def actions(self, kind: ItemKind, item_id: str) -> List[ModerationAction]:
        return self.engine.get_item_actions(kind, item_id)

    def recent_actions(self, limit: int = 50) -> List[ModerationAction]:
        return self.engine.get_recent_actions(limit)
