import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from ttreviews.core.clock import Clock, IdSource, RandomIdSource, SystemClock
from ttreviews.moderation.domain.exceptions import StorageError, TransitionConflict
from ttreviews.moderation.domain.item_kind import (
    ItemKind,
    ItemStatus,
    can_transition,
    sources_of,
    statuses_for,
)
from ttreviews.moderation.domain.moderatable_item import (
    EquipmentSubmission,
    ModeratableItem,
    PlayerEdit,
    Review,
)
from ttreviews.moderation.domain.moderation_action import ActionVerb, ModerationAction
from ttreviews.moderation.domain.moderation_result import (
    KindStats,
    ModerationResult,
    ModerationStats,
    ModerationStatus,
)
from ttreviews.moderation.domain.slug import derive_slug
from ttreviews.moderation.interfaces.action_log import ActionLog
from ttreviews.moderation.interfaces.submission_store import SubmissionStore
from ttreviews.observability.structured_event_logger import StructuredEventLogger

logger = logging.getLogger(__name__)

APPROVABLE_REVIEW_STATUSES = sources_of(ItemKind.REVIEW, ItemStatus.APPROVED)
PENDING_ONLY = frozenset({ItemStatus.PENDING})


class ModerationEngine:
    """
    Owns every status transition of moderated content and the side effect
    tied to reaching `approved`.

    Transitions are conditional updates issued inside a store unit of work:
    the side effect is written first and the status swap second, so a lost
    race or a failed write rolls both back together. The action log is
    appended only after the unit of work committed and a failed append never
    reverses the transition.

    Has no knowledge of the calling transport; callers pass an explicit
    privilege flag for reviews.
    """

    def __init__(
        self,
        store: SubmissionStore,
        action_log: ActionLog,
        clock: Optional[Clock] = None,
        id_source: Optional[IdSource] = None,
        events: Optional[StructuredEventLogger] = None,
        stats_max_workers: int = 3,
    ):
        self.store = store
        self.action_log = action_log
        self.clock = clock or SystemClock()
        self.id_source = id_source or RandomIdSource()
        self.events = events or StructuredEventLogger()
        self.stats_max_workers = max(1, int(stats_max_workers))

    # --- reviews ---

    def approve_review(
        self,
        review_id: str,
        moderator_id: str,
        is_privileged_approval: bool = False,
    ) -> ModerationResult:
        review = self._load_review(review_id)
        if isinstance(review, ModerationResult):
            return review
        return self._decide_review(review, moderator_id, is_privileged_approval, retry_on_conflict=True)

    def reject_review(self, review_id: str, moderator_id: str, reason: Optional[str] = None) -> bool:
        # Rejection is a single-predicate update from `pending` only.
        return self._reject(ItemKind.REVIEW, review_id, moderator_id, reason)

    def _load_review(self, review_id: str) -> Union[Review, ModerationResult]:
        try:
            review = self.store.get_review(review_id)
        except StorageError as exc:
            logger.error(f"Failed to load review {review_id}: {exc}")
            return ModerationResult.error("Failed to load review")
        if review is None:
            return ModerationResult.error("Review not found", found=False)
        return review

    def _decide_review(
        self,
        review: Review,
        moderator_id: str,
        privileged: bool,
        retry_on_conflict: bool,
    ) -> ModerationResult:
        if review.status not in APPROVABLE_REVIEW_STATUSES:
            return self._noop(review, moderator_id, "Review already processed")

        try:
            if privileged:
                return self._publish_review(review, moderator_id, APPROVABLE_REVIEW_STATUSES, privileged=True)
            if moderator_id in self._review_approvers(review):
                return self._noop(review, moderator_id, "You have already approved this review")
            if review.status is ItemStatus.PENDING:
                return self._first_review_approval(review, moderator_id)
            return self._publish_review(review, moderator_id, frozenset({ItemStatus.AWAITING_SECOND_APPROVAL}))
        except TransitionConflict:
            if not retry_on_conflict:
                return self._noop(review, moderator_id, "Review already processed")

        # Another moderator moved the row after our read: decide again on its current state, once.
        logger.info(f"Review {review.id} changed during approval by {moderator_id}; re-reading")
        current = self._load_review(review.id)
        if isinstance(current, ModerationResult):
            return current
        return self._decide_review(current, moderator_id, privileged, retry_on_conflict=False)

    def _review_approvers(self, review: Review) -> Set[str]:
        approvers: Set[str] = set()
        if review.first_moderator_id:
            approvers.add(review.first_moderator_id)
        try:
            approvers |= self.action_log.approvers(ItemKind.REVIEW, review.id)
        except StorageError as exc:
            logger.warning(f"Approval history unavailable for review {review.id}: {exc}")
        return approvers

    def _first_review_approval(self, review: Review, moderator_id: str) -> ModerationResult:
        """Raises TransitionConflict when the row is no longer pending."""
        now = self.clock.now()
        try:
            with self.store.unit_of_work() as uow:
                swapped = uow.compare_and_set_status(
                    ItemKind.REVIEW,
                    review.id,
                    PENDING_ONLY,
                    ItemStatus.AWAITING_SECOND_APPROVAL,
                    now,
                    first_moderator_id=moderator_id,
                )
                if not swapped:
                    raise TransitionConflict(review.id)
        except StorageError as exc:
            return self._failed(review, moderator_id, exc, "Failed to update review status")

        self._transitioned(review, moderator_id, ItemStatus.AWAITING_SECOND_APPROVAL, ActionVerb.APPROVED)
        return ModerationResult.ok(
            ModerationStatus.FIRST_APPROVAL,
            "First approval recorded. Awaiting second approval.",
        )

    def _publish_review(
        self,
        review: Review,
        moderator_id: str,
        expected: frozenset,
        privileged: bool = False,
    ) -> ModerationResult:
        """Raises TransitionConflict when the swap matched no row; the publication is rolled back."""
        now = self.clock.now()
        try:
            with self.store.unit_of_work() as uow:
                uow.publish_review(review.id, now)
                swapped = uow.compare_and_set_status(
                    ItemKind.REVIEW,
                    review.id,
                    expected,
                    ItemStatus.APPROVED,
                    now,
                    moderator_id=moderator_id,
                    unless_first_moderator=None if privileged else moderator_id,
                )
                if not swapped:
                    raise TransitionConflict(review.id)
        except StorageError as exc:
            return self._failed(review, moderator_id, exc, "Failed to update review status")

        self._transitioned(review, moderator_id, ItemStatus.APPROVED, ActionVerb.APPROVED, privileged=privileged)
        return ModerationResult.ok(ModerationStatus.FULLY_APPROVED, "Review fully approved and published!")

    # --- player edits ---

    def approve_player_edit(self, edit_id: str, moderator_id: str) -> ModerationResult:
        try:
            edit = self.store.get_player_edit(edit_id)
        except StorageError as exc:
            logger.error(f"Failed to load player edit {edit_id}: {exc}")
            return ModerationResult.error("Failed to load player edit")

        if edit is None:
            return ModerationResult.error("Player edit not found", found=False)
        if not can_transition(edit.kind, edit.status, ItemStatus.APPROVED):
            return self._noop(edit, moderator_id, "Player edit has already been processed")

        now = self.clock.now()
        try:
            with self.store.unit_of_work() as uow:
                uow.merge_player_fields(edit.player_id, dict(edit.payload), now)
                swapped = uow.compare_and_set_status(
                    ItemKind.PLAYER_EDIT,
                    edit.id,
                    PENDING_ONLY,
                    ItemStatus.APPROVED,
                    now,
                    moderator_id=moderator_id,
                )
                if not swapped:
                    raise TransitionConflict(edit.id)
        except TransitionConflict:
            return self._noop(edit, moderator_id, "Player edit has already been processed")
        except StorageError as exc:
            return self._failed(edit, moderator_id, exc, "Failed to apply player edit")

        self._transitioned(edit, moderator_id, ItemStatus.APPROVED, ActionVerb.APPROVED)
        return ModerationResult.ok(
            ModerationStatus.FULLY_APPROVED,
            "Player edit approved and changes applied.",
        )

    def reject_player_edit(self, edit_id: str, moderator_id: str, notes: Optional[str] = None) -> bool:
        return self._reject(ItemKind.PLAYER_EDIT, edit_id, moderator_id, notes)

    # --- equipment submissions ---

    def approve_equipment_submission(self, submission_id: str, moderator_id: str) -> ModerationResult:
        try:
            submission = self.store.get_equipment_submission(submission_id)
        except StorageError as exc:
            logger.error(f"Failed to load equipment submission {submission_id}: {exc}")
            return ModerationResult.error("Failed to load equipment submission")

        if submission is None:
            return ModerationResult.error("Equipment submission not found", found=False)
        if not can_transition(submission.kind, submission.status, ItemStatus.APPROVED):
            return self._noop(submission, moderator_id, "Equipment submission has already been processed")

        slug = derive_slug(submission.name)
        if not slug:
            return ModerationResult.error("Equipment submission has no usable name")

        now = self.clock.now()
        try:
            with self.store.unit_of_work() as uow:
                uow.create_equipment(self._equipment_record(submission, slug))
                swapped = uow.compare_and_set_status(
                    ItemKind.EQUIPMENT_SUBMISSION,
                    submission.id,
                    PENDING_ONLY,
                    ItemStatus.APPROVED,
                    now,
                    moderator_id=moderator_id,
                )
                if not swapped:
                    raise TransitionConflict(submission.id)
        except TransitionConflict:
            return self._noop(submission, moderator_id, "Equipment submission has already been processed")
        except StorageError as exc:
            return self._failed(submission, moderator_id, exc, "Failed to approve equipment submission")

        self._transitioned(submission, moderator_id, ItemStatus.APPROVED, ActionVerb.APPROVED, slug=slug)
        return ModerationResult.ok(
            ModerationStatus.FULLY_APPROVED,
            "Equipment submission approved successfully!",
        )

    def reject_equipment_submission(
        self, submission_id: str, moderator_id: str, notes: Optional[str] = None
    ) -> bool:
        return self._reject(ItemKind.EQUIPMENT_SUBMISSION, submission_id, moderator_id, notes)

    def _equipment_record(self, submission: EquipmentSubmission, slug: str) -> Dict[str, Any]:
        payload = submission.payload
        return {
            "id": str(self.id_source.new_id()),
            "name": submission.name,
            "slug": slug,
            "manufacturer": payload.get("manufacturer"),
            "category": payload.get("category"),
            "subcategory": payload.get("subcategory"),
            "specifications": dict(payload.get("specifications") or {}),
            "created_at": self.clock.now(),
        }

    # --- queries ---

    def get_review(self, review_id: str) -> Optional[Review]:
        return self.store.get_review(review_id)

    def get_player_edit(self, edit_id: str) -> Optional[PlayerEdit]:
        return self.store.get_player_edit(edit_id)

    def get_equipment_submission(self, submission_id: str) -> Optional[EquipmentSubmission]:
        return self.store.get_equipment_submission(submission_id)

    def get_pending_reviews(self, limit: int = 50, offset: int = 0) -> Tuple[List[ModeratableItem], int]:
        return self._pending(ItemKind.REVIEW, limit, offset)

    def get_pending_player_edits(self, limit: int = 50, offset: int = 0) -> Tuple[List[ModeratableItem], int]:
        return self._pending(ItemKind.PLAYER_EDIT, limit, offset)

    def get_pending_equipment_submissions(
        self, limit: int = 50, offset: int = 0
    ) -> Tuple[List[ModeratableItem], int]:
        return self._pending(ItemKind.EQUIPMENT_SUBMISSION, limit, offset)

    def get_item_actions(self, kind: ItemKind, item_id: str) -> List[ModerationAction]:
        return self.action_log.list_for_item(kind, item_id)

    def get_recent_actions(self, limit: int = 50) -> List[ModerationAction]:
        """The latest `limit` decisions across all kinds, in chronological order."""
        return self.action_log.list_recent(limit)

    def get_moderation_stats(self) -> ModerationStats:
        keys = [(kind, status) for kind in ItemKind for status in statuses_for(kind)]
        with ThreadPoolExecutor(max_workers=self.stats_max_workers) as pool:
            futures = {key: pool.submit(self._count, *key) for key in keys}
            counts = {key: future.result() for key, future in futures.items()}

        def stats_for(kind: ItemKind) -> KindStats:
            return KindStats.from_counts(
                pending=counts.get((kind, ItemStatus.PENDING)),
                approved=counts.get((kind, ItemStatus.APPROVED)),
                rejected=counts.get((kind, ItemStatus.REJECTED)),
                awaiting_second_approval=counts.get((kind, ItemStatus.AWAITING_SECOND_APPROVAL)),
            )

        return ModerationStats(
            reviews=stats_for(ItemKind.REVIEW),
            player_edits=stats_for(ItemKind.PLAYER_EDIT),
            equipment_submissions=stats_for(ItemKind.EQUIPMENT_SUBMISSION),
        )

    def _count(self, kind: ItemKind, status: ItemStatus) -> Optional[int]:
        try:
            return self.store.count_by_status(kind, status)
        except StorageError as exc:
            logger.warning(f"Count failed for {kind.value}/{status.value}: {exc}")
            return None

    def _pending(self, kind: ItemKind, limit: int, offset: int) -> Tuple[List[ModeratableItem], int]:
        try:
            items = self.store.list_by_status(kind, ItemStatus.PENDING, limit=limit, offset=offset)
            total = self.store.count_by_status(kind, ItemStatus.PENDING) or 0
        except StorageError as exc:
            logger.error(f"Error fetching pending {kind.value} items: {exc}")
            return [], 0
        return items, total

    # --- shared ---

    def _reject(self, kind: ItemKind, item_id: str, moderator_id: str, notes: Optional[str]) -> bool:
        now = self.clock.now()
        try:
            with self.store.unit_of_work() as uow:
                swapped = uow.compare_and_set_status(
                    kind,
                    item_id,
                    PENDING_ONLY,
                    ItemStatus.REJECTED,
                    now,
                    moderator_id=moderator_id,
                    moderator_notes=notes,
                )
        except StorageError as exc:
            self.events.emit(
                "MODERATION_ERROR",
                item_kind=kind,
                item_id=item_id,
                moderator_id=moderator_id,
                error=str(exc),
            )
            return False

        if not swapped:
            self.events.emit(
                "MODERATION_NOOP",
                item_kind=kind,
                item_id=item_id,
                moderator_id=moderator_id,
                reason="not pending",
            )
            return False

        self._record(kind, item_id, moderator_id, ActionVerb.REJECTED, notes)
        self.events.emit(
            "MODERATION_TRANSITION",
            item_kind=kind,
            item_id=item_id,
            moderator_id=moderator_id,
            status=ItemStatus.REJECTED,
        )
        return True

    def _transitioned(
        self,
        item: ModeratableItem,
        moderator_id: str,
        new_status: ItemStatus,
        verb: ActionVerb,
        **fields: Any,
    ) -> None:
        self._record(item.kind, item.id, moderator_id, verb)
        self.events.emit(
            "MODERATION_TRANSITION",
            item_kind=item.kind,
            item_id=item.id,
            moderator_id=moderator_id,
            previous_status=item.status,
            status=new_status,
            **fields,
        )

    def _record(
        self,
        kind: ItemKind,
        item_id: str,
        moderator_id: str,
        verb: ActionVerb,
        reason: Optional[str] = None,
    ) -> None:
        action = ModerationAction(
            id=self.id_source.new_id(),
            item_id=item_id,
            item_kind=kind,
            moderator_id=moderator_id,
            action=verb,
            timestamp=self.clock.now(),
            reason=reason,
        )
        try:
            self.action_log.append(action)
        except StorageError as exc:
            self.events.emit(
                "ACTION_LOG_WRITE_FAILED",
                item_kind=kind,
                item_id=item_id,
                moderator_id=moderator_id,
                action=verb,
                error=str(exc),
            )

    def _noop(self, item: ModeratableItem, moderator_id: str, message: str) -> ModerationResult:
        self.events.emit(
            "MODERATION_NOOP",
            item_kind=item.kind,
            item_id=item.id,
            moderator_id=moderator_id,
            reason=message,
        )
        return ModerationResult.noop(message)

    def _failed(
        self,
        item: ModeratableItem,
        moderator_id: str,
        exc: Exception,
        message: str,
    ) -> ModerationResult:
        self.events.emit(
            "MODERATION_ERROR",
            item_kind=item.kind,
            item_id=item.id,
            moderator_id=moderator_id,
            message=message,
            error=str(exc),
        )
        return ModerationResult.error(message)
