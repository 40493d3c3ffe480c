from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ModerationStatus(Enum):
    FIRST_APPROVAL = "first_approval"
    FULLY_APPROVED = "fully_approved"
    ALREADY_APPROVED = "already_approved"
    ERROR = "error"


@dataclass(frozen=True)
class ModerationResult:
    """
    Discriminated outcome of an approval. Expected business conditions
    (missing item, wrong state, repeated moderator) are reported here
    rather than raised.
    """
    success: bool
    status: ModerationStatus
    message: str
    found: bool = True

    @classmethod
    def ok(cls, status: ModerationStatus, message: str) -> "ModerationResult":
        return cls(success=True, status=status, message=message)

    @classmethod
    def noop(cls, message: str) -> "ModerationResult":
        return cls(success=False, status=ModerationStatus.ALREADY_APPROVED, message=message)

    @classmethod
    def error(cls, message: str, found: bool = True) -> "ModerationResult":
        return cls(success=False, status=ModerationStatus.ERROR, message=message, found=found)


@dataclass(frozen=True)
class KindStats:
    pending: int
    approved: int
    rejected: int
    total: int
    awaiting_second_approval: int = 0

    @classmethod
    def from_counts(
        cls,
        pending: Optional[int],
        approved: Optional[int],
        rejected: Optional[int],
        awaiting_second_approval: Optional[int] = None,
    ) -> "KindStats":
        p, a, r = pending or 0, approved or 0, rejected or 0
        return cls(
            pending=p,
            approved=a,
            rejected=r,
            total=p + a + r,
            awaiting_second_approval=awaiting_second_approval or 0,
        )


@dataclass(frozen=True)
class ModerationStats:
    reviews: KindStats
    player_edits: KindStats
    equipment_submissions: KindStats
