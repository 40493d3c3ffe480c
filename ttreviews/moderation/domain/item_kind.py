from enum import Enum
from typing import Dict, FrozenSet, Tuple


class ItemKind(Enum):
    REVIEW = "review"
    PLAYER_EDIT = "player_edit"
    EQUIPMENT_SUBMISSION = "equipment_submission"


class ItemStatus(Enum):
    PENDING = "pending"
    AWAITING_SECOND_APPROVAL = "awaiting_second_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES: FrozenSet[ItemStatus] = frozenset({ItemStatus.APPROVED, ItemStatus.REJECTED})

# Forward-only transition graph per kind. Terminal states have no outgoing edges.
TRANSITIONS: Dict[ItemKind, Dict[ItemStatus, FrozenSet[ItemStatus]]] = {
    ItemKind.REVIEW: {
        ItemStatus.PENDING: frozenset({
            ItemStatus.AWAITING_SECOND_APPROVAL,
            ItemStatus.APPROVED,
            ItemStatus.REJECTED,
        }),
        ItemStatus.AWAITING_SECOND_APPROVAL: frozenset({ItemStatus.APPROVED, ItemStatus.REJECTED}),
    },
    ItemKind.PLAYER_EDIT: {
        ItemStatus.PENDING: frozenset({ItemStatus.APPROVED, ItemStatus.REJECTED}),
    },
    ItemKind.EQUIPMENT_SUBMISSION: {
        ItemStatus.PENDING: frozenset({ItemStatus.APPROVED, ItemStatus.REJECTED}),
    },
}


def statuses_for(kind: ItemKind) -> Tuple[ItemStatus, ...]:
    if kind is ItemKind.REVIEW:
        return tuple(ItemStatus)
    return (ItemStatus.PENDING, ItemStatus.APPROVED, ItemStatus.REJECTED)


def can_transition(kind: ItemKind, current: ItemStatus, target: ItemStatus) -> bool:
    return target in TRANSITIONS[kind].get(current, frozenset())


def sources_of(kind: ItemKind, target: ItemStatus) -> FrozenSet[ItemStatus]:
    """Statuses from which `target` is reachable in one step."""
    return frozenset(
        current for current, targets in TRANSITIONS[kind].items() if target in targets
    )
