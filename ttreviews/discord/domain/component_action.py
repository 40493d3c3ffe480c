from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ttreviews.moderation.domain.item_kind import ItemKind


class ComponentVerb(Enum):
    APPROVE = "approve"
    REJECT = "reject"


# Ordered most specific first: `approve_player_edit_` and `approve_equipment_`
# both start with `approve_`.
CUSTOM_ID_PREFIXES: Tuple[Tuple[str, ComponentVerb, ItemKind], ...] = (
    ("approve_player_edit_", ComponentVerb.APPROVE, ItemKind.PLAYER_EDIT),
    ("reject_player_edit_", ComponentVerb.REJECT, ItemKind.PLAYER_EDIT),
    ("approve_equipment_", ComponentVerb.APPROVE, ItemKind.EQUIPMENT_SUBMISSION),
    ("reject_equipment_", ComponentVerb.REJECT, ItemKind.EQUIPMENT_SUBMISSION),
    ("approve_", ComponentVerb.APPROVE, ItemKind.REVIEW),
    ("reject_", ComponentVerb.REJECT, ItemKind.REVIEW),
)


@dataclass(frozen=True)
class ComponentAction:
    verb: ComponentVerb
    kind: ItemKind
    item_id: str

    @property
    def custom_id(self) -> str:
        return custom_id_for(self.verb, self.kind, self.item_id)


def custom_id_for(verb: ComponentVerb, kind: ItemKind, item_id: str) -> str:
    for prefix, prefix_verb, prefix_kind in CUSTOM_ID_PREFIXES:
        if prefix_verb is verb and prefix_kind is kind:
            return f"{prefix}{item_id}"
    raise ValueError(f"No custom_id prefix for {verb.value}/{kind.value}")


def parse_custom_id(custom_id: str) -> Optional[ComponentAction]:
    """
    Map a button custom_id onto the action it encodes, or None when it
    matches no known prefix or carries no item id.
    """
    for prefix, verb, kind in CUSTOM_ID_PREFIXES:
        if custom_id.startswith(prefix):
            item_id = custom_id[len(prefix):]
            if not item_id:
                return None
            return ComponentAction(verb=verb, kind=kind, item_id=item_id)
    return None
