from typing import Any, Dict, List, Optional

from ttreviews.discord.domain.component_action import ComponentVerb, custom_id_for
from ttreviews.moderation.domain.item_kind import TERMINAL_STATUSES, ItemKind, ItemStatus

ACTION_ROW = 1
BUTTON = 2

BUTTON_STYLE_SECONDARY = 2
BUTTON_STYLE_SUCCESS = 3
BUTTON_STYLE_DANGER = 4

REQUIRED_REVIEW_APPROVALS = 2

STATUS_FIELD = "Status"

STATUS_COLORS: Dict[ItemStatus, int] = {
    ItemStatus.AWAITING_SECOND_APPROVAL: 0xF39C12,
    ItemStatus.APPROVED: 0x2ECC71,
    ItemStatus.REJECTED: 0xE74C3C,
}
PENDING_COLOR = 0x9B59B6

STATUS_TEXT: Dict[ItemStatus, str] = {
    ItemStatus.PENDING: "⏳ **Pending Review**",
    ItemStatus.AWAITING_SECOND_APPROVAL: f"⏳ **Awaiting Second Approval** (1/{REQUIRED_REVIEW_APPROVALS})",
    ItemStatus.APPROVED: "✅ **Approved**",
    ItemStatus.REJECTED: "❌ **Rejected**",
}

# Used when the clicked message carried no embed to rewrite.
FALLBACK_TITLES: Dict[ItemKind, str] = {
    ItemKind.REVIEW: "📝 Review Submission",
    ItemKind.PLAYER_EDIT: "🏓 Player Edit",
    ItemKind.EQUIPMENT_SUBMISSION: "⚙️ Equipment Submission",
}


def _button(style: int, label: str, custom_id: str, disabled: bool = False) -> Dict[str, Any]:
    button = {"type": BUTTON, "style": style, "label": label, "custom_id": custom_id}
    if disabled:
        button["disabled"] = True
    return button


def moderation_buttons(
    kind: ItemKind,
    item_id: str,
    approve_label: str = "Approve",
    reject_label: str = "Reject",
) -> List[Dict[str, Any]]:
    return [
        {
            "type": ACTION_ROW,
            "components": [
                _button(BUTTON_STYLE_SUCCESS, approve_label, custom_id_for(ComponentVerb.APPROVE, kind, item_id)),
                _button(BUTTON_STYLE_DANGER, reject_label, custom_id_for(ComponentVerb.REJECT, kind, item_id)),
            ],
        }
    ]


def progress_buttons(kind: ItemKind, item_id: str, approvals: int) -> List[Dict[str, Any]]:
    return moderation_buttons(kind, item_id, approve_label=f"Approve ({approvals}/{REQUIRED_REVIEW_APPROVALS})")


def disabled_buttons(final_status: ItemStatus) -> List[Dict[str, Any]]:
    """Both buttons greyed out except the one matching the decision."""
    approved = final_status is ItemStatus.APPROVED
    return [
        {
            "type": ACTION_ROW,
            "components": [
                _button(
                    BUTTON_STYLE_SUCCESS if approved else BUTTON_STYLE_SECONDARY,
                    "Approved" if approved else "Approve",
                    "disabled_approve",
                    disabled=True,
                ),
                _button(
                    BUTTON_STYLE_SECONDARY if approved else BUTTON_STYLE_DANGER,
                    "Reject" if approved else "Rejected",
                    "disabled_reject",
                    disabled=True,
                ),
            ],
        }
    ]


def controls_for(kind: ItemKind, item_id: str, status: ItemStatus) -> List[Dict[str, Any]]:
    if status in TERMINAL_STATUSES:
        return disabled_buttons(status)
    if status is ItemStatus.AWAITING_SECOND_APPROVAL:
        return progress_buttons(kind, item_id, approvals=1)
    return moderation_buttons(kind, item_id)


def status_embed(
    original: Optional[Dict[str, Any]],
    kind: ItemKind,
    status: ItemStatus,
    moderator: str,
    timestamp: str,
) -> Dict[str, Any]:
    """
    Copy of the notification embed with its Status field replaced and its
    colour following the new status.
    """
    if original:
        embed = dict(original)
        fields = [f for f in (original.get("fields") or []) if isinstance(f, dict) and f.get("name") != STATUS_FIELD]
    else:
        embed = {
            "title": FALLBACK_TITLES[kind],
            "description": "Submission status updated",
            "timestamp": timestamp,
        }
        fields = []
    fields.append({
        "name": STATUS_FIELD,
        "value": f"{STATUS_TEXT[status]}\nModerated by: {moderator}",
        "inline": False,
    })
    embed["fields"] = fields
    embed["color"] = STATUS_COLORS.get(status, PENDING_COLOR)
    return embed
