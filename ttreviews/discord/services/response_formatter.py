from dataclasses import dataclass, field, replace
from typing import Any, Dict, Sequence, Tuple

from ttreviews.catalog.catalog_search import EquipmentSummary, PlayerSummary
from ttreviews.moderation.domain.moderation_result import ModerationResult, ModerationStatus

EPHEMERAL_FLAG = 64
PONG = 1
CHANNEL_MESSAGE_WITH_SOURCE = 4
UPDATE_MESSAGE = 7
SEARCH_RESULT_LIMIT = 5

# Warnings and errors are only shown to the moderator who acted.
EPHEMERAL_STATUSES = frozenset({ModerationStatus.ALREADY_APPROVED, ModerationStatus.ERROR})


@dataclass(frozen=True)
class InteractionReply:
    content: str = ""
    ephemeral: bool = False
    response_type: int = CHANNEL_MESSAGE_WITH_SOURCE
    embeds: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)
    components: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def pong(cls) -> "InteractionReply":
        return cls(response_type=PONG)

    def updating_message(
        self, embeds: Sequence[Dict[str, Any]], components: Sequence[Dict[str, Any]]
    ) -> "InteractionReply":
        """Same content, delivered by editing the message whose button was clicked."""
        return replace(
            self,
            ephemeral=False,
            response_type=UPDATE_MESSAGE,
            embeds=tuple(embeds),
            components=tuple(components),
        )

    def to_payload(self) -> Dict[str, Any]:
        if self.response_type == PONG:
            return {"type": PONG}
        data: Dict[str, Any] = {"content": self.content}
        if self.ephemeral:
            data["flags"] = EPHEMERAL_FLAG
        if self.response_type == UPDATE_MESSAGE:
            data["embeds"] = list(self.embeds)
            data["components"] = list(self.components)
        return {"type": self.response_type, "data": data}

    def to_message(self) -> Dict[str, Any]:
        """Plain message body used on the prefix-command channel."""
        return {"content": self.content}


def _visible(content: str) -> InteractionReply:
    return InteractionReply(content=content)


def _ephemeral(content: str) -> InteractionReply:
    return InteractionReply(content=content, ephemeral=True)


# --- generic ---

def permission_denied() -> InteractionReply:
    return _ephemeral("❌ You do not have permission to use this command.")


def unknown_command() -> InteractionReply:
    return _ephemeral("❌ Unknown command.")


def unknown_interaction() -> InteractionReply:
    return _ephemeral("❌ Unknown interaction.")


def unidentified_user() -> InteractionReply:
    return _ephemeral("❌ **Error**: Unable to identify the moderator for this action.")


def missing_item_id(label: str) -> InteractionReply:
    return _ephemeral(f"❌ Please provide a {label} ID.")


def processing_failure(action: str) -> InteractionReply:
    return _ephemeral(f"❌ **Error**: Failed to process {action}")


# --- search ---

def search_usage(command: str) -> InteractionReply:
    example = "butterfly" if command == "equipment" else "messi"
    return _ephemeral(
        f"❌ Please provide a search query. Example: `/{command} query:{example}`"
    )


def search_error(noun: str) -> InteractionReply:
    return _ephemeral(f"❌ Error searching {noun}. Please try again later.")


def _results_footer(total: int) -> str:
    if total > SEARCH_RESULT_LIMIT:
        return f"\n\n*Showing top {SEARCH_RESULT_LIMIT} of {total} results*"
    return ""


def equipment_results(query: str, results: Sequence[EquipmentSummary], site_url: str) -> InteractionReply:
    if not results:
        return _visible(f'🔍 No equipment found for "{query}"')
    lines = "\n\n".join(
        f"**{item.name}** by {item.manufacturer or 'Unknown'}\n"
        f"Type: {item.category or 'Unknown'}\n"
        f"{site_url}/equipment/{item.slug}"
        for item in results[:SEARCH_RESULT_LIMIT]
    )
    return _visible(
        f'🏓 **Equipment Search Results for "{query}"**\n\n{lines}' + _results_footer(len(results))
    )


def player_results(query: str, results: Sequence[PlayerSummary], site_url: str) -> InteractionReply:
    if not results:
        return _visible(f'🔍 No players found for "{query}"')
    lines = "\n\n".join(
        f"**{player.name}**\n"
        f"Status: {'Active' if player.active else 'Inactive'}\n"
        f"{site_url}/players/{player.slug}"
        for player in results[:SEARCH_RESULT_LIMIT]
    )
    return _visible(
        f'🏓 **Player Search Results for "{query}"**\n\n{lines}' + _results_footer(len(results))
    )


# --- moderation outcomes ---

def review_approval(result: ModerationResult, review_id: str, username: str) -> InteractionReply:
    if result.status is ModerationStatus.FIRST_APPROVAL:
        content = f"👍 **First Approval by {username}**\nReview {review_id}: {result.message}"
    elif result.status is ModerationStatus.FULLY_APPROVED:
        content = f"✅ **Review Fully Approved by {username}**\nReview {review_id}: {result.message}"
    elif result.status is ModerationStatus.ALREADY_APPROVED:
        content = f"⚠️ **{username}**: {result.message}"
    else:
        content = f"❌ **Error**: {result.message}"
    return InteractionReply(content=content, ephemeral=result.status in EPHEMERAL_STATUSES)


def review_rejection(rejected: bool, review_id: str, username: str) -> InteractionReply:
    if rejected:
        return _visible(
            f"❌ **Review Rejected by {username}**\n"
            f"Review {review_id} has been rejected and will not be published."
        )
    return _ephemeral(
        f"❌ **Error**: Failed to reject review {review_id}. It may have already been processed."
    )


def _single_stage_approval(result: ModerationResult, headline: str, label: str, item_id: str) -> InteractionReply:
    if result.success:
        return _visible(f"✅ **{headline}**\n{label} {item_id}: {result.message}")
    emoji = "❌" if result.status is ModerationStatus.ERROR else "⚠️"
    return _ephemeral(f"{emoji} **Error**: {result.message}")


def player_edit_approval(result: ModerationResult, edit_id: str, username: str) -> InteractionReply:
    return _single_stage_approval(result, f"Player Edit Approved by {username}", "Player edit", edit_id)


def player_edit_rejection(rejected: bool, edit_id: str, username: str) -> InteractionReply:
    if rejected:
        return _visible(
            f"❌ **Player Edit Rejected by {username}**\n"
            f"Player edit {edit_id} has been rejected and changes will not be applied."
        )
    return _ephemeral(
        f"❌ **Error**: Failed to reject player edit {edit_id}. It may have already been processed."
    )


def equipment_approval(result: ModerationResult, submission_id: str, username: str) -> InteractionReply:
    return _single_stage_approval(
        result, f"Equipment Approved by {username}", "Equipment submission", submission_id
    )


def equipment_rejection(rejected: bool, submission_id: str, username: str) -> InteractionReply:
    if rejected:
        return _visible(
            f"❌ **Equipment Rejected by {username}**\n"
            f"Equipment submission {submission_id} has been rejected and will not be published."
        )
    return _ephemeral(
        f"❌ **Error**: Failed to reject equipment submission {submission_id}. "
        "It may have already been processed."
    )
