import logging
from typing import Any, Callable, Dict, Optional, Tuple

from ttreviews.catalog.catalog_search import CatalogSearch
from ttreviews.core.clock import Clock, SystemClock
from ttreviews.discord.domain.component_action import ComponentAction, ComponentVerb
from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.discord.domain.interaction import (
    Caller,
    ClickedMessage,
    ComponentClick,
    PingInteraction,
    PrefixCommand,
    SlashCommand,
    UnsupportedInteraction,
    parse_interaction,
    parse_prefix_message,
)
from ttreviews.discord.domain.message_components import controls_for, status_embed
from ttreviews.discord.security.permissions import RolePermissionPolicy
from ttreviews.discord.security.signature_verifier import Ed25519SignatureVerifier
from ttreviews.discord.services import response_formatter as replies
from ttreviews.discord.services.response_formatter import InteractionReply
from ttreviews.moderation.domain.item_kind import ItemKind, ItemStatus
from ttreviews.moderation.domain.moderation_result import ModerationResult, ModerationStatus
from ttreviews.moderation.services.moderation_engine import ModerationEngine
from ttreviews.observability.structured_event_logger import StructuredEventLogger

logger = logging.getLogger(__name__)

REVIEW_APPROVAL_STATUSES: Dict[ModerationStatus, ItemStatus] = {
    ModerationStatus.FIRST_APPROVAL: ItemStatus.AWAITING_SECOND_APPROVAL,
    ModerationStatus.FULLY_APPROVED: ItemStatus.APPROVED,
}


class DiscordInteractionGateway:
    """
    Discord-facing adapter over the moderation engine.

    Verifies request signatures, checks the caller's roles and dispatches
    each parsed interaction variant to its handler. Discord moderators
    are never privileged: review approvals go through two-moderator
    consensus.
    """

    def __init__(
        self,
        engine: ModerationEngine,
        catalog: CatalogSearch,
        config: DiscordConfig,
        verifier: Optional[Ed25519SignatureVerifier] = None,
        permissions: Optional[RolePermissionPolicy] = None,
        events: Optional[StructuredEventLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self.engine = engine
        self.catalog = catalog
        self.config = config
        self.verifier = verifier or Ed25519SignatureVerifier.from_config(config)
        self.permissions = permissions or RolePermissionPolicy.from_config(config)
        self.events = events or StructuredEventLogger()
        self.clock = clock or SystemClock()

        self._slash_handlers: Dict[str, Callable[[SlashCommand], InteractionReply]] = {
            "equipment": self._slash_equipment_search,
            "equipment-search": self._slash_equipment_search,
            "player": self._slash_player_search,
            "player-search": self._slash_player_search,
            "approve": self._slash_approve,
            "reject": self._slash_reject,
        }
        self._component_handlers: Dict[
            Tuple[ComponentVerb, ItemKind],
            Callable[[ComponentAction, Caller, Optional[ClickedMessage]], InteractionReply],
        ] = {
            (ComponentVerb.APPROVE, ItemKind.REVIEW): self._approve_review,
            (ComponentVerb.REJECT, ItemKind.REVIEW): self._reject_review,
            (ComponentVerb.APPROVE, ItemKind.PLAYER_EDIT): self._approve_player_edit,
            (ComponentVerb.REJECT, ItemKind.PLAYER_EDIT): self._reject_player_edit,
            (ComponentVerb.APPROVE, ItemKind.EQUIPMENT_SUBMISSION): self._approve_equipment,
            (ComponentVerb.REJECT, ItemKind.EQUIPMENT_SUBMISSION): self._reject_equipment,
        }

    # --- entry points ---

    def verify_request(self, signature: str, timestamp: str, body: bytes) -> bool:
        valid = self.verifier.verify(signature, timestamp, body)
        if not valid:
            self.events.emit("DISCORD_SIGNATURE_REJECTED", request_timestamp=timestamp)
        return valid

    def handle_interaction(self, payload: Dict[str, Any]) -> Optional[InteractionReply]:
        """
        Returns None for interaction types this gateway does not handle.
        """
        interaction = parse_interaction(payload)

        if isinstance(interaction, PingInteraction):
            return InteractionReply.pong()
        if isinstance(interaction, UnsupportedInteraction):
            logger.warning(f"Unsupported Discord interaction type: {interaction.type_code}")
            return None

        if isinstance(interaction, SlashCommand):
            self.events.emit("DISCORD_INTERACTION", kind="command", name=interaction.name)
            if not self._authorized(interaction.caller, interaction.name):
                return replies.permission_denied()
            handler = self._slash_handlers.get(interaction.name)
            if handler is None:
                return replies.unknown_command()
            return handler(interaction)

        self.events.emit("DISCORD_INTERACTION", kind="component", custom_id=interaction.custom_id)
        return self._on_component(interaction)

    def handle_prefix_message(self, payload: Dict[str, Any]) -> Optional[InteractionReply]:
        command = parse_prefix_message(payload)
        if command is None:
            return None
        self.events.emit("DISCORD_INTERACTION", kind="prefix", name=command.command)
        if not self._authorized(command.caller, command.command):
            return replies.permission_denied()
        return self._on_prefix(command)

    # --- dispatch ---

    def _authorized(self, caller: Caller, what: str) -> bool:
        if self.permissions.check(caller, caller.guild_id):
            return True
        self.events.emit(
            "DISCORD_PERMISSION_DENIED",
            user_id=caller.user.id if caller.user else None,
            guild_id=caller.guild_id,
            command=what,
        )
        return False

    def _on_component(self, click: ComponentClick) -> InteractionReply:
        if click.action is None:
            return replies.unknown_interaction()
        if not self._authorized(click.caller, click.custom_id):
            return replies.permission_denied()
        handler = self._component_handlers[(click.action.verb, click.action.kind)]
        return handler(click.action, click.caller, click.message)

    def _on_prefix(self, command: PrefixCommand) -> InteractionReply:
        if command.command == "equipment":
            return self._search_equipment(command.query)
        return self._search_players(command.query)

    # --- search ---

    def _slash_equipment_search(self, command: SlashCommand) -> InteractionReply:
        query = command.first_option.strip()
        if not query:
            return replies.search_usage("equipment")
        return self._search_equipment(query)

    def _slash_player_search(self, command: SlashCommand) -> InteractionReply:
        query = command.first_option.strip()
        if not query:
            return replies.search_usage("player")
        return self._search_players(query)

    def _search_equipment(self, query: str) -> InteractionReply:
        try:
            results = self.catalog.search_equipment(query)
        except Exception as e:
            logger.error(f"Equipment search error: {e}")
            return replies.search_error("equipment")
        return replies.equipment_results(query, results, self.config.site_url)

    def _search_players(self, query: str) -> InteractionReply:
        try:
            results = self.catalog.search_players(query)
        except Exception as e:
            logger.error(f"Player search error: {e}")
            return replies.search_error("players")
        return replies.player_results(query, results, self.config.site_url)

    # --- moderation ---

    def _slash_approve(self, command: SlashCommand) -> InteractionReply:
        review_id = command.first_option.strip()
        if not review_id:
            return replies.missing_item_id("review")
        return self._approve_review(ComponentAction(ComponentVerb.APPROVE, ItemKind.REVIEW, review_id), command.caller)

    def _slash_reject(self, command: SlashCommand) -> InteractionReply:
        review_id = command.first_option.strip()
        if not review_id:
            return replies.missing_item_id("review")
        return self._reject_review(ComponentAction(ComponentVerb.REJECT, ItemKind.REVIEW, review_id), command.caller)

    def _moderate(self, caller: Caller, failure_label: str, action: Callable[[str, str], InteractionReply]) -> InteractionReply:
        if caller.user is None:
            return replies.unidentified_user()
        try:
            return action(caller.user.id, caller.user.username)
        except Exception:
            logger.exception(f"Error handling {failure_label}")
            return replies.processing_failure(failure_label)

    def _settle(
        self,
        reply: InteractionReply,
        target: ComponentAction,
        message: Optional[ClickedMessage],
        new_status: Optional[ItemStatus],
        username: str,
    ) -> InteractionReply:
        """
        When a button moved its item to a new status, answer by editing the
        notification it belongs to: progress buttons while a review awaits
        its second approval, disabled buttons once the item is final.
        Slash commands and failed actions keep the plain reply.
        """
        if message is None or new_status is None:
            return reply
        embed = status_embed(
            message.first_embed,
            target.kind,
            new_status,
            username,
            self.clock.now().isoformat(),
        )
        return reply.updating_message([embed], controls_for(target.kind, target.item_id, new_status))

    def _approve_review(
        self, target: ComponentAction, caller: Caller, message: Optional[ClickedMessage] = None
    ) -> InteractionReply:
        def run(moderator_id: str, username: str) -> InteractionReply:
            result = self.engine.approve_review(target.item_id, moderator_id, is_privileged_approval=False)
            reply = replies.review_approval(result, target.item_id, username)
            return self._settle(reply, target, message, REVIEW_APPROVAL_STATUSES.get(result.status), username)
        return self._moderate(caller, "approval", run)

    def _reject_review(
        self, target: ComponentAction, caller: Caller, message: Optional[ClickedMessage] = None
    ) -> InteractionReply:
        def run(moderator_id: str, username: str) -> InteractionReply:
            rejected = self.engine.reject_review(target.item_id, moderator_id)
            reply = replies.review_rejection(rejected, target.item_id, username)
            return self._settle(reply, target, message, _rejected_status(rejected), username)
        return self._moderate(caller, "rejection", run)

    def _approve_player_edit(
        self, target: ComponentAction, caller: Caller, message: Optional[ClickedMessage] = None
    ) -> InteractionReply:
        def run(moderator_id: str, username: str) -> InteractionReply:
            result = self.engine.approve_player_edit(target.item_id, moderator_id)
            reply = replies.player_edit_approval(result, target.item_id, username)
            return self._settle(reply, target, message, _approved_status(result), username)
        return self._moderate(caller, "player edit approval", run)

    def _reject_player_edit(
        self, target: ComponentAction, caller: Caller, message: Optional[ClickedMessage] = None
    ) -> InteractionReply:
        def run(moderator_id: str, username: str) -> InteractionReply:
            rejected = self.engine.reject_player_edit(target.item_id, moderator_id)
            reply = replies.player_edit_rejection(rejected, target.item_id, username)
            return self._settle(reply, target, message, _rejected_status(rejected), username)
        return self._moderate(caller, "player edit rejection", run)

    def _approve_equipment(
        self, target: ComponentAction, caller: Caller, message: Optional[ClickedMessage] = None
    ) -> InteractionReply:
        def run(moderator_id: str, username: str) -> InteractionReply:
            result = self.engine.approve_equipment_submission(target.item_id, moderator_id)
            reply = replies.equipment_approval(result, target.item_id, username)
            return self._settle(reply, target, message, _approved_status(result), username)
        return self._moderate(caller, "equipment submission approval", run)

    def _reject_equipment(
        self, target: ComponentAction, caller: Caller, message: Optional[ClickedMessage] = None
    ) -> InteractionReply:
        def run(moderator_id: str, username: str) -> InteractionReply:
            rejected = self.engine.reject_equipment_submission(target.item_id, moderator_id)
            reply = replies.equipment_rejection(rejected, target.item_id, username)
            return self._settle(reply, target, message, _rejected_status(rejected), username)
        return self._moderate(caller, "equipment submission rejection", run)


def _approved_status(result: ModerationResult) -> Optional[ItemStatus]:
    return ItemStatus.APPROVED if result.success else None


def _rejected_status(rejected: bool) -> Optional[ItemStatus]:
    return ItemStatus.REJECTED if rejected else None
