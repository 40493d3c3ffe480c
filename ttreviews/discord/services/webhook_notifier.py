from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ttreviews.core.clock import Clock, SystemClock
from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.discord.domain.exceptions import DiscordConfigurationError
from ttreviews.discord.domain.message_components import moderation_buttons
from ttreviews.moderation.domain.item_kind import ItemKind
from ttreviews.observability.structured_event_logger import StructuredEventLogger

REVIEW_COLOR = 0x3498DB
PLAYER_EDIT_COLOR = 0xE67E22
EQUIPMENT_COLOR = 0x9B59B6


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class DiscordWebhookNotifier:
    """
    Posts moderation requests to the configured Discord webhook, each with
    an approve and a reject button. Delivery is best-effort: transport
    failures and non-2xx answers are reported, not raised.
    """

    def __init__(
        self,
        config: DiscordConfig,
        session: Optional[requests.Session] = None,
        clock: Optional[Clock] = None,
        events: Optional[StructuredEventLogger] = None,
        max_retries: int = 3,
    ):
        self.config = config
        self.session = session or self._create_session(max_retries)
        self.clock = clock or SystemClock()
        self.events = events or StructuredEventLogger()

    def _create_session(self, max_retries: int) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def notify_new_review(self, review: Dict[str, Any]) -> NotificationResult:
        embed = self._embed(
            title="🆕 New Review Submitted",
            description="A new review has been submitted and needs moderation.",
            color=REVIEW_COLOR,
            fields=[
                ("Equipment", review.get("equipment_name") or "Unknown", True),
                ("Rating", f"{review.get('overall_rating', '?')}/10", True),
                ("Reviewer", review.get("reviewer_name") or "Anonymous", True),
            ],
        )
        return self._deliver("new_review", ItemKind.REVIEW, review, embed, "Approve", "Reject")

    def notify_new_player_edit(self, edit: Dict[str, Any]) -> NotificationResult:
        changes = self._summarize_player_changes(edit.get("edit_data") or {})
        embed = self._embed(
            title="🏓 Player Edit Submitted",
            description="A player information update has been submitted and needs moderation.",
            color=PLAYER_EDIT_COLOR,
            fields=[
                ("Player", edit.get("player_name") or "Unknown Player", True),
                ("Submitted by", edit.get("submitter_email") or "Anonymous", True),
                ("Changes", "\n".join(changes) if changes else "No changes specified", False),
            ],
        )
        return self._deliver(
            "new_player_edit", ItemKind.PLAYER_EDIT, edit, embed, "Approve Edit", "Reject Edit"
        )

    def notify_new_equipment_submission(self, submission: Dict[str, Any]) -> NotificationResult:
        category = submission.get("category")
        embed = self._embed(
            title="⚙️ Equipment Submission",
            description="A new equipment submission has been received and needs moderation.",
            color=EQUIPMENT_COLOR,
            fields=[
                ("Equipment Name", submission.get("name") or "Unknown Equipment", True),
                ("Manufacturer", submission.get("manufacturer") or "Unknown", True),
                ("Category", str(category).capitalize() if category else "Unknown", True),
                ("Subcategory", submission.get("subcategory") or "N/A", True),
                ("Submitted by", submission.get("submitter_email") or "Anonymous", True),
            ],
        )
        return self._deliver(
            "new_equipment_submission",
            ItemKind.EQUIPMENT_SUBMISSION,
            submission,
            embed,
            "Approve",
            "Reject",
        )

    @staticmethod
    def _summarize_player_changes(edit_data: Dict[str, Any]) -> List[str]:
        changes = []
        if edit_data.get("name"):
            changes.append(f"Name: {edit_data['name']}")
        if edit_data.get("highest_rating"):
            changes.append(f"Rating: {edit_data['highest_rating']}")
        if edit_data.get("active_years"):
            changes.append(f"Active: {edit_data['active_years']}")
        if edit_data.get("active") is not None:
            changes.append(f"Status: {'Active' if edit_data['active'] else 'Inactive'}")
        return changes

    def _embed(self, title: str, description: str, color: int, fields) -> Dict[str, Any]:
        return {
            "title": title,
            "description": description,
            "color": color,
            "fields": [
                {"name": name, "value": str(value), "inline": inline}
                for name, value, inline in fields
            ],
            "timestamp": self.clock.now().isoformat(),
        }

    def _deliver(
        self,
        notification_type: str,
        kind: ItemKind,
        data: Dict[str, Any],
        embed: Dict[str, Any],
        approve_label: str,
        reject_label: str,
    ) -> NotificationResult:
        if not self.config.webhook_url:
            raise DiscordConfigurationError("DISCORD_WEBHOOK_URL not configured")

        item_id = str(data.get("id") or "")
        payload = {
            "embeds": [embed],
            "components": moderation_buttons(kind, item_id, approve_label, reject_label),
        }
        try:
            response = self.session.post(
                self.config.webhook_url,
                json=payload,
                timeout=self.config.notify_timeout_seconds,
            )
        except requests.RequestException as e:
            self.events.emit(
                "DISCORD_NOTIFY",
                notification_type=notification_type,
                item_id=item_id,
                success=False,
                error=str(e),
            )
            return NotificationResult(success=False, error=str(e))

        success = 200 <= response.status_code < 300
        self.events.emit(
            "DISCORD_NOTIFY",
            notification_type=notification_type,
            item_id=item_id,
            success=success,
            status_code=response.status_code,
        )
        return NotificationResult(success=success, status_code=response.status_code)
