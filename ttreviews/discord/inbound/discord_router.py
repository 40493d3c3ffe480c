import json
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from ttreviews.admin.inbound.moderation_router import bearer_identity
from ttreviews.admin.security.admin_session import AdminSessionVerifier
from ttreviews.discord.services.interaction_gateway import DiscordInteractionGateway
from ttreviews.discord.services.webhook_notifier import DiscordWebhookNotifier, NotificationResult
from ttreviews.moderation.domain.exceptions import ConfigurationError
from ttreviews.observability.structured_event_logger import StructuredEventLogger

logger = logging.getLogger(__name__)


def build_discord_router(
    gateway: DiscordInteractionGateway,
    notifier: DiscordWebhookNotifier,
    admin_verifier: AdminSessionVerifier,
    events: Optional[StructuredEventLogger] = None,
):
    router = APIRouter(prefix="/discord", tags=["discord"])
    events = events or StructuredEventLogger()

    notifications: Dict[str, Callable[[Dict[str, Any]], NotificationResult]] = {
        "new_review": notifier.notify_new_review,
        "new_player_edit": notifier.notify_new_player_edit,
        "new_equipment_submission": notifier.notify_new_equipment_submission,
    }

    async def _signed_payload(request: Request, signature: Optional[str], timestamp: Optional[str]) -> Dict[str, Any]:
        # 1. Signature headers
        if not signature or not timestamp:
            raise HTTPException(status_code=401, detail="Missing signature headers")
        raw_body = await request.body()

        # 2. Signature check
        try:
            valid = gateway.verify_request(signature, timestamp, raw_body)
        except ConfigurationError as exc:
            logger.error(f"Discord signature verification misconfigured: {exc}")
            raise HTTPException(status_code=500, detail="Internal server error")
        if not valid:
            raise HTTPException(status_code=401, detail="Invalid signature")

        # 3. Parse body
        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid JSON")
        return payload

    @router.post("/interactions")
    async def interactions(
        request: Request,
        x_signature_ed25519: Optional[str] = Header(None),
        x_signature_timestamp: Optional[str] = Header(None),
    ):
        payload = await _signed_payload(request, x_signature_ed25519, x_signature_timestamp)
        reply = await run_in_threadpool(gateway.handle_interaction, payload)
        if reply is None:
            raise HTTPException(status_code=400, detail="Unknown interaction type")
        return reply.to_payload()

    @router.post("/messages")
    async def messages(
        request: Request,
        x_signature_ed25519: Optional[str] = Header(None),
        x_signature_timestamp: Optional[str] = Header(None),
    ):
        payload = await _signed_payload(request, x_signature_ed25519, x_signature_timestamp)
        reply = await run_in_threadpool(gateway.handle_prefix_message, payload)
        if reply is None:
            return {"message": "No action taken"}
        return reply.to_message()

    def _operator(authorization: Optional[str] = Header(None)):
        return bearer_identity(admin_verifier, authorization, "operator", events)

    @router.post("/notify")
    def notify(payload: Dict[str, Any] = Body(...), caller=Depends(_operator)):
        notification_type = str(payload.get("type") or "")
        send = notifications.get(notification_type)
        if send is None:
            raise HTTPException(status_code=400, detail="Unknown notification type")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="Notification data must be an object")
        try:
            result = send(data)
        except ConfigurationError as exc:
            logger.error(f"Discord notification misconfigured: {exc}")
            raise HTTPException(status_code=500, detail="Internal server error")
        return {"success": True, "data": {"success": result.success}}

    return router
