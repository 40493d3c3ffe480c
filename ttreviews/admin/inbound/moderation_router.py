import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException
from fastapi.encoders import jsonable_encoder

from ttreviews.admin.security.admin_session import (
    AdminAuthError,
    AdminIdentity,
    AdminSessionVerifier,
    require_role,
)
from ttreviews.admin.services.admin_moderation_gateway import AdminModerationGateway
from ttreviews.moderation.domain.exceptions import ConfigurationError
from ttreviews.moderation.domain.item_kind import ItemKind
from ttreviews.moderation.domain.moderation_result import ModerationStatus
from ttreviews.observability.structured_event_logger import StructuredEventLogger

logger = logging.getLogger(__name__)

KIND_SEGMENTS: Dict[str, ItemKind] = {
    "reviews": ItemKind.REVIEW,
    "player-edits": ItemKind.PLAYER_EDIT,
    "equipment-submissions": ItemKind.EQUIPMENT_SUBMISSION,
}

KIND_LABELS: Dict[ItemKind, str] = {
    ItemKind.REVIEW: "Review",
    ItemKind.PLAYER_EDIT: "Player edit",
    ItemKind.EQUIPMENT_SUBMISSION: "Equipment submission",
}


def bearer_identity(
    verifier: AdminSessionVerifier,
    authorization: Optional[str],
    required_role: str,
    events: Optional[StructuredEventLogger] = None,
) -> AdminIdentity:
    """
    Resolve `Authorization: Bearer <token>` to an identity holding at least
    `required_role`. Missing or invalid tokens are 401, weaker roles 403.
    """
    events = events or StructuredEventLogger()
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        identity = verifier.verify(token)
    except ConfigurationError as exc:
        logger.error(f"Admin authentication misconfigured: {exc}")
        raise HTTPException(status_code=500, detail="Admin authentication is not configured")
    except AdminAuthError as exc:
        events.emit("ADMIN_AUTH_REJECTED", reason=str(exc))
        raise HTTPException(status_code=401, detail=str(exc))
    try:
        require_role(identity, required_role)
    except AdminAuthError as exc:
        events.emit("ADMIN_AUTH_REJECTED", reason=str(exc), sub=identity.sub)
        raise HTTPException(status_code=403, detail=str(exc))
    return identity


def _kind(segment: str) -> ItemKind:
    kind = KIND_SEGMENTS.get(segment)
    if kind is None:
        raise HTTPException(status_code=404, detail=f"Unknown moderation queue: {segment}")
    return kind


def item_view(item) -> Dict[str, Any]:
    view = jsonable_encoder(asdict(item))
    view["kind"] = item.kind.value
    return view


def build_moderation_router(
    gateway: AdminModerationGateway,
    verifier: AdminSessionVerifier,
    events: Optional[StructuredEventLogger] = None,
):
    router = APIRouter(prefix="/moderation", tags=["moderation"])
    events = events or StructuredEventLogger()

    def _claims(required_role: str):
        def _dep(authorization: Optional[str] = Header(None)):
            return bearer_identity(verifier, authorization, required_role, events)

        return _dep

    @router.get("/stats")
    def get_stats(admin=Depends(_claims("admin"))):
        return {"success": True, "data": asdict(gateway.stats())}

    @router.get("/actions")
    def recent_actions(limit: int = 50, admin=Depends(_claims("admin"))):
        limit = max(0, min(limit, 200))
        return {"success": True, "data": jsonable_encoder(gateway.recent_actions(limit))}

    @router.get("/{segment}/pending")
    def list_pending(segment: str, limit: int = 50, offset: int = 0, admin=Depends(_claims("admin"))):
        kind = _kind(segment)
        limit = max(0, min(limit, 200))
        items, total = gateway.list_pending(kind, limit=limit, offset=max(0, offset))
        return {
            "success": True,
            "data": {
                "items": [item_view(item) for item in items],
                "total": total,
                "limit": limit,
                "offset": offset,
            },
        }

    @router.get("/{segment}/{item_id}")
    def get_item(segment: str, item_id: str, admin=Depends(_claims("admin"))):
        kind = _kind(segment)
        item = gateway.get(kind, item_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"{KIND_LABELS[kind]} not found")
        return {"success": True, "data": item_view(item)}

    @router.get("/{segment}/{item_id}/actions")
    def get_actions(segment: str, item_id: str, admin=Depends(_claims("admin"))):
        kind = _kind(segment)
        return {"success": True, "data": jsonable_encoder(gateway.actions(kind, item_id))}

    @router.post("/{segment}/{item_id}/approve")
    def approve(segment: str, item_id: str, admin=Depends(_claims("admin"))):
        kind = _kind(segment)
        result = gateway.approve(kind, item_id, admin)
        if result.success:
            return {"success": True, "status": result.status.value, "message": result.message}
        if not result.found:
            raise HTTPException(status_code=404, detail=result.message)
        if result.status is ModerationStatus.ALREADY_APPROVED:
            raise HTTPException(status_code=400, detail=result.message)
        raise HTTPException(status_code=500, detail=result.message)

    @router.post("/{segment}/{item_id}/reject")
    def reject(
        segment: str,
        item_id: str,
        payload: Optional[Dict[str, Any]] = Body(None),
        admin=Depends(_claims("admin")),
    ):
        kind = _kind(segment)
        payload = payload or {}
        notes = payload.get("reason") or payload.get("notes")
        if gateway.reject(kind, item_id, admin, notes=notes):
            return {"success": True, "message": f"{KIND_LABELS[kind]} rejected"}
        if gateway.get(kind, item_id) is None:
            raise HTTPException(status_code=404, detail=f"{KIND_LABELS[kind]} not found")
        raise HTTPException(
            status_code=409,
            detail=f"{KIND_LABELS[kind]} could not be rejected. It may have already been processed.",
        )

    return router
