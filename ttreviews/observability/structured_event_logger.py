import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ttreviews.core.clock import Clock, SystemClock

# Severity of each business event. Events not listed are INFO.
EVENT_LEVELS: Dict[str, int] = {
    "MODERATION_TRANSITION": logging.INFO,
    "MODERATION_NOOP": logging.INFO,
    "MODERATION_ERROR": logging.ERROR,
    "ACTION_LOG_WRITE_FAILED": logging.WARNING,
    "DISCORD_SIGNATURE_REJECTED": logging.WARNING,
    "DISCORD_PERMISSION_DENIED": logging.WARNING,
    "DISCORD_INTERACTION": logging.INFO,
    "DISCORD_NOTIFY": logging.INFO,
    "ADMIN_AUTH_REJECTED": logging.WARNING,
}


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return str(value)


class StructuredEventLogger:
    """
    JSON-lines logger for moderation and gateway events.

    One line per event through the `ttreviews.events` logger, at the level
    listed in EVENT_LEVELS. An event reporting `success=False` is raised to
    WARNING. Enum fields are written as their values, so callers can pass
    ItemKind / ItemStatus members directly.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, clock: Optional[Clock] = None):
        self._logger = logger or logging.getLogger("ttreviews.events")
        self._clock = clock or SystemClock()

    def level_for(self, event_type: str, fields: Dict[str, Any]) -> int:
        level = EVENT_LEVELS.get(event_type, logging.INFO)
        if fields.get("success") is False:
            level = max(level, logging.WARNING)
        return level

    def emit(self, event_type: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {
            "timestamp": self._clock.now().isoformat(),
            "event_type": event_type,
        }
        payload.update(fields)
        self._logger.log(
            self.level_for(event_type, fields),
            json.dumps(payload, default=_encode, ensure_ascii=True),
        )
