from dataclasses import dataclass, field
from typing import FrozenSet, Tuple

from ttreviews.config.settings import Settings

# Values shipped in sample env files; treated the same as an unset key.
PLACEHOLDER_PUBLIC_KEYS: FrozenSet[str] = frozenset({
    "your_discord_application_public_key_here",
})
MIN_PUBLIC_KEY_LENGTH = 32


@dataclass(frozen=True)
class DiscordConfig:
    """
    Explicit Discord integration settings handed to the gateway, verifier
    and notifier at construction time.
    """
    public_key: str = ""
    allowed_role_ids: Tuple[str, ...] = field(default_factory=tuple)
    webhook_url: str = ""
    site_url: str = "http://localhost:8000"
    notify_timeout_seconds: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "DiscordConfig":
        return cls(
            public_key=settings.DISCORD_PUBLIC_KEY.strip(),
            allowed_role_ids=tuple(settings.allowed_role_ids),
            webhook_url=settings.DISCORD_WEBHOOK_URL.strip(),
            site_url=settings.SITE_URL.rstrip("/"),
            notify_timeout_seconds=settings.NOTIFY_TIMEOUT_SECONDS,
        )

    @property
    def public_key_configured(self) -> bool:
        key = self.public_key
        return bool(key) and key not in PLACEHOLDER_PUBLIC_KEYS and len(key) >= MIN_PUBLIC_KEY_LENGTH
