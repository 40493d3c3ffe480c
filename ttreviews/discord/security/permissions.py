from typing import Iterable, Optional

from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.discord.domain.interaction import Caller


class RolePermissionPolicy:
    """
    Role allow-list for moderation commands. An empty allow-list admits
    every caller.
    """

    def __init__(self, allowed_role_ids: Iterable[str] = ()):
        self.allowed_role_ids = frozenset(
            str(role).strip() for role in allowed_role_ids if str(role).strip()
        )

    @classmethod
    def from_config(cls, config: DiscordConfig) -> "RolePermissionPolicy":
        return cls(config.allowed_role_ids)

    def check(self, caller: Caller, guild_id: Optional[str] = None) -> bool:
        if not self.allowed_role_ids:
            return True
        return any(role in self.allowed_role_ids for role in caller.roles)
