from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple, Union

from ttreviews.discord.domain.component_action import ComponentAction, parse_custom_id


class InteractionType(IntEnum):
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3


@dataclass(frozen=True)
class DiscordUser:
    id: str
    username: str


@dataclass(frozen=True)
class Caller:
    """
    Who issued an interaction. `user` is None when the envelope carries
    neither a top-level user nor a member user.
    """
    user: Optional[DiscordUser]
    roles: Tuple[str, ...] = field(default_factory=tuple)
    guild_id: Optional[str] = None


@dataclass(frozen=True)
class PingInteraction:
    pass


@dataclass(frozen=True)
class SlashCommand:
    name: str
    caller: Caller
    options: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def first_option(self) -> str:
        return self.options[0] if self.options else ""


@dataclass(frozen=True)
class ClickedMessage:
    """The message whose button was clicked, as Discord echoes it back."""
    id: str
    embeds: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def first_embed(self) -> Optional[Dict[str, Any]]:
        return self.embeds[0] if self.embeds else None


@dataclass(frozen=True)
class ComponentClick:
    custom_id: str
    caller: Caller
    action: Optional[ComponentAction] = None
    message: Optional[ClickedMessage] = None


@dataclass(frozen=True)
class PrefixCommand:
    command: str  # "equipment" | "player"
    query: str
    caller: Caller


@dataclass(frozen=True)
class UnsupportedInteraction:
    type_code: Any


Interaction = Union[PingInteraction, SlashCommand, ComponentClick, UnsupportedInteraction]

PREFIX_COMMANDS: Tuple[Tuple[str, str], ...] = (
    ("!equipment ", "equipment"),
    ("!player ", "player"),
)


def _dict(raw: Any) -> Dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _list(raw: Any) -> List[Any]:
    return raw if isinstance(raw, list) else []


def _user(raw: Any) -> Optional[DiscordUser]:
    if not isinstance(raw, dict) or raw.get("id") is None:
        return None
    return DiscordUser(id=str(raw["id"]), username=str(raw.get("username") or raw["id"]))


def parse_caller(payload: Dict[str, Any]) -> Caller:
    member = _dict(payload.get("member"))
    # Guild interactions nest the user under `member`; DMs carry it at top level.
    user = _user(payload.get("user")) or _user(member.get("user"))
    roles = _list(member.get("roles"))
    guild_id = payload.get("guild_id")
    return Caller(
        user=user,
        roles=tuple(str(role) for role in roles),
        guild_id=str(guild_id) if guild_id is not None else None,
    )


def parse_clicked_message(raw: Any) -> Optional[ClickedMessage]:
    if not isinstance(raw, dict):
        return None
    return ClickedMessage(
        id=str(raw.get("id") or ""),
        embeds=tuple(embed for embed in _list(raw.get("embeds")) if isinstance(embed, dict)),
    )


def parse_interaction(payload: Dict[str, Any]) -> Interaction:
    type_code = payload.get("type")
    data = _dict(payload.get("data"))

    if type_code == InteractionType.PING:
        return PingInteraction()

    if type_code == InteractionType.APPLICATION_COMMAND:
        options = tuple(
            str(option.get("value", ""))
            for option in _list(data.get("options"))
            if isinstance(option, dict)
        )
        return SlashCommand(
            name=str(data.get("name") or ""),
            caller=parse_caller(payload),
            options=options,
        )

    if type_code == InteractionType.MESSAGE_COMPONENT:
        custom_id = str(data.get("custom_id") or "")
        return ComponentClick(
            custom_id=custom_id,
            caller=parse_caller(payload),
            action=parse_custom_id(custom_id),
            message=parse_clicked_message(payload.get("message")),
        )

    return UnsupportedInteraction(type_code=type_code)


def parse_prefix_message(payload: Dict[str, Any]) -> Optional[PrefixCommand]:
    """
    Recognise `!equipment <query>` and `!player <query>`; anything else is None.
    """
    content = payload.get("content")
    if not isinstance(content, str):
        return None
    content = content.strip()
    for prefix, command in PREFIX_COMMANDS:
        if content.startswith(prefix):
            return PrefixCommand(
                command=command,
                query=content[len(prefix):].strip(),
                caller=parse_caller(payload),
            )
    return None
