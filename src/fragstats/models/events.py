"""Typed events extracted from game-server log lines."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


Position = Tuple[int, int, int]


class PlayerIdentity(BaseModel):
    """A player as printed in a log line: ``"name<id><steam_id><team>"``."""

    name: str
    server_id: str
    steam_id: str = Field(..., min_length=1)
    team: str = ""
    position: Optional[Position] = None

    model_config = ConfigDict(frozen=True)


class _LogEvent(BaseModel):
    timestamp: datetime

    model_config = ConfigDict(frozen=True)


class KillEvent(_LogEvent):
    type: Literal["kill"] = "kill"
    killer: PlayerIdentity
    victim: PlayerIdentity
    weapon: str = Field(..., min_length=1)
    headshot: bool = False


class ConnectEvent(_LogEvent):
    type: Literal["connect"] = "connect"
    player: PlayerIdentity
    ip_address: str
    port: int


class DisconnectEvent(_LogEvent):
    type: Literal["disconnect"] = "disconnect"
    player: PlayerIdentity
    reason: str


class ChatEvent(_LogEvent):
    type: Literal["chat"] = "chat"
    player: PlayerIdentity
    message: str


class TeamChatEvent(_LogEvent):
    type: Literal["team_chat"] = "team_chat"
    player: PlayerIdentity
    message: str


class MapChangeEvent(_LogEvent):
    type: Literal["map_change"] = "map_change"
    map: str


class RoundEndEvent(_LogEvent):
    type: Literal["round_end"] = "round_end"


ParsedEvent = Annotated[
    Union[
        KillEvent,
        ConnectEvent,
        DisconnectEvent,
        ChatEvent,
        TeamChatEvent,
        MapChangeEvent,
        RoundEndEvent,
    ],
    Field(discriminator="type"),
]
