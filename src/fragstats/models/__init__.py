"""Event models shared by the parser, pipeline and API layers."""

from .events import (
    ChatEvent,
    ConnectEvent,
    DisconnectEvent,
    KillEvent,
    MapChangeEvent,
    ParsedEvent,
    PlayerIdentity,
    Position,
    RoundEndEvent,
    TeamChatEvent,
)

__all__ = [
    "ChatEvent",
    "ConnectEvent",
    "DisconnectEvent",
    "KillEvent",
    "MapChangeEvent",
    "ParsedEvent",
    "PlayerIdentity",
    "Position",
    "RoundEndEvent",
    "TeamChatEvent",
]
