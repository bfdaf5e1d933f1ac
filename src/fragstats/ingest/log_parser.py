"""Classify raw server log lines and extract typed events.

Every supported line starts with ``L MM/DD/YYYY - HH:MM:SS: `` followed by
one of seven event shapes. Rules are tried in a fixed priority order and the
first match wins; a line that matches nothing is not an error, it simply
produces no event.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Tuple

from fragstats.ingest.timestamps import parse_timestamp
from fragstats.models import (
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


_PREFIX = r"^L (\d{2}/\d{2}/\d{4} - \d{2}:\d{2}:\d{2}): "
_IDENTITY = r'"(.+?)<(\d+)><(.+?)><(.+?)>"'
_POSITION = r"(?:\[(-?\d+) (-?\d+) (-?\d+)\] )?"

KILL_PATTERN = re.compile(
    _PREFIX
    + _IDENTITY
    + " "
    + _POSITION
    + "killed "
    + _IDENTITY
    + " "
    + _POSITION
    + r'with "(.+?)"(?: \((.+?)\))?'
)
CONNECT_PATTERN = re.compile(_PREFIX + r'"(.+?)<(\d+)><(.+?)><>" connected, address "(.+?):(\d+)"')
DISCONNECT_PATTERN = re.compile(_PREFIX + _IDENTITY + r' disconnected \(reason "(.+?)"\)')
CHAT_PATTERN = re.compile(_PREFIX + _IDENTITY + r' say "(.+?)"')
TEAM_CHAT_PATTERN = re.compile(_PREFIX + _IDENTITY + r' say_team "(.+?)"')
MAP_CHANGE_PATTERN = re.compile(_PREFIX + r'Loading map "(.+?)"')
ROUND_END_PATTERN = re.compile(_PREFIX + r'World triggered "Round_End"')

HEADSHOT_MARKER = "headshot"


def _position(match: re.Match[str], first_group: int) -> Optional[Position]:
    x = match.group(first_group)
    if x is None or x == "":
        return None
    return (int(x), int(match.group(first_group + 1)), int(match.group(first_group + 2)))


def _identity(match: re.Match[str], first_group: int, *, position: Optional[Position] = None) -> PlayerIdentity:
    return PlayerIdentity(
        name=match.group(first_group),
        server_id=match.group(first_group + 1),
        steam_id=match.group(first_group + 2),
        team=match.group(first_group + 3),
        position=position,
    )


def _build_kill(match: re.Match[str]) -> KillEvent:
    suffix = match.group(17)
    return KillEvent(
        timestamp=parse_timestamp(match.group(1)),
        killer=_identity(match, 2, position=_position(match, 6)),
        victim=_identity(match, 9, position=_position(match, 13)),
        weapon=match.group(16),
        headshot=suffix is not None and HEADSHOT_MARKER in suffix,
    )


def _build_connect(match: re.Match[str]) -> ConnectEvent:
    return ConnectEvent(
        timestamp=parse_timestamp(match.group(1)),
        player=PlayerIdentity(
            name=match.group(2),
            server_id=match.group(3),
            steam_id=match.group(4),
            team="",
        ),
        ip_address=match.group(5),
        port=int(match.group(6)),
    )


def _build_disconnect(match: re.Match[str]) -> DisconnectEvent:
    return DisconnectEvent(
        timestamp=parse_timestamp(match.group(1)),
        player=_identity(match, 2),
        reason=match.group(6),
    )


def _build_chat(match: re.Match[str]) -> ChatEvent:
    return ChatEvent(
        timestamp=parse_timestamp(match.group(1)),
        player=_identity(match, 2),
        message=match.group(6),
    )


def _build_team_chat(match: re.Match[str]) -> TeamChatEvent:
    return TeamChatEvent(
        timestamp=parse_timestamp(match.group(1)),
        player=_identity(match, 2),
        message=match.group(6),
    )


def _build_map_change(match: re.Match[str]) -> MapChangeEvent:
    return MapChangeEvent(timestamp=parse_timestamp(match.group(1)), map=match.group(2))


def _build_round_end(match: re.Match[str]) -> RoundEndEvent:
    return RoundEndEvent(timestamp=parse_timestamp(match.group(1)))


@dataclass(frozen=True)
class LogRule:
    name: str
    pattern: re.Pattern[str]
    build: Callable[[re.Match[str]], ParsedEvent]


# Order matters: the first matching rule wins.
LOG_RULES: Tuple[LogRule, ...] = (
    LogRule("kill", KILL_PATTERN, _build_kill),
    LogRule("connect", CONNECT_PATTERN, _build_connect),
    LogRule("disconnect", DISCONNECT_PATTERN, _build_disconnect),
    LogRule("chat", CHAT_PATTERN, _build_chat),
    LogRule("team_chat", TEAM_CHAT_PATTERN, _build_team_chat),
    LogRule("map_change", MAP_CHANGE_PATTERN, _build_map_change),
    LogRule("round_end", ROUND_END_PATTERN, _build_round_end),
)


class LogParser:
    """Stateless line classifier; safe to share between threads."""

    def __init__(self, rules: Iterable[LogRule] = LOG_RULES):
        self.rules = tuple(rules)

    def match_rule(self, line: str) -> Optional[Tuple[LogRule, re.Match[str]]]:
        for rule in self.rules:
            match = rule.pattern.match(line)
            if match:
                return rule, match
        return None

    def parse(self, line: str) -> Optional[ParsedEvent]:
        """Return the event for ``line`` or ``None`` when no rule matches.

        Raises ``TimestampFormatError`` when a rule matches structurally but
        the embedded timestamp is not a real date/time.
        """

        found = self.match_rule(line)
        if found is None:
            return None
        rule, match = found
        return rule.build(match)

    def parse_lines(self, lines: Iterable[str]) -> Iterator[Tuple[str, Optional[ParsedEvent]]]:
        for line in iter_log_lines(lines):
            yield line, self.parse(line)


def iter_log_lines(lines: Iterable[str]) -> Iterator[str]:
    """Yield ``lines`` without trailing newlines, skipping blank ones."""

    for raw in lines:
        line = raw.rstrip("\r\n")
        if line.strip():
            yield line


_DEFAULT_PARSER = LogParser()


def parse_line(line: str) -> Optional[ParsedEvent]:
    return _DEFAULT_PARSER.parse(line)
