"""Kill-feed notifications handed to broadcast collaborators."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime
from typing import List

from pydantic import BaseModel
from pydantic.config import ConfigDict

from fragstats.persistence import FragRecord


logger = logging.getLogger("uvicorn.error")

KILL_FEED_EVENT = "kill.feed"


class FeedPlayer(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(frozen=True)


class KillFeedNotification(BaseModel):
    """Payload describing one new frag: ``{killer, victim, weapon, headshot, timestamp}``."""

    killer: FeedPlayer
    victim: FeedPlayer
    weapon: str
    headshot: bool
    timestamp: datetime

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_frag(cls, frag: FragRecord, *, killer_name: str, victim_name: str) -> "KillFeedNotification":
        return cls(
            killer=FeedPlayer(id=frag.killer_id, name=killer_name),
            victim=FeedPlayer(id=frag.victim_id, name=victim_name),
            weapon=frag.weapon_code,
            headshot=frag.headshot,
            timestamp=frag.event_time,
        )


def channel_for_game(game_code: str) -> str:
    return f"game.{game_code}"


class LoggingBroadcaster:
    """Broadcaster that only writes notifications to the log."""

    def publish(self, channel: str, event: str, notification: KillFeedNotification) -> None:
        logger.info("%s %s %s", channel, event, notification.model_dump_json())


class MemoryBroadcaster:
    """Keeps the most recent notifications so the API can serve a live feed."""

    def __init__(self, size: int = 50):
        self._lock = threading.Lock()
        self._items: deque[tuple[str, KillFeedNotification]] = deque(maxlen=max(1, size))

    def publish(self, channel: str, event: str, notification: KillFeedNotification) -> None:
        with self._lock:
            self._items.appendleft((channel, notification))

    def recent(self, *, channel: str | None = None, limit: int | None = None) -> List[KillFeedNotification]:
        with self._lock:
            items = [item for ch, item in self._items if channel is None or ch == channel]
        return items[:limit] if limit is not None else items

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
