"""Apply accepted kill events to player, weapon and frag state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional, Protocol, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.config import ConfigDict

from fragstats.config import WeaponPolicy
from fragstats.models import KillEvent, PlayerIdentity, Position
from fragstats.persistence import FragRecord, PlayerRecord, StatsSession, StatsStore, WeaponRecord
from fragstats.pipeline.notifications import (
    KILL_FEED_EVENT,
    KillFeedNotification,
    LoggingBroadcaster,
    channel_for_game,
)
from fragstats.rating import (
    DEFAULT_RATING,
    DEFAULT_WEAPON_MODIFIER,
    RatingChange,
    check_weapon_modifier,
    rate_kill,
)


logger = logging.getLogger("uvicorn.error")

UNKNOWN_MAP = "unknown"


class IngestionError(RuntimeError):
    """Base class for failures that abort a single event."""


class MissingServerError(IngestionError):
    def __init__(self, server_id: int):
        super().__init__(f"Server {server_id} not found")
        self.server_id = server_id


class MissingWeaponError(IngestionError):
    def __init__(self, game_code: str, code: str):
        super().__init__(f"Weapon {code!r} not found for game {game_code!r}")
        self.game_code = game_code
        self.code = code


class PayloadValidationError(IngestionError):
    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class Broadcaster(Protocol):
    def publish(self, channel: str, event: str, notification: KillFeedNotification) -> None: ...


class PayloadPlayer(BaseModel):
    steam_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    position: Optional[Position] = None

    model_config = ConfigDict(frozen=True)


class KillPayload(BaseModel):
    """A kill ready for ingestion, from a parsed log line or an external producer."""

    type: Literal["kill"] = "kill"
    server_id: int
    killer: PayloadPlayer
    victim: PayloadPlayer
    weapon: str = Field(..., min_length=1)
    headshot: bool = False
    map: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("timestamp")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        # Log times are naive; aware producer times are stored as naive UTC.
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, server_id: Optional[int] = None) -> "KillPayload":
        values = dict(data)
        if server_id is not None:
            values["server_id"] = server_id
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise PayloadValidationError(
                f"Invalid kill payload: {exc.error_count()} validation error(s)",
                exc.errors(include_url=False, include_context=False, include_input=False),
            ) from exc

    @classmethod
    def from_event(cls, event: KillEvent, *, server_id: int, map: Optional[str] = None) -> "KillPayload":
        def player(identity: PlayerIdentity) -> PayloadPlayer:
            return PayloadPlayer(steam_id=identity.steam_id, name=identity.name, position=identity.position)

        return cls(
            server_id=server_id,
            killer=player(event.killer),
            victim=player(event.victim),
            weapon=event.weapon,
            headshot=event.headshot,
            map=map,
            timestamp=event.timestamp,
        )


@dataclass
class ProcessedKill:
    frag: FragRecord
    killer: PlayerRecord
    victim: PlayerRecord
    weapon: WeaponRecord
    rating: RatingChange
    notification: KillFeedNotification


def placeholder_name(steam_id: str) -> str:
    return f"Player {steam_id}"


def weapon_display_name(code: str) -> str:
    return code.replace("_", " ").title()


class IngestionPipeline:
    """Turns kill events into frag records, counter and rating updates.

    Everything between resolving the server and writing the new ratings runs
    in one store transaction; the kill-feed notification is published only
    after that transaction commits.
    """

    def __init__(
        self,
        store: StatsStore,
        broadcaster: Optional[Broadcaster] = None,
        *,
        weapon_policy: WeaponPolicy = WeaponPolicy.LENIENT,
        default_rating: float = DEFAULT_RATING,
    ):
        self.store = store
        self.broadcaster = broadcaster or LoggingBroadcaster()
        self.weapon_policy = weapon_policy
        self.default_rating = default_rating

    def process(self, event: Any, *, server_id: Optional[int] = None, map: Optional[str] = None) -> Optional[ProcessedKill]:
        """Process one event; anything that is not a kill is ignored and returns ``None``."""

        try:
            payload = self._to_payload(event, server_id=server_id, map=map)
        except PayloadValidationError as exc:
            logger.warning("Kill event rejected: %s; errors=%s; event=%r", exc, exc.errors, event)
            raise
        if payload is None:
            return None
        try:
            with self.store.transaction() as session:
                result, channel = self._apply(session, payload)
        except IngestionError as exc:
            logger.warning("Kill event rejected: %s; payload=%s", exc, payload.model_dump_json())
            raise
        self.broadcaster.publish(channel, KILL_FEED_EVENT, result.notification)
        return result

    def _to_payload(self, event: Any, *, server_id: Optional[int], map: Optional[str]) -> Optional[KillPayload]:
        if isinstance(event, KillPayload):
            if server_id is not None and server_id != event.server_id:
                event = event.model_copy(update={"server_id": server_id})
            return event
        if isinstance(event, KillEvent):
            if server_id is None:
                raise PayloadValidationError("server_id is required to process a parsed kill event")
            return KillPayload.from_event(event, server_id=server_id, map=map)
        if isinstance(event, Mapping):
            if event.get("type") != "kill":
                return None
            payload = KillPayload.from_mapping(event, server_id=server_id)
            if map is not None and payload.map is None:
                payload = payload.model_copy(update={"map": map})
            return payload
        if getattr(event, "type", None) != "kill":
            return None
        raise PayloadValidationError(f"Unsupported kill event type {type(event).__name__}")

    def _apply(self, session: StatsSession, payload: KillPayload) -> Tuple[ProcessedKill, str]:
        server = session.get_server(payload.server_id)
        if server is None:
            raise MissingServerError(payload.server_id)

        killer = self._resolve_player(session, payload.killer, server.game_code)
        victim = self._resolve_player(session, payload.victim, server.game_code)
        weapon = self._resolve_weapon(session, server.game_code, payload.weapon)

        frag = session.create_frag(
            server_id=server.server_id,
            killer_id=killer.player_id,
            victim_id=victim.player_id,
            weapon_code=weapon.code,
            headshot=payload.headshot,
            map=payload.map or server.map or UNKNOWN_MAP,
            event_time=payload.timestamp,
            position=payload.killer.position,
        )

        session.increment_player_counters(
            killer.player_id,
            kills=1,
            headshots=1 if payload.headshot else 0,
            last_event=payload.timestamp,
        )
        session.increment_player_counters(victim.player_id, deaths=1, last_event=payload.timestamp)

        # Ratings come from the values read above, under the transaction lock.
        modifier = check_weapon_modifier(weapon.code, weapon.modifier)
        rating = rate_kill(killer.skill, victim.skill, weapon_modifier=modifier, headshot=payload.headshot)
        if killer.player_id == victim.player_id:
            rating = RatingChange(killer.skill, killer.skill, victim.skill, victim.skill)
        else:
            session.update_player_rating(killer.player_id, rating.killer_after)
            session.update_player_rating(victim.player_id, rating.victim_after)
        killer = session.find_player_by_steam_id(killer.steam_id) or killer
        victim = session.find_player_by_steam_id(victim.steam_id) or victim

        logger.debug(
            "Frag %s: %s -> %s with %s (killer %+.2f, victim %+.2f)",
            frag.frag_id,
            killer.steam_id,
            victim.steam_id,
            weapon.code,
            rating.killer_delta,
            rating.victim_delta,
        )
        notification = KillFeedNotification.from_frag(frag, killer_name=killer.name, victim_name=victim.name)
        result = ProcessedKill(
            frag=frag,
            killer=killer,
            victim=victim,
            weapon=weapon,
            rating=rating,
            notification=notification,
        )
        return result, channel_for_game(server.game_code)

    def _resolve_player(self, session: StatsSession, player: PayloadPlayer, game_code: str) -> PlayerRecord:
        existing = session.find_player_by_steam_id(player.steam_id)
        if existing is not None:
            return existing
        logger.info("Creating player %s (%s)", player.steam_id, player.name or "unnamed")
        return session.create_player(
            steam_id=player.steam_id,
            name=player.name or placeholder_name(player.steam_id),
            game_code=game_code,
            skill=self.default_rating,
            kills=0,
            deaths=0,
            headshots=0,
        )

    def _resolve_weapon(self, session: StatsSession, game_code: str, code: str) -> WeaponRecord:
        weapon = session.find_weapon(game_code, code)
        if weapon is not None:
            return weapon
        if self.weapon_policy is WeaponPolicy.STRICT:
            raise MissingWeaponError(game_code, code)
        logger.info("Auto-creating weapon %s for game %s", code, game_code)
        return session.create_weapon(
            game_code=game_code,
            code=code,
            name=weapon_display_name(code),
            modifier=DEFAULT_WEAPON_MODIFIER,
        )
