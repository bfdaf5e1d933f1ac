from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from fragstats.persistence import FragRecord, PlayerRecord


class PlayerResponse(BaseModel):
    id: int
    name: str
    skill: float
    kills: int
    deaths: int
    kd_ratio: float
    headshots: int
    last_event: datetime | None = None

    @classmethod
    def from_record(cls, player: PlayerRecord) -> "PlayerResponse":
        return cls(
            id=player.player_id,
            name=player.name,
            skill=round(player.skill, 2),
            kills=player.kills,
            deaths=player.deaths,
            kd_ratio=player.kd_ratio,
            headshots=player.headshots,
            last_event=player.last_event,
        )


class RankedPlayerResponse(PlayerResponse):
    rank: int


class RecentKillResponse(BaseModel):
    victim: str | None
    weapon: str
    headshot: bool
    map: str
    time: datetime

    @classmethod
    def from_frag(cls, frag: FragRecord) -> "RecentKillResponse":
        return cls(
            victim=frag.victim_name,
            weapon=frag.weapon_code,
            headshot=frag.headshot,
            map=frag.map,
            time=frag.event_time,
        )


class WeaponKillsResponse(BaseModel):
    weapon: str
    kills: int


class PlayerProfileResponse(PlayerResponse):
    headshot_percentage: float
    recent_kills: List[RecentKillResponse] = Field(default_factory=list)
    weapon_stats: List[WeaponKillsResponse] = Field(default_factory=list)


class RankingsResponse(BaseModel):
    game: str
    page: int
    per_page: int
    total: int
    players: List[RankedPlayerResponse]
