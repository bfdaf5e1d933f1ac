from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, Field

from fragstats.persistence import FragRecord, ServerRecord, WeaponUsage


class WeaponStatisticsResponse(BaseModel):
    code: str
    name: str
    kills: int
    headshots: int
    headshot_percentage: float

    @classmethod
    def from_usage(cls, usage: WeaponUsage) -> "WeaponStatisticsResponse":
        return cls(
            code=usage.code,
            name=usage.name,
            kills=usage.kills,
            headshots=usage.headshots,
            headshot_percentage=usage.headshot_percentage,
        )


class MapStatisticsResponse(BaseModel):
    map: str
    kills: int


class ServerResponse(BaseModel):
    id: int
    name: str
    address: str
    port: int
    public_address: str | None
    map: str | None
    last_activity: datetime | None
    online: bool

    @classmethod
    def from_record(cls, server: ServerRecord, *, online_minutes: int = 5) -> "ServerResponse":
        return cls(
            id=server.server_id,
            name=server.name,
            address=server.address,
            port=server.port,
            public_address=server.public_address,
            map=server.map,
            last_activity=server.last_activity,
            online=server.is_online(minutes=online_minutes),
        )


class FragPlayerResponse(BaseModel):
    id: int
    name: str | None


class FragResponse(BaseModel):
    id: int
    killer: FragPlayerResponse
    victim: FragPlayerResponse
    weapon: str
    server: str | None
    headshot: bool
    map: str
    event_time: datetime
    position: List[int] | None = None

    @classmethod
    def from_record(cls, frag: FragRecord) -> "FragResponse":
        position = None
        if frag.pos_x is not None:
            position = [frag.pos_x, frag.pos_y, frag.pos_z]
        return cls(
            id=frag.frag_id,
            killer=FragPlayerResponse(id=frag.killer_id, name=frag.killer_name),
            victim=FragPlayerResponse(id=frag.victim_id, name=frag.victim_name),
            weapon=frag.weapon_code,
            server=frag.server_name,
            headshot=frag.headshot,
            map=frag.map,
            event_time=frag.event_time,
            position=position,
        )


class IngestFailureResponse(BaseModel):
    line: str
    reason: str


class IngestReportResponse(BaseModel):
    server_id: int
    lines_read: int
    unparsed_lines: int
    kills_processed: int
    events_by_type: Dict[str, int] = Field(default_factory=dict)
    failures: List[IngestFailureResponse] = Field(default_factory=list)


class ProcessedKillResponse(BaseModel):
    frag: FragResponse
    killer_rating: float
    victim_rating: float
    killer_delta: float
    victim_delta: float
