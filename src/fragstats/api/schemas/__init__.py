"""Pydantic models for API I/O."""

from .player import (
    PlayerProfileResponse,
    PlayerResponse,
    RankedPlayerResponse,
    RankingsResponse,
    RecentKillResponse,
    WeaponKillsResponse,
)
from .stats import (
    FragPlayerResponse,
    FragResponse,
    IngestFailureResponse,
    IngestReportResponse,
    MapStatisticsResponse,
    ProcessedKillResponse,
    ServerResponse,
    WeaponStatisticsResponse,
)

__all__ = [
    "FragPlayerResponse",
    "FragResponse",
    "IngestFailureResponse",
    "IngestReportResponse",
    "MapStatisticsResponse",
    "PlayerProfileResponse",
    "PlayerResponse",
    "ProcessedKillResponse",
    "RankedPlayerResponse",
    "RankingsResponse",
    "RecentKillResponse",
    "ServerResponse",
    "WeaponKillsResponse",
    "WeaponStatisticsResponse",
]
