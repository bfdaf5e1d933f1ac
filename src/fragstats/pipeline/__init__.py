"""Kill ingestion pipeline, notifications and batch worker."""

from .notifications import (
    KILL_FEED_EVENT,
    FeedPlayer,
    KillFeedNotification,
    LoggingBroadcaster,
    MemoryBroadcaster,
    channel_for_game,
)
from .service import (
    Broadcaster,
    IngestionError,
    IngestionPipeline,
    KillPayload,
    MissingServerError,
    MissingWeaponError,
    PayloadPlayer,
    PayloadValidationError,
    ProcessedKill,
)
from .worker import IngestReport, ingest_lines

__all__ = [
    "KILL_FEED_EVENT",
    "Broadcaster",
    "FeedPlayer",
    "IngestReport",
    "IngestionError",
    "IngestionPipeline",
    "KillFeedNotification",
    "KillPayload",
    "LoggingBroadcaster",
    "MemoryBroadcaster",
    "MissingServerError",
    "MissingWeaponError",
    "PayloadPlayer",
    "PayloadValidationError",
    "ProcessedKill",
    "channel_for_game",
    "ingest_lines",
]
