"""Batch ingestion of raw log text for one server."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from fragstats.ingest import LogParser, TimestampFormatError, iter_log_lines
from fragstats.models import KillEvent, MapChangeEvent
from fragstats.pipeline.service import (
    IngestionError,
    IngestionPipeline,
    MissingServerError,
)


logger = logging.getLogger("uvicorn.error")


@dataclass
class IngestReport:
    server_id: int
    lines_read: int = 0
    unparsed_lines: int = 0
    kills_processed: int = 0
    events_by_type: Counter = field(default_factory=Counter)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "server_id": self.server_id,
            "lines_read": self.lines_read,
            "unparsed_lines": self.unparsed_lines,
            "kills_processed": self.kills_processed,
            "events_by_type": dict(self.events_by_type),
            "failures": [{"line": line, "reason": reason} for line, reason in self.failures],
        }


def ingest_lines(
    lines: Iterable[str],
    server_id: int,
    pipeline: IngestionPipeline,
    *,
    parser: Optional[LogParser] = None,
) -> IngestReport:
    """Parse ``lines`` and feed every kill to ``pipeline``.

    Map changes update the server's current map so later kills are recorded
    on the right map. A line that fails (bad timestamp, rejected kill) is
    logged and recorded in the report; the rest of the batch continues. An
    unknown server aborts the batch since no line could succeed.
    """

    parser = parser or LogParser()
    store = pipeline.store
    if store.get_server(server_id) is None:
        raise MissingServerError(server_id)

    report = IngestReport(server_id=server_id)
    current_map: Optional[str] = None
    for line in iter_log_lines(lines):
        report.lines_read += 1
        try:
            event = parser.parse(line)
        except TimestampFormatError as exc:
            logger.warning("Skipping line with bad timestamp: %s (%s)", line, exc)
            report.failures.append((line, str(exc)))
            continue
        if event is None:
            report.unparsed_lines += 1
            continue
        report.events_by_type[event.type] += 1

        if isinstance(event, MapChangeEvent):
            current_map = event.map
            with store.transaction() as session:
                session.update_server_map(server_id, event.map, activity_at=datetime.now(timezone.utc))
            continue
        if not isinstance(event, KillEvent):
            continue

        try:
            pipeline.process(event, server_id=server_id, map=current_map)
        except MissingServerError:
            raise
        except IngestionError as exc:
            logger.warning("Failed to ingest kill: %s (%s)", line, exc)
            report.failures.append((line, str(exc)))
            continue
        report.kills_processed += 1

    if report.lines_read:
        with store.transaction() as session:
            session.update_server_map(server_id, None, activity_at=datetime.now(timezone.utc))
    logger.info(
        "Ingested %s lines for server %s: %s kills, %s unparsed, %s failed",
        report.lines_read,
        server_id,
        report.kills_processed,
        report.unparsed_lines,
        len(report.failures),
    )
    return report
