"""
Aggregate assembly.

Composes the time window filter, session segmenter, journey extractor and
distribution reductions into one immutable AnalyticsSnapshot per request.
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, Iterable, List, Optional

from clickstream.distributions import (
    build_timeline,
    count_event_types,
    count_page_views,
    count_product_interactions,
)
from clickstream.journeys import TOP_PATHS_LIMIT, extract_journeys, rank_journey_paths
from clickstream.models import AnalyticsSnapshot, EventRecord
from clickstream.sessions import IDLE_GAP_MINUTES, summarize_users
from clickstream.timeframe import filter_events

logger = logging.getLogger(__name__)


def normalize_events(records: Optional[Iterable[Any]]) -> List[EventRecord]:
    """Convert raw feed records to EventRecords, dropping malformed ones."""
    events = []
    skipped = 0
    for raw in records or []:
        event = EventRecord.from_dict(raw)
        if event is None:
            skipped += 1
            continue
        events.append(event)
    if skipped:
        logger.info(f"Skipped {skipped} malformed event records")
    return events


def build_snapshot(
    records: Optional[Iterable[Any]],
    timeframe: Optional[str] = "all",
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    idle_gap_minutes: float = IDLE_GAP_MINUTES,
    top_paths: int = TOP_PATHS_LIMIT,
) -> AnalyticsSnapshot:
    """
    Build the analytics snapshot for one batch of raw event records.

    Malformed records are skipped and an empty batch yields an empty
    snapshot; this function does not raise on bad data.
    """
    events = filter_events(normalize_events(records), timeframe, now)
    if not events:
        return AnalyticsSnapshot()

    user_sessions = summarize_users(events, idle_gap_minutes)
    sessions = [s for user in user_sessions for s in user.sessions]
    journeys = extract_journeys(sessions)

    snapshot = AnalyticsSnapshot(
        events=tuple(events),
        sessions=tuple(sessions),
        user_sessions=tuple(user_sessions),
        journeys=tuple(journeys),
        event_type_counts=tuple(count_event_types(events)),
        timeline=tuple(build_timeline(events, tz)),
        page_view_counts=tuple(count_page_views(events)),
        product_interactions=tuple(count_product_interactions(events)),
        top_journey_paths=tuple(rank_journey_paths(journeys, top_paths)),
    )

    logger.debug(
        f"Built snapshot: {len(events)} events, {len(user_sessions)} users, "
        f"{len(sessions)} sessions"
    )
    return snapshot
