"""Resolve dashboard timeframe tokens to absolute cutoff instants."""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from clickstream.models import EventRecord

TIMEFRAMES = {
    "hour": timedelta(hours=1),
    "day": timedelta(hours=24),
    "week": timedelta(days=7),
}


def resolve_cutoff(timeframe: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Return the earliest instant included by ``timeframe``.

    ``all`` and unrecognized tokens mean no cutoff (None).
    """
    window = TIMEFRAMES.get((timeframe or "").strip().lower())
    if window is None:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - window


def filter_events(
    events: Iterable[EventRecord],
    timeframe: Optional[str],
    now: Optional[datetime] = None,
) -> List[EventRecord]:
    cutoff = resolve_cutoff(timeframe, now)
    if cutoff is None:
        return list(events)
    return [e for e in events if e.created_at >= cutoff]
