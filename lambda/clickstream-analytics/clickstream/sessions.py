"""
Session segmentation.

A user's events are split into sessions whenever the gap between two
chronologically adjacent events exceeds the idle threshold.
"""

from typing import Dict, Iterable, List

from clickstream.models import EventRecord, Session, UserSessionSummary

IDLE_GAP_MINUTES = 5


def group_by_user(events: Iterable[EventRecord]) -> Dict[str, List[EventRecord]]:
    """Group events by user id, users in first-seen order."""
    users: Dict[str, List[EventRecord]] = {}
    for event in events:
        if event.user_id not in users:
            users[event.user_id] = []
        users[event.user_id].append(event)
    return users


def segment_sessions(
    events: Iterable[EventRecord],
    idle_gap_minutes: float = IDLE_GAP_MINUTES,
) -> List[Session]:
    """
    Partition one user's events into sessions.

    Events are sorted by ``created_at`` first (stable, so equal timestamps keep
    their input order). A new session starts when the gap to the previous
    event is strictly greater than ``idle_gap_minutes``.
    """
    ordered = sorted(events, key=lambda e: e.created_ms)
    if not ordered:
        return []

    user_id = ordered[0].user_id
    sessions: List[Session] = []
    current = [ordered[0]]

    for prev, curr in zip(ordered, ordered[1:]):
        gap_minutes = (curr.created_ms - prev.created_ms) / 60000
        if gap_minutes > idle_gap_minutes:
            sessions.append(Session(user_id=user_id, events=tuple(current)))
            current = [curr]
        else:
            current.append(curr)

    sessions.append(Session(user_id=user_id, events=tuple(current)))
    return sessions


def summarize_users(
    events: Iterable[EventRecord],
    idle_gap_minutes: float = IDLE_GAP_MINUTES,
) -> List[UserSessionSummary]:
    """Segment every user's events and summarize per user."""
    summaries = []
    for user_id, user_events in group_by_user(events).items():
        sessions = segment_sessions(user_events, idle_gap_minutes)
        summaries.append(
            UserSessionSummary(
                user_id=user_id,
                event_count=len(user_events),
                sessions=tuple(sessions),
            )
        )
    return summaries
