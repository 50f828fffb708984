"""
Journey extraction and path ranking.

Each session becomes a journey (its ordered event types). Journeys are
reduced to canonical paths, with visibility noise removed, and ranked by how
often they occur.
"""

from typing import Dict, FrozenSet, Iterable, List, Sequence

from clickstream.models import JourneyPath, Session, UserJourney

NOISE_EVENT_TYPES: FrozenSet[str] = frozenset({"visibility_hidden", "visibility_visible"})
PATH_SEPARATOR = " → "
TOP_PATHS_LIMIT = 5


def extract_journeys(sessions: Iterable[Session]) -> List[UserJourney]:
    journeys = []
    for session in sessions:
        if not session.events:
            continue
        journeys.append(
            UserJourney(
                user_id=session.user_id,
                journey=tuple(e.event_type for e in session.events),
                events=session.events,
                start_time=session.start_time,
                end_time=session.end_time,
                duration_seconds=session.duration_seconds,
            )
        )
    return journeys


def canonical_path(journey: Sequence[str]) -> str:
    """Join a journey's event types into its ranking key, minus noise events."""
    return PATH_SEPARATOR.join(t for t in journey if t not in NOISE_EVENT_TYPES)


def count_paths(journeys: Iterable[UserJourney]) -> Dict[str, int]:
    """Tally canonical paths, keys in first-seen order."""
    counts: Dict[str, int] = {}
    for journey in journeys:
        path = canonical_path(journey.journey)
        counts[path] = counts.get(path, 0) + 1
    return counts


def rank_journey_paths(
    journeys: Iterable[UserJourney],
    limit: int = TOP_PATHS_LIMIT,
) -> List[JourneyPath]:
    """
    Most common canonical paths, descending by count.

    The sort is stable, so paths with equal counts keep first-seen order.
    """
    ranked = sorted(count_paths(journeys).items(), key=lambda x: x[1], reverse=True)[:limit]
    return [JourneyPath(path=path, count=count) for path, count in ranked]
