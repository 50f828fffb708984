"""
Data model for the clickstream analytics engine.

Raw feed records arrive as loosely typed mappings (JSON documents or DynamoDB
items). They are normalized here into frozen dataclasses so every derived
aggregate is built from the same validated shape.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Event payload variant: scalar, nested mapping or list of payload values
EventValue = Union[str, int, float, bool, None, Dict[str, "EventValue"], List["EventValue"]]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_event_value(value: Any) -> EventValue:
    """Coerce a raw payload value (JSON or DynamoDB) into an EventValue."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return decimal_number(value)
    if isinstance(value, Mapping):
        return {str(k): normalize_event_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [normalize_event_value(v) for v in value]
    return str(value)


def decimal_number(value: Decimal) -> Union[int, float]:
    """Convert a DynamoDB Decimal to int when integral, float otherwise."""
    try:
        if value == value.to_integral_value():
            return int(value)
    except (InvalidOperation, OverflowError, ValueError):
        pass
    return float(value)


def _read_only(obj: Any, *names: str) -> None:
    for name in names:
        object.__setattr__(obj, name, MappingProxyType(dict(getattr(obj, name))))


def text_value(data: Mapping[str, EventValue], key: str) -> Optional[str]:
    """Return a non-empty string payload value, or None."""
    value = data.get(key)
    if isinstance(value, str) and value:
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def number_value(data: Mapping[str, EventValue], key: str) -> Optional[float]:
    """Return a numeric payload value (numeric strings accepted), or None."""
    value = data.get(key)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a feed timestamp into an aware UTC datetime.

    Accepts ISO 8601 strings (with "Z", an offset, or naive = UTC), epoch
    milliseconds and datetime objects. Returns None when unparsable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float, Decimal)):
        try:
            dt = EPOCH + timedelta(milliseconds=float(value))
        except (OverflowError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def epoch_ms(dt: datetime) -> int:
    """Integer milliseconds since the Unix epoch."""
    return (dt - EPOCH) // timedelta(milliseconds=1)


def to_iso(dt: Optional[datetime]) -> str:
    if dt is None:
        return ""
    return dt.isoformat().replace("+00:00", "Z")


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text or None


@dataclass(frozen=True)
class EventRecord:
    """A single user-interaction event. Source of truth for all aggregates.

    ``event_data`` is a read-only mapping, so records are not hashable.
    """

    id: int
    event_type: str
    user_id: str
    page_url: Optional[str]
    user_agent: str
    ip_address: Optional[str]
    event_data: Mapping[str, EventValue]
    created_at: datetime

    def __post_init__(self):
        _read_only(self, "event_data")

    @property
    def created_ms(self) -> int:
        return epoch_ms(self.created_at)

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["EventRecord"]:
        """
        Build an EventRecord from a feed record.

        Accepts snake_case and camelCase keys. Returns None when the record is
        malformed (not a mapping, or no event type, user id or timestamp).
        """
        if isinstance(raw, EventRecord):
            return raw
        if not isinstance(raw, Mapping):
            logger.debug(f"Skipping non-mapping event record: {type(raw).__name__}")
            return None

        event_type = _optional_str(_first(raw, "event_type", "eventType"))
        user_id = _optional_str(_first(raw, "user_id", "userId"))
        created_at = parse_timestamp(_first(raw, "created_at", "createdAt", "timestamp"))

        if not event_type or not user_id or created_at is None:
            logger.debug(f"Skipping malformed event record: {raw.get('id')}")
            return None

        try:
            event_id = int(_first(raw, "id") or 0)
        except (TypeError, ValueError, OverflowError):
            event_id = 0

        event_data = _first(raw, "event_data", "eventData")
        if not isinstance(event_data, Mapping):
            event_data = {}

        return cls(
            id=event_id,
            event_type=event_type,
            user_id=user_id,
            page_url=_optional_str(_first(raw, "page_url", "pageUrl")),
            user_agent=str(_first(raw, "user_agent", "userAgent") or ""),
            ip_address=_optional_str(_first(raw, "ip_address", "ipAddress")),
            event_data=normalize_event_value(event_data),
            created_at=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "user_id": self.user_id,
            "page_url": self.page_url,
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "event_data": dict(self.event_data),
            "created_at": to_iso(self.created_at),
        }


@dataclass(frozen=True)
class Session:
    """A maximal run of one user's events with no gap above the idle threshold."""

    user_id: str
    events: Tuple[EventRecord, ...]

    @property
    def start_time(self) -> datetime:
        return self.events[0].created_at

    @property
    def end_time(self) -> datetime:
        return self.events[-1].created_at

    @property
    def duration_seconds(self) -> float:
        if len(self.events) < 2:
            return 0
        return (self.events[-1].created_ms - self.events[0].created_ms) / 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "duration": self.duration_seconds,
            "event_count": len(self.events),
            "event_ids": [e.id for e in self.events],
        }


@dataclass(frozen=True)
class UserSessionSummary:
    user_id: str
    event_count: int
    sessions: Tuple[Session, ...]

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "event_count": self.event_count,
            "session_count": self.session_count,
            "sessions": [s.to_dict() for s in self.sessions],
        }


@dataclass(frozen=True)
class UserJourney:
    """The ordered event types of one session."""

    user_id: str
    journey: Tuple[str, ...]
    events: Tuple[EventRecord, ...]
    start_time: datetime
    end_time: datetime
    duration_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "journey": list(self.journey),
            "event_ids": [e.id for e in self.events],
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "duration": self.duration_seconds,
        }


@dataclass(frozen=True)
class JourneyPath:
    path: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "count": self.count}


@dataclass(frozen=True)
class CountEntry:
    """One bucket of a ranked tally (event type, time bucket or page URL)."""

    key: str
    count: int


@dataclass(frozen=True)
class ProductInteraction:
    name: str
    count: int
    price: Optional[float] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "count": self.count,
            "price": self.price,
            "category": self.category,
        }


@dataclass(frozen=True)
class ResponseTimeSample:
    value: float
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "timestamp": self.timestamp}


@dataclass(frozen=True)
class EndpointMetric:
    """Merged analytics for one endpoint URL. Count maps are read-only."""

    endpoint: str
    status_code_counts: Mapping[str, int]
    response_times: Tuple[ResponseTimeSample, ...]
    hourly_counts: Mapping[str, int]
    daily_counts: Mapping[str, int]
    average_response_time: Mapping[str, str]
    requests_per_minute: float
    rate_timestamp: Optional[float]
    occurrences: int

    def __post_init__(self):
        _read_only(self, "status_code_counts", "hourly_counts", "daily_counts", "average_response_time")

    @property
    def total_requests(self) -> int:
        return sum(self.status_code_counts.values())

    def to_dict(self) -> Dict[str, Any]:
        # Counts go back out as strings, matching the feed's wire format
        return {
            "endpoint": self.endpoint,
            "analytics": {
                "responseTimes": [s.to_dict() for s in self.response_times],
                "statusCodes": {k: str(v) for k, v in self.status_code_counts.items()},
                "patterns": {
                    "hourly": {k: str(v) for k, v in self.hourly_counts.items()},
                    "daily": {k: str(v) for k, v in self.daily_counts.items()},
                    "averageResponseTime": dict(self.average_response_time),
                },
            },
            "currentRate": {
                "requestsPerMinute": self.requests_per_minute,
                "timestamp": self.rate_timestamp,
            },
            "occurrences": self.occurrences,
        }


@dataclass(frozen=True)
class EndpointSummary:
    total_endpoints: int = 0
    total_requests: int = 0
    status_code_distribution: Mapping[str, int] = field(default_factory=dict)
    error_count: int = 0
    error_rate: float = 0.0
    average_response_time: float = 0.0
    slowest_endpoint: Optional[str] = None
    slowest_response_time: float = 0.0
    endpoint_types: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        _read_only(self, "status_code_distribution", "endpoint_types")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_endpoints": self.total_endpoints,
            "total_requests": self.total_requests,
            "status_codes": dict(self.status_code_distribution),
            "error_count": self.error_count,
            "error_rate": self.error_rate,
            "avg_response_time": self.average_response_time,
            "slowest_endpoint": self.slowest_endpoint,
            "slowest_response_time": self.slowest_response_time,
            "endpoint_types": dict(self.endpoint_types),
        }


@dataclass(frozen=True)
class AnalyticsSnapshot:
    """One complete, immutable output of the aggregation engine."""

    events: Tuple[EventRecord, ...] = ()
    sessions: Tuple[Session, ...] = ()
    user_sessions: Tuple[UserSessionSummary, ...] = ()
    journeys: Tuple[UserJourney, ...] = ()
    event_type_counts: Tuple[CountEntry, ...] = ()
    timeline: Tuple[CountEntry, ...] = ()
    page_view_counts: Tuple[CountEntry, ...] = ()
    product_interactions: Tuple[ProductInteraction, ...] = ()
    top_journey_paths: Tuple[JourneyPath, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events": [e.to_dict() for e in self.events],
            "sessions": [s.to_dict() for s in self.sessions],
            "user_sessions": [u.to_dict() for u in self.user_sessions],
            "user_journeys": [j.to_dict() for j in self.journeys],
            "event_types": [{"type": c.key, "count": c.count} for c in self.event_type_counts],
            "timeline": [{"time": c.key, "count": c.count} for c in self.timeline],
            "page_views_by_url": [{"url": c.key, "count": c.count} for c in self.page_view_counts],
            "product_interactions": [p.to_dict() for p in self.product_interactions],
            "top_journey_paths": [p.to_dict() for p in self.top_journey_paths],
        }
