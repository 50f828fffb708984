"""
External feeds for the analytics engine.

Event feed: clickstream events stored in a DynamoDB table.
Endpoint feed: the endpoint analytics document published to S3.

Transport failures never propagate from here. They are logged and an empty,
well-formed result is returned so callers keep serving stale-but-consistent
dashboards.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from clickstream.models import EventRecord, to_iso
from clickstream.timeframe import filter_events

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 500

# Cached AWS clients (container reuse)
_dynamodb = None
_s3_client = None


def _get_dynamodb():
    global _dynamodb
    if _dynamodb is None:
        _dynamodb = boto3.resource("dynamodb")
    return _dynamodb


def _get_s3_client():
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client("s3")
    return _s3_client


@dataclass
class EventPage:
    records: List[EventRecord] = field(default_factory=list)
    total_records: int = 0
    limit: int = 0
    offset: int = 0

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total_records / self.limit)

    def metadata(self) -> Dict[str, int]:
        return {
            "totalRecords": self.total_records,
            "limit": self.limit,
            "offset": self.offset,
            "totalPages": self.total_pages,
        }


@dataclass
class EndpointFeed:
    timestamp: str
    endpoints: List[Any] = field(default_factory=list)


def _empty_page() -> EventPage:
    return EventPage(records=[], total_records=0, limit=0, offset=0)


def _scan_all(table) -> List[Dict]:
    items = []
    response = table.scan()
    items.extend(response.get("Items", []))

    # Handle pagination
    while "LastEvaluatedKey" in response:
        response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
        items.extend(response.get("Items", []))

    return items


def fetch_events(
    table_name: Optional[str],
    timeframe: str = "all",
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
    now: Optional[datetime] = None,
) -> EventPage:
    """
    Fetch one page of events inside ``timeframe``, newest first.

    Returns an empty page with zeroed pagination if the table is not
    configured or DynamoDB cannot be reached.
    """
    if not table_name:
        logger.warning("Events table not configured, returning empty page")
        return _empty_page()

    try:
        table = _get_dynamodb().Table(table_name)
        items = _scan_all(table)
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Failed to fetch events from {table_name}: {e}")
        return _empty_page()

    events = []
    for item in items:
        event = EventRecord.from_dict(item)
        if event is None:
            continue
        events.append(event)

    events = filter_events(events, timeframe, now)
    events.sort(key=lambda e: e.created_ms, reverse=True)

    offset = max(offset, 0)
    page = events[offset:offset + limit] if limit > 0 else []

    logger.info(
        f"Fetched {len(page)} of {len(events)} events from {table_name} "
        f"(timeframe={timeframe}, offset={offset})"
    )

    return EventPage(records=page, total_records=len(events), limit=limit, offset=offset)


def _empty_feed() -> EndpointFeed:
    return EndpointFeed(timestamp=to_iso(datetime.now(timezone.utc)), endpoints=[])


def fetch_endpoint_analytics(bucket: Optional[str], key: Optional[str]) -> EndpointFeed:
    """
    Read the endpoint analytics document ``{timestamp, endpoints}`` from S3.

    Missing objects, transport errors and payloads that are not a JSON object
    degrade to an empty feed.
    """
    if not bucket or not key:
        logger.warning("Endpoint analytics location not configured, returning empty feed")
        return _empty_feed()

    try:
        response = _get_s3_client().get_object(Bucket=bucket, Key=key)
        body = response["Body"].read().decode("utf-8")
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Failed to fetch s3://{bucket}/{key}: {e}")
        return _empty_feed()
    except UnicodeDecodeError:
        logger.warning(f"Endpoint analytics s3://{bucket}/{key} is not UTF-8 text")
        return _empty_feed()

    try:
        document = json.loads(body)
    except json.JSONDecodeError:
        logger.warning(f"Endpoint analytics s3://{bucket}/{key} is not JSON")
        return _empty_feed()

    if not isinstance(document, dict):
        logger.warning(f"Endpoint analytics s3://{bucket}/{key} is not a JSON object")
        return _empty_feed()

    endpoints = document.get("endpoints")
    if not isinstance(endpoints, list):
        endpoints = []

    timestamp = document.get("timestamp") or to_iso(datetime.now(timezone.utc))

    return EndpointFeed(timestamp=str(timestamp), endpoints=endpoints)
