"""
Clickstream Analytics API Lambda

Serves dashboard aggregates computed on every request from the raw feeds.
Dashboards poll these routes on a fixed cadence.

Routes:
    GET /analytics/clickstream  - Sessions, journeys and event distributions
    GET /analytics/endpoints    - Merged per-endpoint analytics and overview
"""

import json
import logging
import os
from decimal import Decimal
from typing import Any, Dict

from clickstream import feeds
from clickstream.endpoints import merge_endpoint_metrics, summarize_endpoints
from clickstream.models import decimal_number
from clickstream.snapshot import build_snapshot


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types from DynamoDB."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return decimal_number(obj)
        return super().default(obj)


# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO")
logging.basicConfig(level=log_level)
logger = logging.getLogger(__name__)

HANDLER_NAME = "clickstream-analytics"

# Environment variables
ENV = os.environ.get("ENV", "dev")
EVENTS_TABLE = os.environ.get("EVENTS_TABLE")
ANALYTICS_BUCKET = os.environ.get("ANALYTICS_BUCKET")
ANALYTICS_KEY = os.environ.get("ANALYTICS_KEY", "analytics/health.json")
DEFAULT_TIMEFRAME = os.environ.get("DEFAULT_TIMEFRAME", "all")
DEFAULT_LIMIT = int(os.environ.get("DEFAULT_LIMIT", "500"))
MAX_LIMIT = int(os.environ.get("MAX_LIMIT", "1000"))


def _response(status_code: int, body: Any) -> Dict:
    """Return standardized API response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "Content-Type,Authorization",
            "Access-Control-Allow-Methods": "OPTIONS,GET",
        },
        "body": json.dumps(body, cls=DecimalEncoder),
    }


def _error(status_code: int, message: str) -> Dict:
    return _response(status_code, {"error": message})


def _int_param(params: Dict, name: str, default: int) -> int:
    """Parse a non-negative integer query parameter. Raises ValueError."""
    raw = params.get(name)
    if raw is None or raw == "":
        return default
    value = int(raw)
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def handle_clickstream(event: Dict) -> Dict:
    """
    GET /analytics/clickstream

    Returns the analytics snapshot for the requested timeframe plus the
    pagination metadata of the underlying event page.
    """
    params = event.get("queryStringParameters") or {}
    timeframe = params.get("timeframe") or DEFAULT_TIMEFRAME

    try:
        limit = min(_int_param(params, "limit", DEFAULT_LIMIT), MAX_LIMIT)
        offset = _int_param(params, "offset", 0)
    except ValueError as e:
        return _error(400, f"Invalid pagination parameter: {e}")

    logger.info(f"{HANDLER_NAME}: Building clickstream snapshot (timeframe={timeframe}, limit={limit}, offset={offset})")

    page = feeds.fetch_events(EVENTS_TABLE, timeframe=timeframe, limit=limit, offset=offset)
    snapshot = build_snapshot(page.records, timeframe=timeframe)

    body = snapshot.to_dict()
    body["timeframe"] = timeframe
    body["metadata"] = page.metadata()
    return _response(200, body)


def handle_endpoints(event: Dict) -> Dict:
    """
    GET /analytics/endpoints

    Returns endpoint analytics with duplicate endpoints merged, plus the
    overview summary (totals, error rate, slowest endpoint).
    """
    logger.info(f"{HANDLER_NAME}: Getting endpoint analytics from s3://{ANALYTICS_BUCKET}/{ANALYTICS_KEY}")

    feed = feeds.fetch_endpoint_analytics(ANALYTICS_BUCKET, ANALYTICS_KEY)
    metrics = merge_endpoint_metrics(feed.endpoints)

    return _response(200, {
        "timestamp": feed.timestamp,
        "endpoints": [m.to_dict() for m in metrics],
        "summary": summarize_endpoints(metrics).to_dict(),
    })


def lambda_handler(event: Dict, context: Any) -> Dict:
    """Main Lambda handler - routes requests to appropriate handlers."""
    logger.info(f"{HANDLER_NAME}: Received event: {json.dumps(event)}")

    # Handle CORS preflight
    http_method = event.get("requestContext", {}).get("http", {}).get("method")
    if http_method == "OPTIONS":
        return _response(200, {})

    route_key = event.get("routeKey", "")

    routes = {
        "GET /analytics/clickstream": handle_clickstream,
        "GET /analytics/endpoints": handle_endpoints,
    }

    handler = routes.get(route_key)
    if handler:
        try:
            return handler(event)
        except Exception as e:
            logger.exception(f"{HANDLER_NAME}: Error handling request")
            return _error(500, f"Internal error: {e}")

    return _error(404, f"Route not found: {route_key}")
