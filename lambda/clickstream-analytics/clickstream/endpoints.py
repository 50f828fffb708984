"""
Endpoint analytics merging.

The endpoint feed can report the same endpoint several times (one record per
collector shard). Records are folded by endpoint URL into one merged metric
each, then summarized for the dashboard overview.
"""

import logging
import math
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from clickstream.models import EndpointMetric, EndpointSummary, ResponseTimeSample

logger = logging.getLogger(__name__)

ERROR_STATUS_PREFIXES = ("4", "5")


def safe_int(value: Any) -> int:
    """Parse a count as an integer; unparsable or missing values count as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def safe_float(value: Any) -> float:
    """Parse a measurement as a float; unparsable or non-finite values count as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _analytics_field(record: Mapping, name: str) -> Any:
    """Read a field from the nested ``analytics`` block, falling back to the top level."""
    analytics = _mapping(record.get("analytics"))
    if name in analytics:
        return analytics[name]
    return record.get(name)


def _pattern(record: Mapping, name: str) -> Mapping:
    patterns = _mapping(_analytics_field(record, "patterns"))
    return _mapping(patterns.get(name))


def _samples(record: Mapping) -> List[ResponseTimeSample]:
    raw = _analytics_field(record, "responseTimes")
    if not isinstance(raw, list):
        return []
    samples = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        timestamp = item.get("timestamp", item.get("score"))
        samples.append(ResponseTimeSample(value=safe_float(item.get("value")), timestamp=safe_float(timestamp)))
    return samples


def _rate(record: Mapping) -> Mapping:
    return _mapping(record.get("currentRate"))


def _add_counts(target: Dict[str, int], counts: Mapping) -> None:
    for key, count in counts.items():
        key = str(key)
        target[key] = target.get(key, 0) + safe_int(count)


def _endpoint_key(record: Any) -> Optional[str]:
    if not isinstance(record, Mapping):
        return None
    url = record.get("endpoint") or record.get("url")
    if not url or not isinstance(url, str):
        return None
    return url


class _EndpointAccumulator:
    """Mutable merge state for one endpoint, scoped to a single merge call."""

    def __init__(self, endpoint: str, record: Mapping):
        self.endpoint = endpoint
        self.occurrences = 1
        self.status_codes: Dict[str, int] = {}
        self.hourly: Dict[str, int] = {}
        self.daily: Dict[str, int] = {}
        _add_counts(self.status_codes, _mapping(_analytics_field(record, "statusCodes")))
        _add_counts(self.hourly, _pattern(record, "hourly"))
        _add_counts(self.daily, _pattern(record, "daily"))
        self.samples = _samples(record)
        self.average_response_time = {str(k): str(v) for k, v in _pattern(record, "averageResponseTime").items()}
        rate = _rate(record)
        self.requests_per_minute = safe_float(rate.get("requestsPerMinute"))
        self.rate_timestamp = rate.get("timestamp")

    def absorb(self, record: Mapping) -> None:
        self.occurrences += 1
        _add_counts(self.status_codes, _mapping(_analytics_field(record, "statusCodes")))
        self.samples.extend(_samples(record))

        rate = _rate(record)
        if "requestsPerMinute" in rate:
            incoming = safe_float(rate.get("requestsPerMinute"))
            if incoming > self.requests_per_minute:
                self.requests_per_minute = incoming

        _add_counts(self.hourly, _pattern(record, "hourly"))
        _add_counts(self.daily, _pattern(record, "daily"))

        # TODO: recompute averageResponseTime weighted by request count once the
        # weighting rule is agreed; the first record's values are kept for now.

    def freeze(self) -> EndpointMetric:
        rate_timestamp = self.rate_timestamp
        if isinstance(rate_timestamp, Decimal):
            rate_timestamp = float(rate_timestamp)
        return EndpointMetric(
            endpoint=self.endpoint,
            status_code_counts=dict(self.status_codes),
            response_times=tuple(self.samples),
            hourly_counts=dict(self.hourly),
            daily_counts=dict(self.daily),
            average_response_time=dict(self.average_response_time),
            requests_per_minute=self.requests_per_minute,
            rate_timestamp=rate_timestamp,
            occurrences=self.occurrences,
        )


def merge_endpoint_metrics(records: Iterable[Any]) -> List[EndpointMetric]:
    """
    Merge endpoint records sharing the same URL.

    Status codes and hourly/daily buckets are summed per key, response-time
    samples are appended, and requests-per-minute takes the maximum.
    Records without an endpoint URL are skipped.
    """
    merged: Dict[str, _EndpointAccumulator] = {}
    skipped = 0

    for record in records or []:
        url = _endpoint_key(record)
        if url is None:
            skipped += 1
            continue
        if url in merged:
            merged[url].absorb(record)
        else:
            merged[url] = _EndpointAccumulator(url, record)

    if skipped:
        logger.debug(f"Skipped {skipped} endpoint records without an endpoint URL")

    return [acc.freeze() for acc in merged.values()]


def endpoint_type(url: str) -> str:
    """Classify an endpoint URL for the overview chart."""
    if "/api/" in url:
        return "REST API"
    if "/graphql" in url:
        return "GraphQL"
    if ".json" in url:
        return "Static JSON"
    if "/static/" in url:
        return "Static Assets"
    return "Other"


def summarize_endpoints(metrics: Iterable[EndpointMetric]) -> EndpointSummary:
    metrics = list(metrics)
    if not metrics:
        return EndpointSummary()

    distribution: Dict[str, int] = {}
    types: Dict[str, int] = {}
    total_requests = 0
    error_count = 0
    total_time = 0.0
    time_samples = 0
    slowest: Optional[str] = None
    slowest_time = 0.0

    for metric in metrics:
        kind = endpoint_type(metric.endpoint)
        types[kind] = types.get(kind, 0) + 1

        for code, count in metric.status_code_counts.items():
            distribution[code] = distribution.get(code, 0) + count
            total_requests += count
            if code.startswith(ERROR_STATUS_PREFIXES):
                error_count += count

        times = [safe_float(t) for t in metric.average_response_time.values()]
        if times:
            total_time += sum(times)
            time_samples += len(times)
            avg_time = sum(times) / len(times)
            if avg_time > slowest_time:
                slowest_time = avg_time
                slowest = metric.endpoint

    return EndpointSummary(
        total_endpoints=len(metrics),
        total_requests=total_requests,
        status_code_distribution=distribution,
        error_count=error_count,
        error_rate=round(error_count / total_requests * 100, 2) if total_requests > 0 else 0.0,
        average_response_time=round(total_time / time_samples, 2) if time_samples > 0 else 0.0,
        slowest_endpoint=slowest,
        slowest_response_time=round(slowest_time, 2),
        endpoint_types=types,
    )
