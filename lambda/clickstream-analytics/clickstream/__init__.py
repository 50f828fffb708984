"""Clickstream and endpoint analytics aggregation engine."""

from clickstream.endpoints import merge_endpoint_metrics, summarize_endpoints
from clickstream.snapshot import build_snapshot

__all__ = ["build_snapshot", "merge_endpoint_metrics", "summarize_endpoints"]
