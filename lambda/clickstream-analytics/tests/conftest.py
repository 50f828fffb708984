"""Pytest configuration and shared fixtures for clickstream-analytics tests."""

import json
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import boto3
import pytest
from moto import mock_aws

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture(autouse=True)
def set_env_vars(monkeypatch):
    """Set required environment variables for all tests."""
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("EVENTS_TABLE", "test-clickstream-events")
    monkeypatch.setenv("ANALYTICS_BUCKET", "test-endpoint-analytics")
    monkeypatch.setenv("ANALYTICS_KEY", "analytics/health.json")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-west-2")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-west-2"


def _reset_cached_clients():
    from clickstream import feeds

    feeds._dynamodb = None
    feeds._s3_client = None


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """Create mocked clickstream events table."""
    with mock_aws():
        _reset_cached_clients()
        dynamodb = boto3.resource("dynamodb", region_name="us-west-2")

        # Schema: PK = "USER#{user_id}", SK = "EVENT#{created_at}#{id}"
        table = dynamodb.create_table(
            TableName="test-clickstream-events",
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()

        yield dynamodb, table
    _reset_cached_clients()


@pytest.fixture
def mock_s3(aws_credentials):
    """Create mocked bucket for the endpoint analytics document."""
    with mock_aws():
        _reset_cached_clients()
        s3 = boto3.client("s3", region_name="us-west-2")
        bucket_name = "test-endpoint-analytics"
        s3.create_bucket(
            Bucket=bucket_name,
            CreateBucketConfiguration={"LocationConstraint": "us-west-2"},
        )
        yield s3, bucket_name
    _reset_cached_clients()


def make_event(event_id, event_type, user_id, created_at, page_url="/", event_data=None):
    """Build a raw event record as the feed delivers it."""
    if isinstance(created_at, datetime):
        created_at = created_at.isoformat().replace("+00:00", "Z")
    return {
        "id": event_id,
        "event_type": event_type,
        "user_id": user_id,
        "page_url": page_url,
        "user_agent": "Mozilla/5.0",
        "ip_address": "192.168.1.1",
        "event_data": event_data or {},
        "created_at": created_at,
    }


@pytest.fixture
def event_factory():
    return make_event


@pytest.fixture
def sample_events():
    """Two users: u1 with two sessions, u2 with one session and a cart add."""
    return [
        make_event(1, "page_view", "u1", "2024-01-15T12:00:00Z", "/"),
        make_event(2, "click", "u1", "2024-01-15T12:02:00Z", "/", {"text": "Shop now"}),
        make_event(3, "page_view", "u2", "2024-01-15T12:03:00Z", "/products"),
        make_event(
            4, "add_to_cart", "u2", "2024-01-15T12:04:00Z", "/products",
            {"product_name": "Mug", "product_price": 12.5, "product_category": "Kitchen"},
        ),
        make_event(5, "page_view", "u1", "2024-01-15T12:10:00Z", "/about"),
    ]


@pytest.fixture
def recent_events_data(mock_dynamodb):
    """Populate the events table with events relative to the current time."""
    _, table = mock_dynamodb
    now = datetime.now(timezone.utc)

    items = [
        make_event(1, "page_view", "u1", now - timedelta(minutes=30), "/"),
        make_event(2, "click", "u1", now - timedelta(minutes=28), "/", {"text": "Add to Cart", "product_name": "Mug", "product_price": Decimal("12.5")}),
        make_event(3, "page_view", "u2", now - timedelta(hours=3), "/pricing"),
        make_event(4, "page_view", "u3", now - timedelta(days=3), "/blog"),
        make_event(5, "page_view", "u4", now - timedelta(days=30), "/"),
    ]

    for item in items:
        item["PK"] = f"USER#{item['user_id']}"
        item["SK"] = f"EVENT#{item['created_at']}#{item['id']}"
        table.put_item(Item=item)

    return items


@pytest.fixture
def endpoint_analytics_document():
    """Endpoint analytics payload with /api/products reported by two shards."""
    return {
        "timestamp": "2024-01-15T12:00:00Z",
        "endpoints": [
            {
                "endpoint": "/api/products",
                "analytics": {
                    "responseTimes": [{"value": "120", "score": "1705320000000"}],
                    "statusCodes": {"200": "10", "500": "1"},
                    "patterns": {
                        "hourly": {"12": "11"},
                        "daily": {"1": "11"},
                        "averageResponseTime": {"12": "120.5"},
                    },
                },
                "currentRate": {"requestsPerMinute": 4, "timestamp": 1705320000000},
            },
            {
                "endpoint": "/graphql",
                "analytics": {
                    "responseTimes": [],
                    "statusCodes": {"200": "5"},
                    "patterns": {"hourly": {}, "daily": {}, "averageResponseTime": {"12": "40"}},
                },
                "currentRate": {"requestsPerMinute": 1, "timestamp": 1705320000000},
            },
            {
                "endpoint": "/api/products",
                "analytics": {
                    "responseTimes": [{"value": "80", "score": "1705320060000"}],
                    "statusCodes": {"200": "4", "404": "1"},
                    "patterns": {
                        "hourly": {"12": "3", "13": "2"},
                        "daily": {"1": "5"},
                        "averageResponseTime": {"12": "80"},
                    },
                },
                "currentRate": {"requestsPerMinute": 9, "timestamp": 1705320060000},
            },
        ],
    }


@pytest.fixture
def endpoint_analytics_data(mock_s3, endpoint_analytics_document):
    s3, bucket_name = mock_s3
    s3.put_object(
        Bucket=bucket_name,
        Key="analytics/health.json",
        Body=json.dumps(endpoint_analytics_document).encode("utf-8"),
    )
    return endpoint_analytics_document


@pytest.fixture
def api_event():
    """Factory for API Gateway v2 events."""

    def _make(route_key, query=None, method="GET"):
        path = route_key.split(" ", 1)[-1]
        return {
            "version": "2.0",
            "routeKey": route_key,
            "rawPath": path,
            "headers": {"content-type": "application/json"},
            "queryStringParameters": query,
            "requestContext": {"http": {"method": method, "path": path}},
        }

    return _make
