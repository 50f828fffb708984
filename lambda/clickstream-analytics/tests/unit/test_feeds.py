"""Unit tests for the DynamoDB event feed and S3 endpoint feed."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from clickstream import feeds


class TestFetchEvents:

    @pytest.mark.unit
    def test_fetch_all_sorted_newest_first(self, mock_dynamodb, recent_events_data):
        page = feeds.fetch_events("test-clickstream-events", timeframe="all")

        assert page.total_records == 5
        assert [e.id for e in page.records] == [2, 1, 3, 4, 5]
        assert page.offset == 0
        assert page.limit == 500
        assert page.total_pages == 1

    @pytest.mark.unit
    def test_timeframe_filters(self, mock_dynamodb, recent_events_data):
        day = feeds.fetch_events("test-clickstream-events", timeframe="day")
        hour = feeds.fetch_events("test-clickstream-events", timeframe="hour")

        assert [e.id for e in day.records] == [2, 1, 3]
        assert [e.id for e in hour.records] == [2, 1]

    @pytest.mark.unit
    def test_limit_and_offset(self, mock_dynamodb, recent_events_data):
        page = feeds.fetch_events("test-clickstream-events", timeframe="all", limit=2, offset=1)

        assert [e.id for e in page.records] == [1, 3]
        assert page.total_records == 5
        assert page.metadata() == {"totalRecords": 5, "limit": 2, "offset": 1, "totalPages": 3}

    @pytest.mark.unit
    def test_default_page_holds_most_recent_events(self, mock_dynamodb, event_factory):
        _, table = mock_dynamodb
        for i in range(5):
            item = event_factory(i, "page_view", "u1", f"2024-01-15T12:0{i}:00Z")
            item["PK"] = "USER#u1"
            item["SK"] = f"EVENT#{item['created_at']}#{i}"
            table.put_item(Item=item)

        page = feeds.fetch_events("test-clickstream-events", timeframe="all", limit=2)

        assert [e.id for e in page.records] == [4, 3]
        assert page.total_records == 5

    @pytest.mark.unit
    def test_large_dynamodb_number_does_not_fail_the_page(self, mock_dynamodb, recent_events_data, event_factory):
        _, table = mock_dynamodb
        item = event_factory(
            9, "purchase", "u1", recent_events_data[0]["created_at"],
            event_data={"order_number": Decimal("123456789012345678901234567890")},
        )
        item["PK"] = "USER#u1"
        item["SK"] = f"EVENT#{item['created_at']}#9"
        table.put_item(Item=item)

        page = feeds.fetch_events("test-clickstream-events", timeframe="all")

        assert page.total_records == 6
        order = next(e for e in page.records if e.id == 9)
        assert order.event_data["order_number"] == 123456789012345678901234567890

    @pytest.mark.unit
    def test_decimal_payload_normalized(self, mock_dynamodb, recent_events_data):
        page = feeds.fetch_events("test-clickstream-events", timeframe="hour")

        click = next(e for e in page.records if e.id == 2)
        assert click.event_data["product_price"] == 12.5

    @pytest.mark.unit
    def test_missing_table_degrades_to_empty(self, mock_dynamodb):
        page = feeds.fetch_events("no-such-table", timeframe="all", limit=50, offset=10)

        assert page.records == []
        assert page.metadata() == {"totalRecords": 0, "limit": 0, "offset": 0, "totalPages": 0}

    @pytest.mark.unit
    def test_unconfigured_table_degrades_to_empty(self):
        page = feeds.fetch_events(None)

        assert page.records == []
        assert page.total_records == 0

    @pytest.mark.unit
    def test_connection_error_degrades_to_empty(self):
        table = MagicMock()
        table.scan.side_effect = EndpointConnectionError(endpoint_url="https://dynamodb.us-west-2.amazonaws.com")
        resource = MagicMock()
        resource.Table.return_value = table

        with patch.object(feeds, "_get_dynamodb", return_value=resource):
            page = feeds.fetch_events("test-clickstream-events")

        assert page.records == []

    @pytest.mark.unit
    def test_follows_scan_pagination(self, event_factory):
        table = MagicMock()
        table.scan.side_effect = [
            {"Items": [event_factory(1, "click", "u1", "2024-01-15T12:00:00Z")], "LastEvaluatedKey": {"PK": "x"}},
            {"Items": [event_factory(2, "click", "u1", "2024-01-15T12:01:00Z"), {"bad": "item"}]},
        ]
        resource = MagicMock()
        resource.Table.return_value = table

        with patch.object(feeds, "_get_dynamodb", return_value=resource):
            page = feeds.fetch_events("test-clickstream-events")

        assert [e.id for e in page.records] == [2, 1]
        assert table.scan.call_count == 2


class TestFetchEndpointAnalytics:

    @pytest.mark.unit
    def test_reads_document(self, mock_s3, endpoint_analytics_data):
        feed = feeds.fetch_endpoint_analytics("test-endpoint-analytics", "analytics/health.json")

        assert feed.timestamp == "2024-01-15T12:00:00Z"
        assert len(feed.endpoints) == 3

    @pytest.mark.unit
    def test_missing_object_degrades_to_empty(self, mock_s3):
        feed = feeds.fetch_endpoint_analytics("test-endpoint-analytics", "analytics/missing.json")

        assert feed.endpoints == []
        assert feed.timestamp

    @pytest.mark.unit
    @pytest.mark.parametrize("body", [b"<html>gateway timeout</html>", b'"just a string"', b"[1, 2]"])
    def test_non_object_payload_degrades_to_empty(self, mock_s3, body):
        s3, bucket = mock_s3
        s3.put_object(Bucket=bucket, Key="analytics/health.json", Body=body)

        feed = feeds.fetch_endpoint_analytics(bucket, "analytics/health.json")

        assert feed.endpoints == []

    @pytest.mark.unit
    def test_missing_endpoints_list_becomes_empty(self, mock_s3):
        s3, bucket = mock_s3
        s3.put_object(Bucket=bucket, Key="analytics/health.json", Body=b'{"timestamp": "2024-01-15T12:00:00Z"}')

        feed = feeds.fetch_endpoint_analytics(bucket, "analytics/health.json")

        assert feed.timestamp == "2024-01-15T12:00:00Z"
        assert feed.endpoints == []

    @pytest.mark.unit
    def test_client_error_degrades_to_empty(self):
        client = MagicMock()
        client.get_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "GetObject"
        )

        with patch.object(feeds, "_get_s3_client", return_value=client):
            feed = feeds.fetch_endpoint_analytics("bucket", "key")

        assert feed.endpoints == []

    @pytest.mark.unit
    def test_unconfigured_location_degrades_to_empty(self):
        assert feeds.fetch_endpoint_analytics(None, "key").endpoints == []
