"""
Tests for the WooCommerce feed client

Tests cover:
- Query parameters and basic auth
- Paging via X-WP-TotalPages (page order preserved)
- Error mapping: one request per page, no retries; network errors, bad JSON
- `after` sent as UTC with an explicit offset
"""

import asyncio
import base64
import pytest
from datetime import datetime, timedelta, timezone

import httpx

from cruise_parking.exceptions import FeedUnavailable
from cruise_parking.services.woo_client import WooCommerceClient, format_after

SINCE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_client(handler, **kwargs):
    return WooCommerceClient(
        base_url="https://shop.example.com/wp-json/wc/v3/",
        consumer_key="ck_test",
        consumer_secret="cs_test",
        transport=httpx.MockTransport(handler),
        **kwargs
    )


def paged_handler(pages, seen=None):
    """Serve pages[n - 1] for ?page=n with the total page header."""
    def handler(request):
        page = int(request.url.params["page"])
        if seen is not None:
            seen.append(request)
        return httpx.Response(
            200,
            json=pages[page - 1],
            headers={"X-WP-TotalPages": str(len(pages))}
        )
    return handler


class TestFetchOrders:

    def test_single_page_request_shape(self):
        seen = []
        client = make_client(paged_handler([[{"id": 1}, {"id": 2}]], seen))

        orders = asyncio.run(client.fetch_orders(SINCE))

        assert [o["id"] for o in orders] == [1, 2]
        assert len(seen) == 1

        request = seen[0]
        assert request.url.path == "/wp-json/wc/v3/orders"
        assert request.url.params["status"] == "completed"
        assert request.url.params["per_page"] == "100"
        assert request.url.params["after"] == "2025-01-01T00:00:00Z"
        assert request.url.params["dates_are_gmt"] == "true"

        expected = base64.b64encode(b"ck_test:cs_test").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

    def test_all_pages_fetched_in_order(self):
        seen = []
        pages = [[{"id": 1}], [{"id": 2}, {"id": 3}], [{"id": 4}], [{"id": 5}]]
        client = make_client(paged_handler(pages, seen), max_concurrency=2)

        orders = asyncio.run(client.fetch_orders(SINCE))

        assert [o["id"] for o in orders] == [1, 2, 3, 4, 5]
        assert sorted(int(r.url.params["page"]) for r in seen) == [1, 2, 3, 4]

    def test_missing_total_pages_header_means_one_page(self):
        client = make_client(lambda request: httpx.Response(200, json=[{"id": 7}]))
        assert asyncio.run(client.fetch_orders(SINCE)) == [{"id": 7}]

    def test_empty_feed(self):
        client = make_client(paged_handler([[]]))
        assert asyncio.run(client.fetch_orders(SINCE)) == []


class TestFeedErrors:

    def test_unauthorized_fails_fast(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"code": "woocommerce_rest_cannot_view"})

        client = make_client(handler)

        with pytest.raises(FeedUnavailable) as exc_info:
            asyncio.run(client.fetch_orders(SINCE))

        assert exc_info.value.retryable is False
        assert exc_info.value.http_status == 401
        assert exc_info.value.status_code == 502
        assert len(calls) == 1

    def test_server_error_raised_after_one_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = make_client(handler)

        with pytest.raises(FeedUnavailable) as exc_info:
            asyncio.run(client.fetch_orders(SINCE))

        assert exc_info.value.retryable is True
        assert exc_info.value.http_status == 503
        assert len(calls) == 1

    def test_rate_limit_on_later_page_requests_each_page_once(self):
        calls = []

        def handler(request):
            page = int(request.url.params["page"])
            calls.append(page)
            if page == 2:
                return httpx.Response(429)
            return httpx.Response(200, json=[{"id": page}], headers={"X-WP-TotalPages": "3"})

        client = make_client(handler)

        with pytest.raises(FeedUnavailable) as exc_info:
            asyncio.run(client.fetch_orders(SINCE))

        assert exc_info.value.retryable is True
        assert exc_info.value.http_status == 429
        assert sorted(calls) == [1, 2, 3]

    def test_failure_on_later_page_fails_whole_fetch(self):
        def handler(request):
            page = int(request.url.params["page"])
            if page == 3:
                return httpx.Response(500)
            return httpx.Response(200, json=[{"id": page}], headers={"X-WP-TotalPages": "3"})

        client = make_client(handler)

        with pytest.raises(FeedUnavailable):
            asyncio.run(client.fetch_orders(SINCE))

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(FeedUnavailable) as exc_info:
            asyncio.run(client.fetch_orders(SINCE))
        assert exc_info.value.retryable is True

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)

        with pytest.raises(FeedUnavailable) as exc_info:
            asyncio.run(client.fetch_orders(SINCE))
        assert "timed out" in exc_info.value.detail

    def test_non_list_body_rejected(self):
        client = make_client(lambda request: httpx.Response(200, json={"message": "maintenance"}))

        with pytest.raises(FeedUnavailable):
            asyncio.run(client.fetch_orders(SINCE))


class TestFormatAfter:

    def test_aware_datetime_converted_to_utc(self):
        local = datetime(2025, 3, 1, 20, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert format_after(local) == "2025-03-02T01:00:00Z"

    def test_naive_datetime_taken_as_utc(self):
        assert format_after(datetime(2025, 3, 1, 8, 30, 15, 999)) == "2025-03-01T08:30:15Z"
