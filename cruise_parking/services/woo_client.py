"""
WooCommerce Order Feed Client

Reads completed orders from the WooCommerce REST API (wc/v3):
- HTTP Basic auth with consumer key / secret
- page 1 first, total page count from the X-WP-TotalPages header
- remaining pages fetched concurrently, bounded by a semaphore
- one attempt per page: a failure surfaces as FeedUnavailable (retryable flag
  set from the status) and the next scheduled run starts from the same watermark
- partial page sets are never returned
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..exceptions import FeedUnavailable

logger = logging.getLogger(__name__)


@dataclass
class FeedError:
    """Structured error from the order feed"""
    code: str
    message: str
    status_code: int
    retryable: bool = False


# Error mapping for WooCommerce responses
ERROR_MAP = {
    400: FeedError("bad_request", "Feed rejected the query parameters", 400, False),
    401: FeedError("unauthorized", "Invalid consumer key or secret", 401, False),
    403: FeedError("forbidden", "Consumer key lacks read access to orders", 403, False),
    404: FeedError("not_found", "Orders endpoint not found", 404, False),
    429: FeedError("rate_limited", "Too many requests", 429, True),
    500: FeedError("server_error", "WooCommerce server error", 500, True),
    502: FeedError("bad_gateway", "WooCommerce gateway error", 502, True),
    503: FeedError("service_unavailable", "WooCommerce service unavailable", 503, True),
    504: FeedError("gateway_timeout", "WooCommerce gateway timeout", 504, True),
}


def format_after(since: datetime) -> str:
    """
    Watermark for the `after` query parameter, in UTC with an explicit Z.

    Without an offset WooCommerce reads the value in the store's local
    timezone. Naive datetimes are taken as UTC.
    """
    if since.tzinfo is not None:
        since = since.astimezone(timezone.utc)
    return since.strftime("%Y-%m-%dT%H:%M:%SZ")


class WooCommerceClient:
    """
    Async client for the WooCommerce orders endpoint.

    Usage:
        client = WooCommerceClient(base_url, key, secret)
        orders = await client.fetch_orders(since)
    """

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        per_page: int = 100,
        timeout: float = 20.0,
        max_concurrency: int = 8,
        order_status: str = "completed",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(consumer_key, consumer_secret)
        self.per_page = per_page
        self.timeout = timeout
        self.max_concurrency = max(1, max_concurrency)
        self.order_status = order_status
        # Injected in tests (httpx.MockTransport)
        self.transport = transport

    def _map_error(self, status_code: int) -> FeedError:
        """Map HTTP status code to structured error"""
        if status_code in ERROR_MAP:
            return ERROR_MAP[status_code]

        if status_code >= 500:
            return FeedError("server_error", f"Server error: {status_code}", status_code, True)

        return FeedError("unknown", f"Unexpected status: {status_code}", status_code, False)

    def _params(self, since: datetime, page: int) -> Dict[str, Any]:
        return {
            "status": self.order_status,
            "per_page": self.per_page,
            "page": page,
            "after": format_after(since),
            "dates_are_gmt": "true",
        }

    async def _get_page(
        self,
        client: httpx.AsyncClient,
        since: datetime,
        page: int
    ) -> httpx.Response:
        """GET one page. Failures are raised, not retried."""
        try:
            response = await client.get(f"{self.base_url}/orders", params=self._params(since, page))
        except httpx.TimeoutException as e:
            raise FeedUnavailable(f"Order feed timed out on page {page}: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            raise FeedUnavailable(f"Order feed unreachable on page {page}: {e}", retryable=True) from e

        if 200 <= response.status_code < 300:
            return response

        error = self._map_error(response.status_code)
        raise FeedUnavailable(
            f"Order feed returned {response.status_code} on page {page}: {error.message}",
            retryable=error.retryable,
            http_status=response.status_code
        )

    @staticmethod
    def _decode(response: httpx.Response, page: int) -> List[Dict[str, Any]]:
        try:
            data = response.json()
        except ValueError as e:
            raise FeedUnavailable(f"Order feed returned invalid JSON on page {page}", retryable=True) from e

        if not isinstance(data, list):
            raise FeedUnavailable(
                f"Order feed returned {type(data).__name__} instead of a list on page {page}",
                retryable=False
            )
        return data

    @staticmethod
    def _total_pages(response: httpx.Response) -> int:
        raw = response.headers.get("X-WP-TotalPages", "1")
        try:
            return max(1, int(raw))
        except ValueError:
            logger.warning(f"Ignoring malformed X-WP-TotalPages header: {raw!r}")
            return 1

    async def fetch_orders(self, since: datetime) -> List[Dict[str, Any]]:
        """
        Every order created after `since`, across all pages.

        Raises:
            FeedUnavailable: any page failed; nothing is returned.
        """
        start_time = time.time()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with httpx.AsyncClient(
            auth=self.auth,
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept": "application/json"},
        ) as client:
            first = await self._get_page(client, since, 1)
            orders = self._decode(first, 1)
            total_pages = self._total_pages(first)

            async def fetch(page: int) -> List[Dict[str, Any]]:
                async with semaphore:
                    response = await self._get_page(client, since, page)
                    return self._decode(response, page)

            if total_pages > 1:
                # Wait for every page before the client closes; gather keeps page order
                pages = await asyncio.gather(
                    *(fetch(page) for page in range(2, total_pages + 1)),
                    return_exceptions=True
                )
                for page_orders in pages:
                    if isinstance(page_orders, BaseException):
                        raise page_orders
                    orders.extend(page_orders)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Fetched {len(orders)} orders in {total_pages} page(s) "
            f"after {format_after(since)} ({duration_ms}ms)"
        )
        return orders


def get_feed_client() -> WooCommerceClient:
    """Factory function to create a feed client from settings (FastAPI dependency)"""
    if not settings.has_feed_credentials:
        logger.warning("WOO_CONSUMER_KEY / WOO_CONSUMER_SECRET not set, feed requests will be rejected")

    return WooCommerceClient(
        base_url=settings.woo_base_url,
        consumer_key=settings.woo_consumer_key,
        consumer_secret=settings.woo_consumer_secret,
        per_page=settings.woo_per_page,
        timeout=settings.woo_timeout_seconds,
        max_concurrency=settings.woo_max_concurrent_pages,
        order_status=settings.woo_order_status,
    )
