"""
Shared fixtures: in-memory SQLite, a fake order feed and an API client.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Must be set before cruise_parking.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SYNC_SCHEDULE_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cruise_parking import models  # noqa: F401
from cruise_parking.database import Base, get_db
from cruise_parking.exceptions import FeedUnavailable


def line_item(item_id, nights=5, quantity=1, start="2025-06-01", name=None, meta_key="_prdd_lite_date"):
    """WooCommerce line item as the feed delivers it."""
    meta_data = []
    if start is not None:
        meta_data.append({"id": item_id * 10, "key": meta_key, "value": start})
    return {
        "id": item_id,
        "name": name or f"Cruise Parking - {nights}-Night Sailing",
        "quantity": quantity,
        "meta_data": meta_data,
    }


def woo_order(order_id, line_items=None, status="completed", date_created="2025-05-01T10:00:00"):
    """WooCommerce order as the feed delivers it."""
    return {
        "id": order_id,
        "status": status,
        "date_created": date_created,
        "billing": {
            "first_name": "Jane",
            "last_name": f"Doe{order_id}",
            "email": f"guest{order_id}@example.com",
            "phone": "904-555-0100",
        },
        "line_items": line_items if line_items is not None else [line_item(order_id * 100)],
    }


class FakeFeed:
    """Stands in for WooCommerceClient in reconciler and API tests."""

    def __init__(self, orders=None, error=None):
        self.orders = list(orders or [])
        self.error = error
        self.calls = []

    async def fetch_orders(self, since):
        self.calls.append(since)
        if self.error is not None:
            raise self.error
        return list(self.orders)

    def fail(self, detail="Order feed returned 503 on page 1"):
        self.error = FeedUnavailable(detail, retryable=True, http_status=503)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def client(session_factory, feed):
    from cruise_parking.main import app
    from cruise_parking.services.woo_client import get_feed_client
    from cruise_parking.utils.rate_limiter import limiter

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_feed_client] = lambda: feed
    limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
