"""
Order Service

Stores WooCommerce orders and their line items as local bookings.

An order is always written as a whole: header fields are overwritten and
the booking set is replaced, never merged. Direct API mutations rebuild the
daily aggregate before returning; the reconciler batches that rebuild to
once per run.
"""

import logging
from datetime import timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..exceptions import OrderAlreadyExists, OrderNotFound, RecordRejected
from ..models.order import Order, Booking
from ..schemas.order import (
    WooOrder,
    WooLineItem,
    OrderResponse,
    LineItemResponse,
    BillingResponse,
)
from ..schemas.pagination import PaginatedResponse
from ..utils.dates import normalize_day, utcnow
from ..utils.db_helpers import acquire_row_lock
from .aggregate_service import AggregateRecomputer
from .span_expander import parse_duration, span_end

logger = logging.getLogger(__name__)


def booking_fields_from_line_item(item: WooLineItem, meta_key: Optional[str] = None) -> Dict[str, Any]:
    """
    Derive booking columns from a feed line item.

    Raises:
        RecordRejected: the date meta value is present but not a date.
    """
    meta_key = meta_key or settings.booking_date_meta_key
    raw_date = item.meta_value(meta_key)

    try:
        start_date = normalize_day(raw_date)
    except (ValueError, TypeError) as e:
        raise RecordRejected(f"Line item {item.id}: invalid {meta_key} value {raw_date!r}") from e

    duration_nights = parse_duration(item.name)

    return {
        "external_id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "start_date": start_date,
        "duration_nights": duration_nights,
        "end_date": span_end(start_date, duration_nights),
        "meta_data": [meta.model_dump() for meta in item.meta_data],
    }


def to_order_response(order: Order, meta_key: Optional[str] = None) -> OrderResponse:
    """Render a stored order in WooCommerce shape."""
    meta_key = meta_key or settings.booking_date_meta_key
    line_items = []

    for booking in order.bookings:
        meta_data = list(booking.meta_data or [])
        # Orders created through the API may carry the date only as a column
        if booking.start_date and not any(m.get("key") == meta_key for m in meta_data):
            meta_data.append({"key": meta_key, "value": booking.start_date.isoformat()})

        line_items.append(LineItemResponse(
            id=booking.external_id,
            name=booking.name,
            quantity=booking.quantity,
            meta_data=meta_data,
            start_date=booking.start_date,
            duration_nights=booking.duration_nights,
            end_date=booking.end_date,
        ))

    return OrderResponse(
        id=order.external_id,
        status=order.status,
        date_created=order.date_created,
        billing=BillingResponse(
            first_name=order.billing_first_name or "",
            last_name=order.billing_last_name or "",
            email=order.billing_email or "",
            phone=order.billing_phone,
        ),
        line_items=line_items,
        synced_at=order.synced_at,
    )


class OrderService:
    """
    Order persistence.

    Usage:
        service = OrderService(db)
        order, created = service.upsert_from_feed(woo_order)
    """

    def __init__(self, db: Session, recomputer: Optional[AggregateRecomputer] = None):
        self.db = db
        self.recomputer = recomputer or AggregateRecomputer(db)

    # ==================== WRITE ====================

    def _apply(self, order: Order, payload: WooOrder) -> None:
        """Overwrite header fields and replace the booking set."""
        # Parse every line item before touching the row
        booking_fields = [booking_fields_from_line_item(item) for item in payload.line_items]

        date_created = payload.date_created
        if date_created.tzinfo is not None:
            date_created = date_created.astimezone(timezone.utc).replace(tzinfo=None)

        order.status = payload.status
        order.date_created = date_created
        order.billing_first_name = payload.billing.first_name
        order.billing_last_name = payload.billing.last_name
        order.billing_email = payload.billing.email
        order.billing_phone = payload.billing.phone
        order.synced_at = utcnow()

        order.bookings.clear()
        # Old rows must be gone before new ones reuse their line item ids
        self.db.flush()

        for position, fields in enumerate(booking_fields):
            order.bookings.append(Booking(position=position, **fields))

    def upsert_from_feed(self, payload: WooOrder) -> Tuple[Order, bool]:
        """
        Insert or fully replace one order, committed on its own.

        Does not rebuild the aggregate.

        Returns:
            (order, created)
        """
        try:
            order = acquire_row_lock(self.db, Order, Order.external_id == payload.id)
            created = order is None
            if created:
                order = Order(external_id=payload.id)
                self.db.add(order)

            self._apply(order, payload)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.debug(f"Order #{payload.id} {'created' if created else 'replaced'} with {len(payload.line_items)} line items")
        return order, created

    def create_order(self, payload: WooOrder) -> Order:
        existing = self.db.query(Order.id).filter(Order.external_id == payload.id).first()
        if existing:
            raise OrderAlreadyExists(payload.id)

        order, _ = self.upsert_from_feed(payload)
        logger.info(f"Order #{payload.id} created via API")
        self.recomputer.recompute()
        return order

    def replace_order(self, external_id: int, payload: WooOrder) -> Order:
        if payload.id != external_id:
            raise RecordRejected(f"Body id {payload.id} does not match order {external_id}", order_id=external_id)

        self.get_order(external_id)
        order, _ = self.upsert_from_feed(payload)
        logger.info(f"Order #{external_id} replaced via API")
        self.recomputer.recompute()
        return order

    def delete_order(self, external_id: int) -> None:
        order = self.get_order(external_id)
        try:
            self.db.delete(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Order #{external_id} deleted via API")
        self.recomputer.recompute()

    # ==================== READ ====================

    def get_order(self, external_id: int) -> Order:
        order = self.db.query(Order).options(
            selectinload(Order.bookings)
        ).filter(Order.external_id == external_id).first()

        if not order:
            raise OrderNotFound(external_id)
        return order

    def list_orders(
        self,
        page: int = 1,
        page_size: int = 50,
        status: Optional[str] = None
    ) -> PaginatedResponse[OrderResponse]:
        query = self.db.query(Order).options(selectinload(Order.bookings))
        if status:
            query = query.filter(Order.status == status)
        query = query.order_by(Order.date_created.desc(), Order.external_id.desc())
        return PaginatedResponse[OrderResponse].from_query(query, page, page_size, to_order_response)
