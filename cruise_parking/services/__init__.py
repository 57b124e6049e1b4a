# Services package
from .span_expander import parse_duration, span_end, expand_span, covers
from .aggregate_service import (
    AggregateRecomputer, RecomputeResult,
    calculate_daily_occupancy, occupancy_percentage
)
from .woo_client import WooCommerceClient, get_feed_client
from .order_service import OrderService, booking_fields_from_line_item, to_order_response
from .sync_tracker import SyncRunTracker
from .sync_service import OrderReconciler, SyncOutcome, run_order_sync
from .occupancy_service import OccupancyQueryService, parse_range, parse_month
from .overlay import merge_overlay

__all__ = [
    "parse_duration", "span_end", "expand_span", "covers",
    "AggregateRecomputer", "RecomputeResult",
    "calculate_daily_occupancy", "occupancy_percentage",
    "WooCommerceClient", "get_feed_client",
    "OrderService", "booking_fields_from_line_item", "to_order_response",
    "SyncRunTracker",
    "OrderReconciler", "SyncOutcome", "run_order_sync",
    "OccupancyQueryService", "parse_range", "parse_month",
    "merge_overlay",
]
