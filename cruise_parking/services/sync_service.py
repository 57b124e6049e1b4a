"""
Order Reconciler

Pulls orders from the WooCommerce feed and brings local storage up to date.

Flow of one run:
1. Take the run lock (SyncAlreadyRunning if another run holds it)
2. Pick the watermark: epoch for full syncs, last completed run for incremental
3. Record the run as `running`
4. Fetch every page after the watermark (a feed failure fails the run)
5. Upsert orders one by one; a bad order is recorded and skipped
6. Rebuild the daily aggregate exactly once
7. Close the run as completed (no errors) or failed
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal
from ..exceptions import AggregateRebuildFailed, FeedUnavailable, RecordRejected
from ..models.sync_run import SyncType, SyncRunStatus
from ..schemas.order import WooOrder
from ..utils.logging_config import get_logger, set_sync_run_context
from .aggregate_service import AggregateRecomputer, RecomputeResult
from .order_service import OrderService
from .sync_tracker import SyncRunTracker
from .woo_client import WooCommerceClient, get_feed_client

logger = get_logger(__name__)


@dataclass
class SyncOutcome:
    """Result of one reconciliation run"""
    run_id: str
    sync_type: SyncType
    status: SyncRunStatus
    since: datetime
    orders_fetched: int = 0
    orders_processed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    general_error: Optional[str] = None
    aggregate: Optional[RecomputeResult] = None

    @property
    def error_count(self) -> int:
        return len(self.errors)


def describe_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "order"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


class OrderReconciler:
    """
    Usage:
        reconciler = OrderReconciler(db, get_feed_client())
        outcome = await reconciler.reconcile(SyncType.INCREMENTAL)
    """

    def __init__(
        self,
        db: Session,
        client: WooCommerceClient,
        tracker: Optional[SyncRunTracker] = None,
        recomputer: Optional[AggregateRecomputer] = None,
    ):
        self.db = db
        self.client = client
        self.tracker = tracker or SyncRunTracker(db)
        self.recomputer = recomputer or AggregateRecomputer(db)
        self.orders = OrderService(db, recomputer=self.recomputer)

    def watermark(self, sync_type: SyncType) -> datetime:
        """Lower bound on order creation time for this run."""
        if sync_type == SyncType.FULL:
            return settings.sync_epoch_datetime
        return self.tracker.last_completed_watermark()

    def _process_order(self, raw: Any) -> Optional[Dict[str, Any]]:
        """Upsert one feed record. Returns an error entry instead of raising."""
        order_id = raw.get("id") if isinstance(raw, dict) else None

        try:
            payload = WooOrder.model_validate(raw)
            self.orders.upsert_from_feed(payload)
        except ValidationError as e:
            message = describe_validation_error(e)
        except RecordRejected as e:
            message = e.detail
        except SQLAlchemyError as e:
            message = f"Storage error: {e}"
        else:
            return None

        logger.warning(f"Skipping order #{order_id}: {message}")
        return {"order_id": order_id, "error": message}

    async def reconcile(self, sync_type: Union[SyncType, str] = SyncType.INCREMENTAL) -> SyncOutcome:
        """
        Run one reconciliation.

        Raises:
            SyncAlreadyRunning: another run holds the lock.
            AggregateRebuildFailed: the run is recorded as failed first.
        """
        sync_type = SyncType(sync_type)
        start_time = time.time()

        self.tracker.acquire_lock()
        try:
            since = self.watermark(sync_type)
            run = self.tracker.begin(sync_type, since)
            set_sync_run_context(run.id)
            logger.sync_started(run.id, sync_type.value, since)

            errors: List[Dict[str, Any]] = []
            general_error: Optional[str] = None
            aggregate: Optional[RecomputeResult] = None
            orders_fetched = 0
            orders_processed = 0
            feed_ok = False
            rebuild_error: Optional[AggregateRebuildFailed] = None

            try:
                raw_orders = await self.client.fetch_orders(since)
                feed_ok = True
                orders_fetched = len(raw_orders)

                for raw in raw_orders:
                    error = self._process_order(raw)
                    if error is None:
                        orders_processed += 1
                    else:
                        errors.append(error)
                    # Let cancellation and other tasks in between orders
                    await asyncio.sleep(0)

            except FeedUnavailable as e:
                general_error = e.detail
                errors.append({"general": e.detail})
                logger.error(f"Order feed unavailable, nothing stored: {e.detail}")
            except asyncio.CancelledError:
                errors.append({"general": "Sync cancelled before all orders were processed"})
                raise
            except Exception as e:
                errors.append({"general": f"Unexpected sync error: {e}"})
                logger.exception(f"Order sync crashed: {e}")
                raise
            finally:
                # Orders already committed must be reflected even on cancellation
                if feed_ok:
                    try:
                        aggregate = self.recomputer.recompute()
                    except AggregateRebuildFailed as e:
                        rebuild_error = e
                        errors.append({"general": e.detail})

                status = SyncRunStatus.FAILED if errors else SyncRunStatus.COMPLETED
                self.tracker.complete(
                    run,
                    status,
                    orders_fetched=orders_fetched,
                    orders_processed=orders_processed,
                    errors=errors,
                )
                logger.sync_finished(
                    run.id,
                    status.value,
                    orders_fetched,
                    orders_processed,
                    len(errors),
                    duration_ms=round((time.time() - start_time) * 1000, 2),
                )
        finally:
            self.tracker.release_lock()
            set_sync_run_context('')

        if rebuild_error is not None:
            raise rebuild_error

        return SyncOutcome(
            run_id=run.id,
            sync_type=sync_type,
            status=status,
            since=since,
            orders_fetched=orders_fetched,
            orders_processed=orders_processed,
            errors=errors,
            general_error=general_error,
            aggregate=aggregate,
        )


async def run_order_sync(
    sync_type: Union[SyncType, str] = SyncType.INCREMENTAL,
    client: Optional[WooCommerceClient] = None
) -> SyncOutcome:
    """
    Run a reconciliation with its own session (scheduler and CLI entry point).
    """
    db = SessionLocal()
    try:
        reconciler = OrderReconciler(db, client or get_feed_client())
        return await reconciler.reconcile(sync_type)
    finally:
        db.close()
