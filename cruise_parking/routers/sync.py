"""
Sync control endpoints.

POST /api/sync runs one reconciliation inline and reports its outcome.
A feed failure still records a failed run and answers 502 with the same body.
"""

import logging
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..models.sync_run import SyncType
from ..schemas.sync import SyncRequest, SyncResultResponse, SyncRunResponse
from ..services.sync_service import OrderReconciler
from ..services.sync_tracker import SyncRunTracker
from ..services.woo_client import WooCommerceClient, get_feed_client
from ..utils.rate_limiter import limiter, get_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["Sync"])


@router.post("", response_model=SyncResultResponse)
@limiter.limit(get_rate_limit("sync"))
async def trigger_sync(
    request: Request,
    payload: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
    client: WooCommerceClient = Depends(get_feed_client)
):
    """
    Run a full or incremental order sync.

    - full: every order since the sync epoch
    - incremental: orders since the last completed run
    """
    sync_type = payload.sync_type if payload else SyncType.INCREMENTAL
    logger.info(f"Sync requested: {sync_type.value}")

    outcome = await OrderReconciler(db, client).reconcile(sync_type)

    result = SyncResultResponse(
        run_id=outcome.run_id,
        sync_type=outcome.sync_type,
        status=outcome.status.value,
        since=outcome.since,
        orders_fetched=outcome.orders_fetched,
        orders_processed=outcome.orders_processed,
        errors=outcome.error_count,
        error_details=outcome.errors,
    )

    if outcome.general_error:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=result.model_dump(mode="json", by_alias=True)
        )
    return result


@router.get("", response_model=Optional[SyncRunResponse])
def get_latest_sync(db: Session = Depends(get_db)):
    """Latest sync run of any status, or null before the first sync"""
    run = SyncRunTracker(db).latest()
    if run is None:
        return None
    return SyncRunResponse.model_validate(run)


@router.get("/history", response_model=List[SyncRunResponse])
def get_sync_history(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    return [SyncRunResponse.model_validate(run) for run in SyncRunTracker(db).history(limit)]
