from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..config import settings
from ..exceptions import InvalidRangeQuery
from ..schemas.occupancy import OccupancyDay, MergedOccupancyDay, OverlayMergeRequest, MonthlyStats
from ..services.occupancy_service import OccupancyQueryService, parse_range, parse_month
from ..services.overlay import merge_overlay
from ..utils.dates import normalize_day
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/occupancy", tags=["Occupancy"])


@router.get("", response_model=List[OccupancyDay], response_model_exclude_unset=True)
@router.get("/", response_model=List[OccupancyDay], response_model_exclude_unset=True)
@limiter.limit(get_rate_limit("occupancy_read"))
def get_occupancy(
    request: Request,
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    include_orders: bool = Query(False, description="Attach the orders covering each day"),
    db: Session = Depends(get_db)
):
    """
    Daily occupancy for a date range, one entry per day.

    Without include_orders the counts come from the materialized table;
    with it every day lists the orders whose bookings cover it.
    """
    start, end = parse_range(start_date, end_date)
    service = OccupancyQueryService(db)

    if include_orders:
        return service.query_range_with_bookings(start, end)
    return service.query_range(start, end)


@router.get("/stats", response_model=MonthlyStats)
@limiter.limit(get_rate_limit("occupancy_read"))
def get_monthly_stats(
    request: Request,
    month: str = Query(..., description="YYYY-MM"),
    db: Session = Depends(get_db)
):
    """Monthly summary: booked days, average and high occupancy days"""
    year, month_number = parse_month(month)
    return OccupancyQueryService(db).monthly_stats(year, month_number)


@router.post("/overlay", response_model=List[MergedOccupancyDay], response_model_exclude_unset=True)
@limiter.limit(get_rate_limit("overlay"))
def merge_occupancy_overlay(
    request: Request,
    payload: OverlayMergeRequest,
    db: Session = Depends(get_db)
):
    """
    Server counts for the range with manual / third-party bookings added on top.
    Overlay entries are not stored.
    """
    start, end = parse_range(payload.start_date, payload.end_date)
    service = OccupancyQueryService(db)

    if payload.include_orders:
        days = service.query_range_with_bookings(start, end)
    else:
        days = service.query_range(start, end)

    return merge_overlay(days, payload.overlay, settings.lot_capacity)


@router.get("/{day}", response_model=OccupancyDay)
@limiter.limit(get_rate_limit("occupancy_read"))
def get_day_detail(
    request: Request,
    day: str,
    db: Session = Depends(get_db)
):
    """One day with the orders parked on it (calendar day click)"""
    try:
        target = normalize_day(day)
    except (ValueError, TypeError):
        target = None
    if target is None:
        raise InvalidRangeQuery("day must be YYYY-MM-DD")

    return OccupancyQueryService(db).query_day(target)
