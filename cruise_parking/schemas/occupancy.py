"""
Occupancy Schemas

Response bodies use camelCase keys (carCount, occupancyPercentage) as the
calendar frontend expects; population by field name stays allowed.
"""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .order import OrderResponse


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class OccupancyDay(CamelModel):
    day: date = Field(..., alias="date")
    car_count: int = 0
    occupancy_percentage: int = 0
    orders: Optional[List[OrderResponse]] = None


class OverlayEntry(CamelModel):
    """A manual or third-party booking kept outside the order feed"""
    id: Optional[str] = None
    day: date = Field(..., alias="date")
    car_count: int = Field(..., ge=1)
    source: str = Field(..., min_length=1, max_length=200)


class MergedOccupancyDay(CamelModel):
    day: date = Field(..., alias="date")
    car_count: int = 0
    overlay_car_count: int = 0
    total_car_count: int = 0
    occupancy_percentage: int = 0
    overlay_bookings: List[OverlayEntry] = Field(default_factory=list)
    orders: Optional[List[OrderResponse]] = None


class OverlayMergeRequest(CamelModel):
    start_date: str
    end_date: str
    include_orders: bool = False
    overlay: List[OverlayEntry] = Field(default_factory=list)


class MonthlyStats(CamelModel):
    month: str
    total_days: int = Field(0, description="Days with at least one car")
    average_occupancy: int = Field(0, description="Mean percentage over booked days")
    high_occupancy_days: int = 0
    peak_day: Optional[date] = None
    peak_car_count: int = 0
