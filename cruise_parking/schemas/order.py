"""
Order Schemas

WooCommerce-shaped payloads. The same shapes are used for orders read from
the feed, orders posted to the API, and orders returned to the calendar.
"""

from datetime import datetime, date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class WooMetaData(BaseModel):
    key: str
    value: Any = None


class WooLineItem(BaseModel):
    id: int
    name: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(..., ge=1, description="Number of vehicles")
    meta_data: List[WooMetaData] = Field(default_factory=list)

    def meta_value(self, key: str) -> Any:
        """First meta value stored under key, or None"""
        for meta in self.meta_data:
            if meta.key == key:
                return meta.value
        return None


class WooBilling(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None

    @field_validator('first_name', 'last_name', 'email', mode='before')
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator('phone', mode='before')
    @classmethod
    def blank_phone_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class WooOrder(BaseModel):
    """An order as delivered by GET /orders"""
    id: int
    status: str = Field(..., min_length=1, max_length=50)
    date_created: datetime
    billing: WooBilling = Field(default_factory=WooBilling)
    line_items: List[WooLineItem] = Field(default_factory=list)


class LineItemResponse(BaseModel):
    id: int
    name: str
    quantity: int
    meta_data: List[Dict[str, Any]] = Field(default_factory=list)
    start_date: Optional[date] = None
    duration_nights: Optional[int] = None
    end_date: Optional[date] = None


class BillingResponse(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None


class OrderResponse(BaseModel):
    """Local order rendered back in WooCommerce shape"""
    id: int
    status: str
    date_created: datetime
    billing: BillingResponse
    line_items: List[LineItemResponse] = Field(default_factory=list)
    synced_at: Optional[datetime] = None
