"""
Sync Schemas

Pydantic models for the sync control API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator

from ..models.sync_run import SyncType
from .occupancy import CamelModel


class SyncRequest(CamelModel):
    sync_type: SyncType = SyncType.INCREMENTAL


class SyncResultResponse(CamelModel):
    run_id: str
    sync_type: SyncType
    status: str
    since: datetime
    orders_fetched: int = 0
    orders_processed: int = 0
    errors: int = Field(0, description="Number of per-order errors")
    error_details: List[Dict[str, Any]] = Field(default_factory=list)


class SyncRunResponse(CamelModel):
    id: str
    sync_type: str
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    since: datetime
    orders_fetched: int = 0
    orders_processed: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator('errors', mode='before')
    @classmethod
    def none_to_empty(cls, v):
        return v or []
