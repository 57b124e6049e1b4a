import uuid
import enum
from sqlalchemy import Column, String, Integer, DateTime, JSON, Index
from ..database import Base
from ..utils.dates import utcnow


class SyncType(str, enum.Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncRunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncRun(Base):
    """
    History of reconciliation attempts.

    Immutable once finished. The started_at of the newest completed run is
    the watermark for the next incremental sync.
    """
    __tablename__ = "sync_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sync_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=SyncRunStatus.RUNNING.value)

    started_at = Column(DateTime, nullable=False, default=utcnow)
    finished_at = Column(DateTime, nullable=True)

    # Watermark this run fetched from
    since = Column(DateTime, nullable=False)

    orders_fetched = Column(Integer, default=0)
    orders_processed = Column(Integer, default=0)

    # [{"order_id": 123, "error": "..."}] or [{"general": "..."}]
    errors = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_sync_runs_status_started', 'status', 'started_at'),
    )

    @property
    def is_finished(self) -> bool:
        return self.status != SyncRunStatus.RUNNING.value

    def __repr__(self):
        return f"<SyncRun {self.sync_type} {self.status} processed={self.orders_processed}>"


class SyncLock(Base):
    """
    Run-level lock: at most one reconciliation per deployment.

    Holding the lock means owning the single row keyed by name.
    """
    __tablename__ = "sync_locks"

    name = Column(String(50), primary_key=True)
    owner = Column(String(100), nullable=True)
    acquired_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<SyncLock {self.name} owner={self.owner}>"
