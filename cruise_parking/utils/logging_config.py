"""
Structured Logging Configuration

One JSON object per line in production (LOG_JSON=true), plain text locally.
Every record picks up the current request id and, inside a reconciliation,
the sync run id, so a run can be followed from trigger to aggregate rebuild.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_var: ContextVar[str] = ContextVar('request_id', default='')
sync_run_id_var: ContextVar[str] = ContextVar('sync_run_id', default='')

# Attributes copied from the LogRecord when a call site supplied them
RECORD_FIELDS = ("event", "duration_ms", "data")

NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "apscheduler")


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        context = {"request_id": request_id_var.get(), "sync_run_id": sync_run_id_var.get()}
        payload.update({key: value for key, value in context.items() if value})

        for field in RECORD_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """
    Adapter with one method per domain event.

    Usage:
        logger = get_logger(__name__)
        logger.aggregate_rebuilt(result)
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def event(self, level: int, event: str, msg: str, duration_ms: Optional[float] = None, **data):
        extra: Dict[str, Any] = {"event": event}
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        if data:
            extra["data"] = data
        self.log(level, msg, extra=extra)

    def sync_started(self, run_id: str, sync_type: str, since: datetime):
        self.event(
            logging.INFO, "sync_started",
            f"Order sync {run_id} started: {sync_type} since {since.isoformat()}",
            sync_type=sync_type, since=since
        )

    def sync_finished(
        self,
        run_id: str,
        status: str,
        orders_fetched: int,
        orders_processed: int,
        error_count: int,
        duration_ms: Optional[float] = None
    ):
        # Failed runs are warnings so they surface in alerting
        level = logging.INFO if status == "completed" else logging.WARNING
        self.event(
            level, "sync_finished",
            f"Order sync {run_id} {status}: {orders_processed}/{orders_fetched} processed, {error_count} errors",
            duration_ms=duration_ms,
            status=status,
            orders_fetched=orders_fetched,
            orders_processed=orders_processed,
            error_count=error_count
        )

    def aggregate_rebuilt(self, result):
        self.event(
            logging.INFO, "aggregate_rebuilt",
            f"Daily occupancy rebuilt: {result.day_count} days from {result.booking_count} bookings "
            f"(+{result.inserted} ~{result.updated} -{result.deleted})",
            duration_ms=result.duration_ms,
            inserted=result.inserted,
            updated=result.updated,
            deleted=result.deleted
        )

    def api_request(self, method: str, path: str, status_code: int, duration_ms: float):
        self.event(
            logging.INFO, "api_request",
            f"{method} {path} - {status_code}",
            duration_ms=duration_ms,
            status_code=status_code
        )


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Install a single stdout handler on the root and uvicorn loggers.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: JSON lines (production) or plain text (local runs)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(
        JSONFormatter() if json_format
        else logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).handlers = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name), {})


def set_request_context(request_id: str):
    request_id_var.set(request_id)


def set_sync_run_context(run_id: str):
    sync_run_id_var.set(run_id)


def clear_request_context():
    request_id_var.set('')
    sync_run_id_var.set('')
