"""Structured audit stream for crawl and source lifecycle events."""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Optional, Protocol

from opentelemetry import trace
from pydantic import BaseModel, ConfigDict, Field

from schemagraph.common.observability.context import crawl_id_var
from schemagraph.common.observability.metrics import crawl_metrics
from schemagraph.common.sanitization import redact_secrets

logger = logging.getLogger(__name__)

_MAX_DETAIL_KEYS = 32
_MAX_DETAIL_KEY_LEN = 64
_MAX_DETAIL_VALUE_LEN = 512
_MAX_DETAILS_JSON_BYTES = 4096
_BLOCKED_DETAIL_KEY_FRAGMENTS = {"password", "secret", "token", "credential", "uri"}
_DROP_VALUE = object()


class AuditAction(str, Enum):
    """Canonical audit actions."""

    CRAWL_STARTED = "metadata.crawl.started"
    CRAWL_COMPLETED = "metadata.crawl.completed"
    CRAWL_FAILED = "metadata.crawl.failed"
    CRAWL_CANCELLED = "metadata.crawl.cancelled"
    SOURCE_DELETED = "source.deleted"


class AuditStatus(str, Enum):
    """Outcome recorded with an audit action."""

    QUEUED = "queued"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class AuditEvent(BaseModel):
    """Audit record with bounded, redacted details."""

    model_config = ConfigDict(extra="forbid")

    action: str
    status: str
    timestamp: float
    source_id: Optional[str] = None
    crawl_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class AuditSink(Protocol):
    """Consumer of audit events."""

    def record(self, event: AuditEvent) -> None:
        """Accept one event."""
        ...


def _sanitize_value(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value) if math.isfinite(value) else _DROP_VALUE
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (list, tuple)):
        items = [_sanitize_value(item) for item in list(value)[:_MAX_DETAIL_KEYS]]
        return [item for item in items if item is not _DROP_VALUE]
    if not isinstance(value, str):
        return _DROP_VALUE
    text = redact_secrets(value).strip()
    return text[:_MAX_DETAIL_VALUE_LEN]


def sanitize_audit_details(details: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Bound and redact details so no credentials or oversized payloads are recorded."""
    if not isinstance(details, dict):
        return {}

    sanitized: dict[str, Any] = {}
    for raw_key, raw_value in details.items():
        if len(sanitized) >= _MAX_DETAIL_KEYS:
            break
        key = str(raw_key).strip()[:_MAX_DETAIL_KEY_LEN]
        if not key or any(fragment in key.lower() for fragment in _BLOCKED_DETAIL_KEY_FRAGMENTS):
            continue
        value = _sanitize_value(raw_value)
        if value is _DROP_VALUE:
            continue
        sanitized[key] = value

    truncated = False
    while sanitized:
        encoded = json.dumps(sanitized, sort_keys=True, default=str).encode("utf-8")
        if len(encoded) <= _MAX_DETAILS_JSON_BYTES:
            break
        truncated = True
        sanitized.pop(next(reversed(sanitized)))
    if truncated:
        sanitized["details_truncated"] = True
    return sanitized


def build_audit_event(
    action: AuditAction | str,
    status: AuditStatus | str,
    *,
    source_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """Create a sanitized event stamped with the current crawl id."""
    return AuditEvent(
        action=str(action.value if isinstance(action, AuditAction) else action),
        status=str(status.value if isinstance(status, AuditStatus) else status),
        timestamp=float(time.time()),
        source_id=source_id,
        crawl_id=crawl_id_var.get(),
        details=sanitize_audit_details(details),
    )


class LoggingAuditSink:
    """Writes each event as one structured log record."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        """Initialize with an optional logger (defaults to this module's)."""
        self._logger = log or logger

    def record(self, event: AuditEvent) -> None:
        """Log the event and annotate the active span."""
        self._logger.info(
            "audit_event",
            extra={
                "event": "audit_event",
                "action": event.action,
                "status": event.status,
                "source_id": event.source_id,
                "crawl_id": event.crawl_id,
                "details": event.details,
            },
        )
        span = trace.get_current_span()
        if span is not None and span.is_recording():
            span.add_event(
                "schemagraph.audit",
                {
                    "action": event.action,
                    "status": event.status,
                    "source_id": event.source_id or "",
                    "details_json": json.dumps(event.details, sort_keys=True, default=str)[:1024],
                },
            )
        crawl_metrics.add_counter(
            "schemagraph.audit.events_total",
            attributes={"action": event.action, "status": event.status},
            description="Crawl and source lifecycle audit events",
        )


class InMemoryAuditSink:
    """Thread-safe bounded FIFO of recent audit events."""

    def __init__(self, *, max_size: int = 200) -> None:
        """Initialize bounded in-memory retention."""
        self._items: deque[AuditEvent] = deque(maxlen=max(1, int(max_size)))
        self._lock = threading.Lock()

    def record(self, event: AuditEvent) -> None:
        """Append one event, evicting the oldest when full."""
        with self._lock:
            self._items.append(event)

    @property
    def events(self) -> list[AuditEvent]:
        """Return events oldest-first."""
        with self._lock:
            return list(self._items)

    def list_recent(
        self, *, limit: Optional[int] = None, source_id: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Return newest-first events with optional limit and source filter."""
        events = self.events
        if source_id:
            events = [event for event in events if event.source_id == source_id]
        if limit is not None:
            events = events[-max(0, int(limit)) :] if limit else []
        events.reverse()
        return [json.loads(event.model_dump_json()) for event in events]

    def actions(self) -> list[str]:
        """Return recorded actions oldest-first."""
        return [event.action for event in self.events]
