from schemagraph.common.audit.audit_event import (
    AuditAction,
    AuditEvent,
    AuditSink,
    AuditStatus,
    InMemoryAuditSink,
    LoggingAuditSink,
    build_audit_event,
    sanitize_audit_details,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditSink",
    "AuditStatus",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "build_audit_event",
    "sanitize_audit_details",
]
