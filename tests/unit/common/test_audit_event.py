"""Audit event sanitization and sinks."""

import logging
from enum import Enum

from schemagraph.common.audit import (
    AuditAction,
    AuditStatus,
    InMemoryAuditSink,
    LoggingAuditSink,
    build_audit_event,
    sanitize_audit_details,
)
from schemagraph.common.observability.context import crawl_id_var


class Color(Enum):
    RED = "red"


def test_secret_keys_and_unserializable_values_are_dropped():
    details = sanitize_audit_details(
        {
            "db_password": "x",
            "connection_uri": "postgres://a:b@h/db",
            "api_token": "t",
            "tables": 3,
            "ratio": float("nan"),
            "handle": object(),
            "kind": Color.RED,
            "names": ["a", 1, None],
        }
    )

    assert details == {"tables": 3, "kind": "red", "names": ["a", 1, None]}


def test_string_values_are_redacted_and_bounded():
    details = sanitize_audit_details(
        {"error": "could not connect to postgres://crawler:hunter2@db/sales", "blob": "x" * 2000}
    )

    assert "hunter2" not in details["error"]
    assert "<user>:<password>@" in details["error"]
    assert len(details["blob"]) == 512


def test_oversized_details_are_truncated():
    details = sanitize_audit_details({f"key{i}": "v" * 400 for i in range(20)})

    assert details["details_truncated"] is True
    assert len(details) < 21


def test_non_dict_details_become_empty():
    assert sanitize_audit_details(["a"]) == {}


def test_build_audit_event_picks_up_crawl_id():
    token = crawl_id_var.set("crawl_123")
    try:
        event = build_audit_event(
            AuditAction.CRAWL_STARTED, AuditStatus.QUEUED, source_id="src_a"
        )
    finally:
        crawl_id_var.reset(token)

    assert event.action == "metadata.crawl.started"
    assert event.status == "queued"
    assert event.crawl_id == "crawl_123"
    assert event.details == {}


def test_in_memory_sink_is_bounded_and_lists_newest_first():
    sink = InMemoryAuditSink(max_size=2)
    for source_id in ("a", "b", "c"):
        sink.record(build_audit_event("source.deleted", "success", source_id=source_id))

    assert [event.source_id for event in sink.events] == ["b", "c"]
    assert [item["source_id"] for item in sink.list_recent()] == ["c", "b"]
    assert [item["source_id"] for item in sink.list_recent(limit=1)] == ["c"]
    assert sink.list_recent(source_id="b")[0]["action"] == "source.deleted"
    assert sink.actions() == ["source.deleted", "source.deleted"]


def test_logging_sink_writes_structured_record(caplog):
    caplog.set_level(logging.INFO, logger="schemagraph.audit-test")
    sink = LoggingAuditSink(logging.getLogger("schemagraph.audit-test"))

    sink.record(build_audit_event("metadata.crawl.failed", "failure", source_id="src_a"))

    [record] = [r for r in caplog.records if r.name == "schemagraph.audit-test"]
    assert record.getMessage() == "audit_event"
    assert record.action == "metadata.crawl.failed"
    assert record.source_id == "src_a"
