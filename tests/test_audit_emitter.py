# tests/test_audit_emitter.py
from __future__ import annotations

import hashlib
import logging

from dealdesk.domain import audit as events
from dealdesk.domain.audit import (
    AuditEmitter,
    AuditRecord,
    ai_generation_requested,
    audit_record,
    content_hash,
    sanitize_metadata,
)
from dealdesk.middleware.request_id import request_id_ctx
from dealdesk.security.rbac import AGENT, RequestContext

CTX = RequestContext(user_id="u1", role=AGENT, tenant_id="t1")


class _ListSink:
    def __init__(self):
        self.records: list[AuditRecord] = []

    def append(self, record: AuditRecord) -> None:
        self.records.append(record)


class _BrokenSink:
    def append(self, record: AuditRecord) -> None:
        raise RuntimeError("audit store unavailable")


def test_record_carries_actor_and_dotted_type():
    rec = audit_record(CTX, events.MEMO_CREATED, object_type="memo", object_id="m1", metadata={"version": 1})
    assert (rec.tenant_id, rec.actor_id, rec.role) == ("t1", "u1", AGENT)
    assert rec.event_type == "memo.created"
    assert rec.object_id == "m1"


def test_write_stamps_timestamp_and_request_id():
    sink = _ListSink()
    token = request_id_ctx.set("req-123")
    try:
        AuditEmitter(sink).write(audit_record(CTX, events.MEMO_UPDATED, object_id="m1"))
    finally:
        request_id_ctx.reset(token)

    (rec,) = sink.records
    assert rec.request_id == "req-123"
    assert rec.timestamp is not None


def test_sink_failure_never_reaches_the_caller(caplog):
    emitter = AuditEmitter(_BrokenSink())
    with caplog.at_level(logging.ERROR, logger="dealdesk.audit"):
        emitter.write(audit_record(CTX, events.CONDITION_RESOLVED, object_id="d1"))
    assert any("audit write failed" in r.getMessage() for r in caplog.records)


def test_dispatch_failure_is_logged_not_raised(caplog):
    def boom(fn, *args):
        raise RuntimeError("queue full")

    emitter = AuditEmitter(_ListSink(), dispatch=boom)
    with caplog.at_level(logging.ERROR, logger="dealdesk.audit"):
        emitter.write(audit_record(CTX, events.MEMO_CREATED))
    assert any("audit dispatch failed" in r.getMessage() for r in caplog.records)


def test_dispatch_defers_the_write():
    sink = _ListSink()
    queued = []
    emitter = AuditEmitter(sink, dispatch=lambda fn, *args: queued.append((fn, args)))

    emitter.write(audit_record(CTX, events.MEMO_CREATED))
    assert sink.records == []

    fn, args = queued[0]
    fn(*args)
    assert [r.event_type for r in sink.records] == ["memo.created"]


def test_content_hash_is_key_order_independent():
    a = content_hash({"listing_id": "l1", "inputs": {"rent": 1, "price": 2}})
    b = content_hash({"inputs": {"price": 2, "rent": 1}, "listing_id": "l1"})
    assert a == b
    assert len(a) == 64
    assert content_hash({"listing_id": "l2"}) != a


def test_generation_event_carries_input_hash():
    params = {"underwriting_id": "uw1", "inputs": {"price": 1}}
    rec = ai_generation_requested(CTX, tenant_id="t1", feature="memo", params=params)
    assert rec.event_type == "ai.generation.requested"
    assert rec.metadata == {"input_hash": content_hash(params)}


def test_long_metadata_strings_are_hashed():
    long_text = "x" * 300
    out = sanitize_metadata({"prompt": long_text, "short": "ok", "n": 3})
    assert out["prompt"] == hashlib.sha256(long_text.encode("utf-8")).hexdigest()
    assert out["short"] == "ok"
    assert out["n"] == 3
    assert sanitize_metadata(None) == {}


def test_emitter_sanitizes_before_append():
    sink = _ListSink()
    AuditEmitter(sink).write(audit_record(CTX, events.AI_OUTPUT_ACCEPTED, metadata={"raw": "y" * 1000}))
    assert len(sink.records[0].metadata["raw"]) == 64
