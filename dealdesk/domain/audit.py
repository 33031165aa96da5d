# dealdesk/domain/audit.py
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from ..config import settings
from ..middleware.request_id import get_request_id
from ..security.rbac import RequestContext

log = logging.getLogger("dealdesk.audit")

# dotted event taxonomy
MEMO_CREATED = "memo.created"
MEMO_UPDATED = "memo.updated"
MEMO_TRANSITIONED = "memo.transitioned"
MEMO_OPENED = "memo.opened"
MEMO_DECIDED = "memo.decided"
CONDITION_RESOLVED = "condition.resolved"
AI_GENERATION_REQUESTED = "ai.generation.requested"
AI_OUTPUT_ACCEPTED = "ai.output.accepted"
UNDERWRITING_CREATED = "underwriting.created"
UNDERWRITING_UPDATED = "underwriting.updated"
UNDERWRITING_COMP_ADDED = "underwriting.comp_added"
INVESTOR_CREATED = "investor.created"
INVESTOR_ASSIGNED = "investor.assigned"


@dataclass(frozen=True)
class AuditRecord:
    tenant_id: Optional[str]
    actor_id: Optional[str]
    role: Optional[str]
    event_type: str
    object_type: Optional[str] = None
    object_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None
    timestamp: Optional[datetime] = None


class AuditSink(Protocol):
    def append(self, record: AuditRecord) -> None: ...


def content_hash(params: Any) -> str:
    """
    Deterministic hash of canonicalized input parameters.
    Same inputs -> same hash regardless of key order.
    """
    blob = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(blob).hexdigest()


def sanitize_metadata(metadata: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Long strings are replaced by their sha256 so raw generated text is never stored."""
    if not metadata:
        return {}
    limit = int(settings.audit_metadata_max_chars)
    out: dict[str, Any] = {}
    for k, v in metadata.items():
        if isinstance(v, str) and len(v) > limit:
            out[k] = hashlib.sha256(v.encode("utf-8")).hexdigest()
        else:
            out[k] = v
    return out


def audit_record(
    ctx: RequestContext,
    event_type: str,
    *,
    tenant_id: Optional[str] = None,
    object_type: Optional[str] = None,
    object_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> AuditRecord:
    return AuditRecord(
        tenant_id=tenant_id or ctx.tenant_id,
        actor_id=ctx.user_id,
        role=ctx.role,
        event_type=event_type,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        metadata=dict(metadata or {}),
    )


def ai_generation_requested(
    ctx: RequestContext,
    *,
    tenant_id: str,
    feature: str,
    params: dict[str, Any],
) -> AuditRecord:
    return audit_record(
        ctx,
        AI_GENERATION_REQUESTED,
        tenant_id=tenant_id,
        object_type="ai",
        object_id=feature,
        metadata={"input_hash": content_hash(params)},
    )


class AuditEmitter:
    """
    Best-effort, append-only audit writer.

    `write` never raises: a failing sink is logged and the business operation
    carries on. `dispatch` decides WHEN the sink runs (inline by default; the
    API layer hands in BackgroundTasks.add_task so writes happen after the
    response is sent).
    """

    def __init__(self, sink: AuditSink, *, dispatch: Optional[Callable[..., Any]] = None):
        self.sink = sink
        self.dispatch = dispatch

    def write(self, record: AuditRecord) -> None:
        stamped = replace(
            record,
            metadata=sanitize_metadata(record.metadata),
            request_id=record.request_id or get_request_id(),
            timestamp=record.timestamp or datetime.utcnow(),
        )
        if self.dispatch is None:
            self._append(stamped)
            return
        try:
            self.dispatch(self._append, stamped)
        except Exception:
            log.exception(
                "audit dispatch failed",
                extra={"event_type": stamped.event_type, "tenant_id": stamped.tenant_id},
            )

    def _append(self, record: AuditRecord) -> None:
        try:
            self.sink.append(record)
        except Exception:
            log.exception(
                "audit write failed",
                extra={"event_type": record.event_type, "tenant_id": record.tenant_id, "object_id": record.object_id},
            )
