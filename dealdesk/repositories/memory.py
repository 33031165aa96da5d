# dealdesk/repositories/memory.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence, TypeVar

from sqlalchemy import inspect as sa_inspect

from ..domain.audit import AuditRecord
from ..domain.conditions import PENDING
from ..domain.errors import AccessError, ConflictError
from ..domain.memos import MemoStamp
from ..models import (
    AppUser,
    AuditEvent,
    Decision,
    Investor,
    Listing,
    Memo,
    Underwriting,
    UnderwritingComp,
)
from .base import Repositories, audit_row

T = TypeVar("T")


def _clone(obj: T) -> T:
    """Detached copy of a mapped row: column attributes only."""
    cls = type(obj)
    values = {attr.key: getattr(obj, attr.key) for attr in sa_inspect(cls).column_attrs}
    return cls(**values)


def _clone_memo(memo: Memo) -> Memo:
    copy = _clone(memo)
    copy.versions = [_clone(v) for v in memo.versions]
    return copy


class _Store:
    """Rows keyed by id. Callers always get copies, never the stored object."""

    def __init__(self):
        self.rows: dict[str, Any] = {}

    def put(self, obj: Any) -> None:
        self.rows[str(obj.id)] = _clone(obj)

    def get(self, key: str) -> Optional[Any]:
        row = self.rows.get(str(key))
        return _clone(row) if row is not None else None

    def values(self) -> list[Any]:
        return [_clone(r) for r in self.rows.values()]


class MemoryUserRepository:
    def __init__(self):
        self.store = _Store()

    def add(self, user: AppUser) -> AppUser:
        self.store.put(user)
        return user

    def get(self, user_id: str) -> Optional[AppUser]:
        return self.store.get(user_id)


class MemoryInvestorRepository:
    def __init__(self):
        self.store = _Store()

    def get(self, investor_id: str) -> Optional[Investor]:
        return self.store.get(investor_id)

    def add(self, investor: Investor) -> Investor:
        self.store.put(investor)
        return investor

    def save(self, investor: Investor) -> Investor:
        self.store.put(investor)
        return investor

    def find_id_by_owner(self, user_id: str) -> Optional[str]:
        for row in self.store.rows.values():
            if row.owner_user_id == str(user_id):
                return row.id
        return None

    def list_by_agent(self, tenant_id: str, agent_id: str) -> Sequence[Investor]:
        return [i for i in self.store.values() if i.tenant_id == tenant_id and i.assigned_agent_id == agent_id]


class MemoryListingRepository:
    def __init__(self):
        self.store = _Store()

    def add(self, listing: Listing) -> Listing:
        self.store.put(listing)
        return listing

    def get(self, listing_id: str) -> Optional[Listing]:
        return self.store.get(listing_id)


class MemoryUnderwritingRepository:
    def __init__(self):
        self.store = _Store()

    def get(self, underwriting_id: str) -> Optional[Underwriting]:
        return self.store.get(underwriting_id)

    def add(self, uw: Underwriting) -> Underwriting:
        self.store.put(uw)
        return uw

    def save(self, uw: Underwriting) -> Underwriting:
        self.store.put(uw)
        return uw

    def list_for_tenant(self, tenant_id: str, *, investor_ids: Optional[Sequence[str]] = None) -> Sequence[Underwriting]:
        rows = [u for u in self.store.values() if u.tenant_id == tenant_id]
        if investor_ids is not None:
            rows = [u for u in rows if u.investor_id in set(investor_ids)]
        return sorted(rows, key=lambda u: u.updated_at or datetime.min, reverse=True)


class MemoryCompRepository:
    def __init__(self):
        self.store = _Store()

    def add(self, comp: UnderwritingComp) -> UnderwritingComp:
        self.store.put(comp)
        return comp

    def list_for_underwriting(self, tenant_id: str, underwriting_id: str) -> Sequence[UnderwritingComp]:
        rows = [c for c in self.store.values() if c.tenant_id == tenant_id and c.underwriting_id == underwriting_id]
        return sorted(rows, key=lambda c: c.created_at or datetime.min)


class MemoryMemoRepository:
    """
    Snapshot store for memos. A save succeeds only when the stored
    (state, current_version, revision) is exactly what the caller read.
    """

    def __init__(self):
        self.rows: dict[str, Memo] = {}

    def get(self, memo_id: str) -> Optional[Memo]:
        row = self.rows.get(str(memo_id))
        return _clone_memo(row) if row is not None else None

    def add(self, memo: Memo) -> Memo:
        if memo.revision is None:
            memo.revision = 1
        self.rows[str(memo.id)] = _clone_memo(memo)
        return memo

    def save(self, memo: Memo, observed: MemoStamp) -> Memo:
        stored = self.rows.get(str(memo.id))
        if stored is None:
            raise ConflictError()
        if MemoStamp.of(stored) != observed or stored.revision != memo.revision:
            raise ConflictError()

        memo.revision = int(stored.revision) + 1
        memo.updated_at = datetime.utcnow()
        self.rows[str(memo.id)] = _clone_memo(memo)
        return memo

    def list_for_tenant(
        self,
        tenant_id: str,
        *,
        investor_ids: Optional[Sequence[str]] = None,
        states: Optional[Sequence[str]] = None,
    ) -> Sequence[Memo]:
        rows = [m for m in self.rows.values() if m.tenant_id == tenant_id]
        if investor_ids is not None:
            rows = [m for m in rows if m.investor_id in set(investor_ids)]
        if states is not None:
            rows = [m for m in rows if m.state in set(states)]
        rows.sort(key=lambda m: m.updated_at or datetime.min, reverse=True)
        return [_clone_memo(m) for m in rows]

    def list_unassigned_by_creator(self, tenant_id: str, user_id: str) -> Sequence[Memo]:
        rows = [
            m
            for m in self.rows.values()
            if m.tenant_id == tenant_id and m.created_by == user_id and m.investor_id is None
        ]
        rows.sort(key=lambda m: m.updated_at or datetime.min, reverse=True)
        return [_clone_memo(m) for m in rows]


class MemoryDecisionRepository:
    def __init__(self):
        self.store = _Store()

    def add(self, decision: Decision) -> Decision:
        self.store.put(decision)
        return decision

    def active_for_memo(self, memo_id: str) -> Optional[Decision]:
        active = [
            d for d in self.store.rows.values() if d.memo_id == str(memo_id) and d.superseded_at is None
        ]
        if not active:
            return None
        newest = max(active, key=lambda d: d.created_at or datetime.min)
        return _clone(newest)

    def supersede_active(self, memo_id: str, *, at: datetime) -> int:
        n = 0
        for d in self.store.rows.values():
            if d.memo_id == str(memo_id) and d.superseded_at is None:
                d.superseded_at = at
                n += 1
        return n

    def save_resolution(self, decision: Decision) -> Decision:
        stored = self.store.rows.get(str(decision.id))
        if stored is None or stored.resolved_status != PENDING:
            raise AccessError("Condition already resolved", 409)
        self.store.put(decision)
        return decision


class MemoryAuditSink:
    def __init__(self):
        self.records: list[AuditRecord] = []

    def append(self, record: AuditRecord) -> None:
        self.records.append(record)


class MemoryAuditReader:
    def __init__(self, sink: MemoryAuditSink):
        self.sink = sink

    def list(
        self,
        tenant_id: str,
        *,
        object_type: Optional[str] = None,
        object_id: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[AuditEvent]:
        out: list[AuditEvent] = []
        for i, rec in reversed(list(enumerate(self.sink.records, start=1))):
            if rec.tenant_id != tenant_id:
                continue
            if object_type and rec.object_type != object_type:
                continue
            if object_id and rec.object_id != object_id:
                continue
            row = audit_row(rec)
            row.id = i
            out.append(row)
            if len(out) >= int(limit):
                break
        return out


class MemoryUnitOfWork:
    # every in-memory write is visible immediately
    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass


def in_memory_repositories() -> Repositories:
    sink = MemoryAuditSink()
    return Repositories(
        users=MemoryUserRepository(),
        investors=MemoryInvestorRepository(),
        listings=MemoryListingRepository(),
        underwritings=MemoryUnderwritingRepository(),
        comps=MemoryCompRepository(),
        memos=MemoryMemoRepository(),
        decisions=MemoryDecisionRepository(),
        audit_sink=sink,
        audit_reader=MemoryAuditReader(sink),
        uow=MemoryUnitOfWork(),
    )
