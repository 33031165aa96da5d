# dealdesk/repositories/base.py
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..domain.audit import AuditRecord, AuditSink
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


class UserRepository(Protocol):
    def get(self, user_id: str) -> Optional[AppUser]: ...


class InvestorRepository(Protocol):
    def get(self, investor_id: str) -> Optional[Investor]: ...
    def add(self, investor: Investor) -> Investor: ...
    def save(self, investor: Investor) -> Investor: ...
    def find_id_by_owner(self, user_id: str) -> Optional[str]: ...
    def list_by_agent(self, tenant_id: str, agent_id: str) -> Sequence[Investor]: ...


class ListingRepository(Protocol):
    def get(self, listing_id: str) -> Optional[Listing]: ...


class UnderwritingRepository(Protocol):
    def get(self, underwriting_id: str) -> Optional[Underwriting]: ...
    def add(self, uw: Underwriting) -> Underwriting: ...
    def save(self, uw: Underwriting) -> Underwriting: ...
    def list_for_tenant(self, tenant_id: str, *, investor_ids: Optional[Sequence[str]] = None) -> Sequence[Underwriting]: ...


class CompRepository(Protocol):
    def add(self, comp: UnderwritingComp) -> UnderwritingComp: ...
    def list_for_underwriting(self, tenant_id: str, underwriting_id: str) -> Sequence[UnderwritingComp]: ...


class MemoRepository(Protocol):
    def get(self, memo_id: str) -> Optional[Memo]: ...
    def add(self, memo: Memo) -> Memo: ...

    def save(self, memo: Memo, observed: MemoStamp) -> Memo:
        """
        Persist `memo` only if the stored (state, current_version) still
        matches `observed`; otherwise raise ConflictError.
        """
        ...

    def list_for_tenant(
        self,
        tenant_id: str,
        *,
        investor_ids: Optional[Sequence[str]] = None,
        states: Optional[Sequence[str]] = None,
    ) -> Sequence[Memo]: ...

    def list_unassigned_by_creator(self, tenant_id: str, user_id: str) -> Sequence[Memo]: ...


class DecisionRepository(Protocol):
    def add(self, decision: Decision) -> Decision: ...
    def active_for_memo(self, memo_id: str) -> Optional[Decision]: ...
    def supersede_active(self, memo_id: str, *, at: datetime) -> int: ...

    def save_resolution(self, decision: Decision) -> Decision:
        """Persist a resolution only if the stored decision is still pending."""
        ...


class AuditReader(Protocol):
    def list(
        self,
        tenant_id: str,
        *,
        object_type: Optional[str] = None,
        object_id: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[AuditEvent]: ...


class UnitOfWork(Protocol):
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


@dataclass
class Repositories:
    """Everything a service needs from the persistence layer."""

    users: UserRepository
    investors: InvestorRepository
    listings: ListingRepository
    underwritings: UnderwritingRepository
    comps: CompRepository
    memos: MemoRepository
    decisions: DecisionRepository
    audit_sink: AuditSink
    audit_reader: AuditReader
    uow: UnitOfWork


def audit_row(record: AuditRecord) -> AuditEvent:
    return AuditEvent(
        tenant_id=record.tenant_id,
        actor_id=record.actor_id,
        role=record.role,
        event_type=record.event_type,
        object_type=record.object_type,
        object_id=record.object_id,
        metadata_json=json.dumps(record.metadata or {}, sort_keys=True, default=str, ensure_ascii=False),
        request_id=record.request_id,
        created_at=record.timestamp or datetime.utcnow(),
    )
