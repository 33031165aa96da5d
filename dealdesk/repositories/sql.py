# dealdesk/repositories/sql.py
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

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


class SqlUserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[AppUser]:
        return self.db.get(AppUser, str(user_id))


class SqlInvestorRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, investor_id: str) -> Optional[Investor]:
        return self.db.get(Investor, str(investor_id))

    def add(self, investor: Investor) -> Investor:
        self.db.add(investor)
        self.db.flush()
        return investor

    def save(self, investor: Investor) -> Investor:
        self.db.add(investor)
        self.db.flush()
        return investor

    def find_id_by_owner(self, user_id: str) -> Optional[str]:
        return self.db.scalar(select(Investor.id).where(Investor.owner_user_id == str(user_id)).limit(1))

    def list_by_agent(self, tenant_id: str, agent_id: str) -> Sequence[Investor]:
        q = (
            select(Investor)
            .where(Investor.tenant_id == tenant_id, Investor.assigned_agent_id == agent_id)
            .order_by(Investor.created_at)
        )
        return list(self.db.scalars(q).all())


class SqlListingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, listing_id: str) -> Optional[Listing]:
        return self.db.get(Listing, str(listing_id))


class SqlUnderwritingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, underwriting_id: str) -> Optional[Underwriting]:
        return self.db.get(Underwriting, str(underwriting_id))

    def add(self, uw: Underwriting) -> Underwriting:
        self.db.add(uw)
        self.db.flush()
        return uw

    def save(self, uw: Underwriting) -> Underwriting:
        self.db.add(uw)
        self.db.flush()
        return uw

    def list_for_tenant(self, tenant_id: str, *, investor_ids: Optional[Sequence[str]] = None) -> Sequence[Underwriting]:
        q = select(Underwriting).where(Underwriting.tenant_id == tenant_id).order_by(desc(Underwriting.updated_at))
        if investor_ids is not None:
            if not investor_ids:
                return []
            q = q.where(Underwriting.investor_id.in_(list(investor_ids)))
        return list(self.db.scalars(q).all())


class SqlCompRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, comp: UnderwritingComp) -> UnderwritingComp:
        self.db.add(comp)
        self.db.flush()
        return comp

    def list_for_underwriting(self, tenant_id: str, underwriting_id: str) -> Sequence[UnderwritingComp]:
        q = (
            select(UnderwritingComp)
            .where(UnderwritingComp.tenant_id == tenant_id, UnderwritingComp.underwriting_id == underwriting_id)
            .order_by(UnderwritingComp.created_at)
        )
        return list(self.db.scalars(q).all())


class SqlMemoRepository:
    """
    Memo writes are conditioned twice:
      - the stored (state, current_version) must equal what the caller observed
      - the flush itself is guarded by Memo.revision (version_id_col), which
        closes the window between that check and the UPDATE
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, memo_id: str) -> Optional[Memo]:
        q = select(Memo).where(Memo.id == str(memo_id)).options(selectinload(Memo.versions))
        return self.db.scalar(q)

    def add(self, memo: Memo) -> Memo:
        self.db.add(memo)
        self.db.flush()
        return memo

    def save(self, memo: Memo, observed: MemoStamp) -> Memo:
        stored = self.db.execute(
            select(Memo.state, Memo.current_version).where(Memo.id == memo.id)
        ).one_or_none()
        if stored is None or (stored.state, int(stored.current_version)) != (observed.state, observed.current_version):
            self.db.rollback()
            raise ConflictError()

        # always dirty the memo row so the revision check runs even when only
        # a version row changed (in-place draft edit)
        memo.updated_at = datetime.utcnow()
        try:
            self.db.flush()
        except StaleDataError:
            self.db.rollback()
            raise ConflictError() from None
        return memo

    def list_for_tenant(
        self,
        tenant_id: str,
        *,
        investor_ids: Optional[Sequence[str]] = None,
        states: Optional[Sequence[str]] = None,
    ) -> Sequence[Memo]:
        q = (
            select(Memo)
            .where(Memo.tenant_id == tenant_id)
            .options(selectinload(Memo.versions))
            .order_by(desc(Memo.updated_at))
        )
        if investor_ids is not None:
            if not investor_ids:
                return []
            q = q.where(Memo.investor_id.in_(list(investor_ids)))
        if states is not None:
            q = q.where(Memo.state.in_(list(states)))
        return list(self.db.scalars(q).all())

    def list_unassigned_by_creator(self, tenant_id: str, user_id: str) -> Sequence[Memo]:
        q = (
            select(Memo)
            .where(Memo.tenant_id == tenant_id, Memo.created_by == user_id, Memo.investor_id.is_(None))
            .options(selectinload(Memo.versions))
            .order_by(desc(Memo.updated_at))
        )
        return list(self.db.scalars(q).all())


class SqlDecisionRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, decision: Decision) -> Decision:
        self.db.add(decision)
        self.db.flush()
        return decision

    def active_for_memo(self, memo_id: str) -> Optional[Decision]:
        q = (
            select(Decision)
            .where(Decision.memo_id == str(memo_id), Decision.superseded_at.is_(None))
            .order_by(desc(Decision.created_at))
            .limit(1)
        )
        return self.db.scalar(q)

    def supersede_active(self, memo_id: str, *, at: datetime) -> int:
        res = self.db.execute(
            update(Decision)
            .where(Decision.memo_id == str(memo_id), Decision.superseded_at.is_(None))
            .values(superseded_at=at)
            .execution_options(synchronize_session="fetch")
        )
        return int(res.rowcount or 0)

    def save_resolution(self, decision: Decision) -> Decision:
        res = self.db.execute(
            update(Decision)
            .where(Decision.id == decision.id, Decision.resolved_status == PENDING)
            .values(
                resolved_status=decision.resolved_status,
                resolved_by=decision.resolved_by,
                resolved_at=decision.resolved_at,
                resolved_notes=decision.resolved_notes,
            )
            .execution_options(synchronize_session=False)
        )
        if int(res.rowcount or 0) != 1:
            self.db.rollback()
            raise AccessError("Condition already resolved", 409)
        return decision


class SqlAuditSink:
    """
    Writes audit rows on a session of its own so an audit failure can never
    roll back (or be rolled back by) the business transaction.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def append(self, record: AuditRecord) -> None:
        db = self.session_factory()
        try:
            db.add(audit_row(record))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class SqlAuditReader:
    def __init__(self, db: Session):
        self.db = db

    def list(
        self,
        tenant_id: str,
        *,
        object_type: Optional[str] = None,
        object_id: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[AuditEvent]:
        q = select(AuditEvent).where(AuditEvent.tenant_id == tenant_id).order_by(desc(AuditEvent.id))
        if object_type:
            q = q.where(AuditEvent.object_type == object_type)
        if object_id:
            q = q.where(AuditEvent.object_id == object_id)
        return list(self.db.scalars(q.limit(int(limit))).all())


class SqlUnitOfWork:
    def __init__(self, db: Session):
        self.db = db

    def commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConflictError() from None

    def rollback(self) -> None:
        self.db.rollback()


def build_sql_repositories(db: Session, *, audit_session_factory: Callable[[], Session]) -> Repositories:
    return Repositories(
        users=SqlUserRepository(db),
        investors=SqlInvestorRepository(db),
        listings=SqlListingRepository(db),
        underwritings=SqlUnderwritingRepository(db),
        comps=SqlCompRepository(db),
        memos=SqlMemoRepository(db),
        decisions=SqlDecisionRepository(db),
        audit_sink=SqlAuditSink(audit_session_factory),
        audit_reader=SqlAuditReader(db),
        uow=SqlUnitOfWork(db),
    )
