# dealdesk/services/condition_service.py
from __future__ import annotations

from typing import Optional

from ..domain import audit as events
from ..domain import conditions
from ..domain.audit import AuditEmitter, audit_record
from ..models import Decision
from ..repositories.base import Repositories
from ..security.rbac import Capability, RequestContext, assert_capability
from .memo_service import load_memo


def active_decision(repos: Repositories, ctx: RequestContext, memo_id: str) -> Optional[Decision]:
    assert_capability(ctx, Capability.MEMO_READ)
    memo = load_memo(repos, ctx, memo_id)
    return repos.decisions.active_for_memo(memo.id)


def resolve_condition(
    repos: Repositories,
    ctx: RequestContext,
    memo_id: str,
    *,
    resolution: str,
    notes: Optional[str] = None,
    audit: AuditEmitter,
) -> Decision:
    """
    Resolve the pending condition on a memo's active decision.

    Exactly-once: the store only accepts the resolution while the decision is
    still pending, so a racing second resolver fails instead of overwriting.
    """
    assert_capability(ctx, Capability.CONDITION_RESOLVE)
    memo = load_memo(repos, ctx, memo_id)

    decision = repos.decisions.active_for_memo(memo.id)
    conditions.resolve_condition(decision, resolution, ctx.user_id, notes)
    repos.decisions.save_resolution(decision)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.CONDITION_RESOLVED,
            tenant_id=memo.tenant_id,
            object_type="decision",
            object_id=decision.id,
            metadata={"memo_id": memo.id, "resolution": resolution, "has_notes": bool(notes)},
        )
    )
    return decision
