# dealdesk/services/memo_service.py
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any, Optional, Protocol, Sequence

from ..domain import audit as events
from ..domain.audit import AuditEmitter, audit_record, content_hash
from ..domain.conditions import initial_resolved_status, validate_decision_input
from ..domain.errors import AccessError, ConflictError, ValidationError
from ..domain.memos import (
    DECIDED,
    DRAFT,
    OPENED,
    SENT,
    MemoStamp,
    edit_memo_content,
    transition_memo,
)
from ..domain.underwriting import build_memo_content, compute_confidence, evidence_warnings
from ..models import Decision, Listing, Memo
from ..repositories.base import Repositories
from ..security.rbac import (
    AGENT,
    INVESTOR,
    INVESTOR_VISIBLE_STATES,
    Capability,
    RequestContext,
    assert_capability,
    assert_investor_write,
    assert_memo_access,
    assert_tenant_match,
    assert_transition_allowed,
    require_investor_scope,
    require_tenant,
)
from .ownership import (
    linked_investor,
    must_get_investor,
    must_get_listing,
    must_get_memo,
    must_get_underwriting,
)

log = logging.getLogger("dealdesk.memos")


def _now() -> datetime:
    return datetime.utcnow()


# -------------------------
# Content generation
# -------------------------
class ContentGenerator(Protocol):
    """Produces opaque memo content; the result is stored, never inspected."""

    def generate(
        self,
        *,
        inputs: dict[str, Any],
        scenarios: dict[str, Any],
        comps: Sequence[Any],
        warnings: list[str],
        confidence: str,
        listing: Listing,
    ) -> Any: ...


class TemplateContentGenerator:
    def generate(
        self,
        *,
        inputs: dict[str, Any],
        scenarios: dict[str, Any],
        comps: Sequence[Any],
        warnings: list[str],
        confidence: str,
        listing: Listing,
    ) -> Any:
        return build_memo_content(
            inputs=inputs,
            scenarios=scenarios,
            comps=list(comps),
            warnings=warnings,
            confidence=confidence,
            trust_status=listing.trust_status or "unknown",
            trust_reason=listing.trust_reason,
        )


# -------------------------
# Helpers
# -------------------------
def load_memo(repos: Repositories, ctx: RequestContext, memo_id: str) -> Memo:
    """Fetch + full access check (tenant, role, investor scope)."""
    memo = must_get_memo(repos, ctx, memo_id)
    investor = linked_investor(repos, memo.tenant_id, memo.investor_id)
    assert_memo_access(memo, ctx, investor)
    return memo


def _check_expected(memo: Memo, expected_version: Optional[int], expected_state: Optional[str]) -> None:
    if expected_version is not None and int(expected_version) != int(memo.current_version):
        raise ConflictError()
    if expected_state is not None and expected_state != memo.state:
        raise ConflictError()


def _new_memo(
    ctx: RequestContext,
    *,
    tenant_id: str,
    investor_id: Optional[str],
    listing_id: Optional[str],
    underwriting_id: Optional[str],
    content: Any,
) -> Memo:
    now = _now()
    memo = Memo(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        investor_id=investor_id,
        listing_id=listing_id,
        underwriting_id=underwriting_id,
        state=DRAFT,
        current_version=1,
        created_by=ctx.user_id,
        created_at=now,
        updated_at=now,
    )
    memo.append_version(version=1, content=content, created_by=ctx.user_id, created_at=now)
    return memo


# -------------------------
# Operations
# -------------------------
def create_memo(
    repos: Repositories,
    ctx: RequestContext,
    *,
    content: Any,
    investor_id: Optional[str] = None,
    listing_id: Optional[str] = None,
    underwriting_id: Optional[str] = None,
    audit: AuditEmitter,
) -> Memo:
    assert_capability(ctx, Capability.MEMO_WRITE)
    tenant_id = require_tenant(ctx)

    if investor_id:
        investor = must_get_investor(repos, ctx, investor_id)
        assert_tenant_match(investor.tenant_id, tenant_id)
        assert_investor_write(investor, ctx)
    if listing_id:
        listing = must_get_listing(repos, ctx, listing_id)
        assert_tenant_match(listing.tenant_id, tenant_id)
    if underwriting_id:
        uw = must_get_underwriting(repos, ctx, underwriting_id)
        assert_tenant_match(uw.tenant_id, tenant_id)

    memo = _new_memo(
        ctx,
        tenant_id=tenant_id,
        investor_id=investor_id,
        listing_id=listing_id,
        underwriting_id=underwriting_id,
        content=content,
    )
    repos.memos.add(memo)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.MEMO_CREATED,
            tenant_id=tenant_id,
            object_type="memo",
            object_id=memo.id,
            metadata={"version": 1, "investor_id": investor_id},
        )
    )
    return memo


def get_memo(repos: Repositories, ctx: RequestContext, memo_id: str, *, audit: AuditEmitter) -> Memo:
    """
    Read a memo. The memo's own investor opening a `sent` memo moves it to
    `opened`.
    """
    assert_capability(ctx, Capability.MEMO_READ)
    memo = load_memo(repos, ctx, memo_id)

    if memo.state == SENT and ctx.investor_id and ctx.investor_id == memo.investor_id:
        observed = MemoStamp.of(memo)
        transition_memo(memo, OPENED)
        repos.memos.save(memo, observed)
        repos.uow.commit()
        audit.write(
            audit_record(
                ctx,
                events.MEMO_OPENED,
                tenant_id=memo.tenant_id,
                object_type="memo",
                object_id=memo.id,
                metadata={"version": memo.current_version},
            )
        )
    return memo


def list_memos(repos: Repositories, ctx: RequestContext) -> list[Memo]:
    assert_capability(ctx, Capability.MEMO_READ)
    tenant_id = require_tenant(ctx)

    if ctx.role == INVESTOR:
        investor_id = require_investor_scope(ctx)
        return list(
            repos.memos.list_for_tenant(
                tenant_id, investor_ids=[investor_id], states=sorted(INVESTOR_VISIBLE_STATES)
            )
        )

    if ctx.role == AGENT:
        investor_ids = [i.id for i in repos.investors.list_by_agent(tenant_id, ctx.user_id)]
        assigned = list(repos.memos.list_for_tenant(tenant_id, investor_ids=investor_ids))
        unassigned = list(repos.memos.list_unassigned_by_creator(tenant_id, ctx.user_id))
        rows = assigned + unassigned
        rows.sort(key=lambda m: m.updated_at or datetime.min, reverse=True)
        return rows

    return list(repos.memos.list_for_tenant(tenant_id))


def edit_content(
    repos: Repositories,
    ctx: RequestContext,
    memo_id: str,
    content: Any,
    *,
    expected_version: Optional[int] = None,
    expected_state: Optional[str] = None,
    audit: AuditEmitter,
) -> Memo:
    assert_capability(ctx, Capability.MEMO_WRITE)
    memo = load_memo(repos, ctx, memo_id)
    _check_expected(memo, expected_version, expected_state)

    observed = MemoStamp.of(memo)
    row = edit_memo_content(memo, content, ctx.user_id)
    repos.memos.save(memo, observed)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.MEMO_UPDATED,
            tenant_id=memo.tenant_id,
            object_type="memo",
            object_id=memo.id,
            metadata={
                "from_version": observed.current_version,
                "to_version": row.version,
                "from_state": observed.state,
                "forked": row.version != observed.current_version,
            },
        )
    )
    return memo


def transition(
    repos: Repositories,
    ctx: RequestContext,
    memo_id: str,
    to_state: str,
    *,
    expected_version: Optional[int] = None,
    expected_state: Optional[str] = None,
    audit: AuditEmitter,
) -> Memo:
    if to_state == DECIDED:
        raise AccessError("Memos are decided by recording a decision", 400)
    assert_transition_allowed(ctx, to_state)

    memo = load_memo(repos, ctx, memo_id)
    _check_expected(memo, expected_version, expected_state)

    observed = MemoStamp.of(memo)
    transition_memo(memo, to_state)
    repos.memos.save(memo, observed)
    repos.uow.commit()

    event_type = events.MEMO_OPENED if to_state == OPENED else events.MEMO_TRANSITIONED
    audit.write(
        audit_record(
            ctx,
            event_type,
            tenant_id=memo.tenant_id,
            object_type="memo",
            object_id=memo.id,
            metadata={"from": observed.state, "to": to_state, "version": memo.current_version},
        )
    )
    return memo


def decide_memo(
    repos: Repositories,
    ctx: RequestContext,
    memo_id: str,
    *,
    decision_type: str,
    reason_tags: list[str],
    condition_text: Optional[str] = None,
    deadline: Optional[date] = None,
    expected_version: Optional[int] = None,
    audit: AuditEmitter,
) -> Decision:
    assert_capability(ctx, Capability.MEMO_DECIDE)
    validate_decision_input(decision_type, reason_tags, condition_text)

    memo = load_memo(repos, ctx, memo_id)
    if not memo.investor_id:
        raise AccessError("Memo is not linked to an investor", 400)
    _check_expected(memo, expected_version, None)

    observed = MemoStamp.of(memo)
    if memo.state == SENT:
        transition_memo(memo, OPENED)
    transition_memo(memo, DECIDED)
    repos.memos.save(memo, observed)

    now = _now()
    superseded = repos.decisions.supersede_active(memo.id, at=now)
    decision = Decision(
        id=str(uuid.uuid4()),
        tenant_id=memo.tenant_id,
        memo_id=memo.id,
        investor_id=memo.investor_id,
        memo_version=memo.current_version,
        decision_type=decision_type,
        condition_text=(condition_text or "").strip() or None,
        deadline=deadline,
        resolved_status=initial_resolved_status(decision_type),
        decided_by=ctx.user_id,
        created_at=now,
    )
    decision.reason_tags = [str(t) for t in reason_tags]
    repos.decisions.add(decision)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.MEMO_DECIDED,
            tenant_id=memo.tenant_id,
            object_type="memo",
            object_id=memo.id,
            metadata={
                "decision_id": decision.id,
                "decision_type": decision_type,
                "version": memo.current_version,
                "superseded": superseded,
            },
        )
    )
    return decision


def generate_memo(
    repos: Repositories,
    ctx: RequestContext,
    *,
    investor_id: Optional[str],
    listing_id: Optional[str],
    underwriting_id: Optional[str],
    generator: Optional[ContentGenerator] = None,
    audit: AuditEmitter,
) -> Memo:
    """
    Draft a memo from an underwriting and its comps.

    Generation is recorded twice: the request (with a hash of its inputs) before
    the generator runs, and the accepted output once the memo is stored.
    """
    assert_capability(ctx, Capability.MEMO_WRITE)
    tenant_id = require_tenant(ctx)
    if not (investor_id and listing_id and underwriting_id):
        raise ValidationError("investor_id, listing_id and underwriting_id are required")

    investor = must_get_investor(repos, ctx, investor_id)
    assert_tenant_match(investor.tenant_id, tenant_id)
    assert_investor_write(investor, ctx)

    listing = must_get_listing(repos, ctx, listing_id)
    assert_tenant_match(listing.tenant_id, tenant_id)

    uw = must_get_underwriting(repos, ctx, underwriting_id)
    assert_tenant_match(uw.tenant_id, tenant_id)
    if uw.listing_id != listing.id:
        raise ValidationError("Underwriting does not belong to this listing")
    if uw.investor_id != investor.id:
        raise ValidationError("Underwriting does not belong to this investor")

    comps = list(repos.comps.list_for_underwriting(tenant_id, uw.id))
    confidence = compute_confidence(comps, uw.inputs)
    warnings = evidence_warnings(comps)

    params = {
        "investor_id": investor.id,
        "listing_id": listing.id,
        "underwriting_id": uw.id,
        "inputs": uw.inputs,
        "comp_ids": sorted(str(c.id) for c in comps),
    }
    input_hash = content_hash(params)
    audit.write(events.ai_generation_requested(ctx, tenant_id=tenant_id, feature="memo", params=params))

    generator = generator or TemplateContentGenerator()
    content = generator.generate(
        inputs=uw.inputs,
        scenarios=uw.scenarios,
        comps=comps,
        warnings=warnings,
        confidence=confidence,
        listing=listing,
    )

    memo = _new_memo(
        ctx,
        tenant_id=tenant_id,
        investor_id=investor.id,
        listing_id=listing.id,
        underwriting_id=uw.id,
        content=content,
    )
    repos.memos.add(memo)
    repos.uow.commit()
    log.info("memo generated", extra={"tenant_id": tenant_id, "memo_id": memo.id, "user_id": ctx.user_id})

    audit.write(
        audit_record(
            ctx,
            events.MEMO_CREATED,
            tenant_id=tenant_id,
            object_type="memo",
            object_id=memo.id,
            metadata={"version": 1, "investor_id": investor.id, "confidence": confidence},
        )
    )
    audit.write(
        audit_record(
            ctx,
            events.AI_OUTPUT_ACCEPTED,
            tenant_id=tenant_id,
            object_type="memo",
            object_id=memo.id,
            metadata={"input_hash": input_hash, "output_hash": content_hash(content), "version": 1},
        )
    )
    return memo
