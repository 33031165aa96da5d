# dealdesk/services/underwriting_service.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Optional

from ..domain import audit as events
from ..domain.audit import AuditEmitter, audit_record
from ..domain.errors import ValidationError
from ..domain.underwriting import (
    VACANCY_KEYS,
    UnderwritingInputs,
    compute_confidence,
    compute_scenarios,
    evidence_warnings,
)
from ..models import Underwriting, UnderwritingComp
from ..repositories.base import Repositories
from ..security.rbac import (
    AGENT,
    Capability,
    RequestContext,
    assert_capability,
    assert_investor_write,
    assert_tenant_match,
    require_tenant,
)
from .ownership import linked_investor, must_get_investor, must_get_listing, must_get_underwriting


def _now() -> datetime:
    return datetime.utcnow()


def _load(repos: Repositories, ctx: RequestContext, underwriting_id: str) -> Underwriting:
    uw = must_get_underwriting(repos, ctx, underwriting_id)
    investor = linked_investor(repos, uw.tenant_id, uw.investor_id)
    # agents only ever see underwritings of investors assigned to them
    if investor is not None:
        assert_investor_write(investor, ctx)
    return uw


def recompute(repos: Repositories, uw: Underwriting) -> list[str]:
    """Refresh derived scenarios + confidence from inputs and stored comps."""
    comps = list(repos.comps.list_for_underwriting(uw.tenant_id, uw.id))
    uw.scenarios = compute_scenarios(uw.inputs).to_dict()
    uw.confidence = compute_confidence(comps, uw.inputs)
    uw.updated_at = _now()
    return evidence_warnings(comps)


def create_underwriting(
    repos: Repositories,
    ctx: RequestContext,
    *,
    investor_id: Optional[str],
    listing_id: Optional[str],
    inputs: dict[str, Any],
    audit: AuditEmitter,
) -> Underwriting:
    assert_capability(ctx, Capability.UNDERWRITING_WRITE)
    tenant_id = require_tenant(ctx)
    if not listing_id:
        raise ValidationError("listing_id is required")
    if not investor_id:
        raise ValidationError("investor_id is required")

    listing = must_get_listing(repos, ctx, listing_id)
    assert_tenant_match(listing.tenant_id, tenant_id)
    investor = must_get_investor(repos, ctx, investor_id)
    assert_tenant_match(investor.tenant_id, tenant_id)
    assert_investor_write(investor, ctx)

    now = _now()
    uw = Underwriting(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        investor_id=investor.id,
        listing_id=listing.id,
        created_by=ctx.user_id,
        created_at=now,
        updated_at=now,
    )
    UnderwritingInputs.from_mapping(inputs)
    uw.inputs = dict(inputs or {})
    uw.scenarios = compute_scenarios(uw.inputs).to_dict()
    uw.confidence = compute_confidence([], uw.inputs)

    repos.underwritings.add(uw)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.UNDERWRITING_CREATED,
            tenant_id=tenant_id,
            object_type="underwriting",
            object_id=uw.id,
            metadata={"listing_id": listing.id, "investor_id": investor.id, "confidence": uw.confidence},
        )
    )
    return uw


def update_underwriting(
    repos: Repositories,
    ctx: RequestContext,
    underwriting_id: str,
    *,
    inputs: dict[str, Any],
    audit: AuditEmitter,
) -> Underwriting:
    assert_capability(ctx, Capability.UNDERWRITING_WRITE)
    uw = _load(repos, ctx, underwriting_id)

    merged = dict(uw.inputs)
    if any(k in (inputs or {}) for k in VACANCY_KEYS):
        for k in VACANCY_KEYS:
            merged.pop(k, None)
    merged.update(inputs or {})
    UnderwritingInputs.from_mapping(merged)
    uw.inputs = merged
    recompute(repos, uw)

    repos.underwritings.save(uw)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.UNDERWRITING_UPDATED,
            tenant_id=uw.tenant_id,
            object_type="underwriting",
            object_id=uw.id,
            metadata={"fields": sorted((inputs or {}).keys()), "confidence": uw.confidence},
        )
    )
    return uw


def add_comp(
    repos: Repositories,
    ctx: RequestContext,
    underwriting_id: str,
    *,
    source: str,
    description: str,
    price: Optional[float] = None,
    price_per_area: Optional[float] = None,
    rent_per_year: Optional[float] = None,
    observed_date: Optional[date] = None,
    source_detail: Optional[str] = None,
    audit: AuditEmitter,
) -> UnderwritingComp:
    assert_capability(ctx, Capability.COMP_WRITE)
    if not (source or "").strip():
        raise ValidationError("source is required")
    if not (description or "").strip():
        raise ValidationError("description is required")

    uw = _load(repos, ctx, underwriting_id)

    comp = UnderwritingComp(
        id=str(uuid.uuid4()),
        tenant_id=uw.tenant_id,
        underwriting_id=uw.id,
        description=description.strip(),
        price=price,
        price_per_area=price_per_area,
        rent_per_year=rent_per_year,
        source=source.strip(),
        source_detail=source_detail,
        observed_date=observed_date,
        added_by=ctx.user_id,
        created_at=_now(),
    )
    repos.comps.add(comp)

    recompute(repos, uw)
    repos.underwritings.save(uw)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.UNDERWRITING_COMP_ADDED,
            tenant_id=uw.tenant_id,
            object_type="underwriting",
            object_id=uw.id,
            metadata={"comp_id": comp.id, "source": comp.source, "confidence": uw.confidence},
        )
    )
    return comp


def get_underwriting(repos: Repositories, ctx: RequestContext, underwriting_id: str) -> Underwriting:
    assert_capability(ctx, Capability.UNDERWRITING_READ)
    return _load(repos, ctx, underwriting_id)


def underwriting_warnings(repos: Repositories, uw: Underwriting) -> list[str]:
    return evidence_warnings(repos.comps.list_for_underwriting(uw.tenant_id, uw.id))


def list_underwritings(
    repos: Repositories, ctx: RequestContext, *, investor_id: Optional[str] = None
) -> list[Underwriting]:
    assert_capability(ctx, Capability.UNDERWRITING_READ)
    tenant_id = require_tenant(ctx)

    if ctx.role == AGENT:
        scope = [i.id for i in repos.investors.list_by_agent(tenant_id, ctx.user_id)]
        if investor_id:
            scope = [i for i in scope if i == investor_id]
        return list(repos.underwritings.list_for_tenant(tenant_id, investor_ids=scope))

    ids = [investor_id] if investor_id else None
    return list(repos.underwritings.list_for_tenant(tenant_id, investor_ids=ids))


def list_comps(repos: Repositories, ctx: RequestContext, underwriting_id: str) -> list[UnderwritingComp]:
    assert_capability(ctx, Capability.COMP_READ)
    uw = _load(repos, ctx, underwriting_id)
    return list(repos.comps.list_for_underwriting(uw.tenant_id, uw.id))
