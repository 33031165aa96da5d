# dealdesk/routers/underwritings.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..auth import get_request_context
from ..deps import get_audit_emitter, get_repositories
from ..domain.audit import AuditEmitter
from ..models import Underwriting
from ..repositories.base import Repositories
from ..schemas import CompCreate, CompOut, UnderwritingCreate, UnderwritingOut, UnderwritingUpdate
from ..security.rbac import RequestContext
from ..services import underwriting_service

router = APIRouter(prefix="/underwritings", tags=["underwritings"])


def _out(repos: Repositories, uw: Underwriting) -> UnderwritingOut:
    out = UnderwritingOut.model_validate(uw)
    return out.model_copy(update={"warnings": underwriting_service.underwriting_warnings(repos, uw)})


@router.get("", response_model=list[UnderwritingOut])
def list_underwritings(
    investor_id: str | None = Query(default=None),
    repos: Repositories = Depends(get_repositories),
    ctx: RequestContext = Depends(get_request_context),
):
    rows = underwriting_service.list_underwritings(repos, ctx, investor_id=investor_id)
    return [_out(repos, uw) for uw in rows]


@router.post("", response_model=UnderwritingOut, status_code=201)
def create_underwriting(
    payload: UnderwritingCreate,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    uw = underwriting_service.create_underwriting(
        repos,
        ctx,
        investor_id=payload.investor_id,
        listing_id=payload.listing_id,
        inputs=payload.inputs.model_dump(exclude_none=True),
        audit=audit,
    )
    return _out(repos, uw)


@router.get("/{underwriting_id}", response_model=UnderwritingOut)
def get_underwriting(
    underwriting_id: str,
    repos: Repositories = Depends(get_repositories),
    ctx: RequestContext = Depends(get_request_context),
):
    return _out(repos, underwriting_service.get_underwriting(repos, ctx, underwriting_id))


@router.patch("/{underwriting_id}", response_model=UnderwritingOut)
def update_underwriting(
    underwriting_id: str,
    payload: UnderwritingUpdate,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    uw = underwriting_service.update_underwriting(
        repos, ctx, underwriting_id, inputs=payload.inputs.model_dump(exclude_unset=True), audit=audit
    )
    return _out(repos, uw)


@router.get("/{underwriting_id}/comps", response_model=list[CompOut])
def list_comps(
    underwriting_id: str,
    repos: Repositories = Depends(get_repositories),
    ctx: RequestContext = Depends(get_request_context),
):
    return underwriting_service.list_comps(repos, ctx, underwriting_id)


@router.post("/{underwriting_id}/comps", response_model=CompOut, status_code=201)
def add_comp(
    underwriting_id: str,
    payload: CompCreate,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return underwriting_service.add_comp(
        repos,
        ctx,
        underwriting_id,
        source=payload.source,
        description=payload.description,
        price=payload.price,
        price_per_area=payload.price_per_area,
        rent_per_year=payload.rent_per_year,
        observed_date=payload.observed_date,
        source_detail=payload.source_detail,
        audit=audit,
    )
