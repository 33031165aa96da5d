# dealdesk/routers/investors.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_request_context
from ..deps import get_audit_emitter, get_repositories
from ..domain.audit import AuditEmitter
from ..repositories.base import Repositories
from ..schemas import InvestorAssign, InvestorCreate, InvestorOut
from ..security.rbac import RequestContext
from ..services import investor_service

router = APIRouter(prefix="/investors", tags=["investors"])


@router.post("", response_model=InvestorOut, status_code=201)
def create_investor(
    payload: InvestorCreate,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return investor_service.create_investor(
        repos,
        ctx,
        name=payload.name,
        email=payload.email,
        assigned_agent_id=payload.assigned_agent_id,
        owner_user_id=payload.owner_user_id,
        audit=audit,
    )


@router.get("/{investor_id}", response_model=InvestorOut)
def get_investor(
    investor_id: str,
    repos: Repositories = Depends(get_repositories),
    ctx: RequestContext = Depends(get_request_context),
):
    return investor_service.get_investor(repos, ctx, investor_id)


@router.post("/{investor_id}/assign", response_model=InvestorOut)
def reassign_investor(
    investor_id: str,
    payload: InvestorAssign,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return investor_service.reassign_investor(repos, ctx, investor_id, agent_id=payload.agent_id, audit=audit)
