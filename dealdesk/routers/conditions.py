# dealdesk/routers/conditions.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_request_context
from ..deps import get_audit_emitter, get_repositories
from ..domain.audit import AuditEmitter
from ..repositories.base import Repositories
from ..schemas import ConditionResolve, DecisionOut
from ..security.rbac import RequestContext
from ..services import condition_service

router = APIRouter(prefix="/memos", tags=["conditions"])


@router.post("/{memo_id}/conditions/resolve", response_model=DecisionOut)
def resolve_condition(
    memo_id: str,
    payload: ConditionResolve,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return condition_service.resolve_condition(
        repos, ctx, memo_id, resolution=payload.resolution, notes=payload.notes, audit=audit
    )
