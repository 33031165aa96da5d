# dealdesk/routers/audit.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..auth import get_request_context
from ..deps import get_repositories
from ..repositories.base import Repositories
from ..schemas import AuditEventOut
from ..security.rbac import RequestContext
from ..services import audit_service

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditEventOut])
def list_audit(
    object_type: str | None = Query(default=None),
    object_id: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    repos: Repositories = Depends(get_repositories),
    ctx: RequestContext = Depends(get_request_context),
):
    return audit_service.list_audit_events(repos, ctx, object_type=object_type, object_id=object_id, limit=limit)
