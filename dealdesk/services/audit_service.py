# dealdesk/services/audit_service.py
from __future__ import annotations

from typing import Optional

from ..models import AuditEvent
from ..repositories.base import Repositories
from ..security.rbac import Capability, RequestContext, assert_capability, require_tenant


def list_audit_events(
    repos: Repositories,
    ctx: RequestContext,
    *,
    object_type: Optional[str] = None,
    object_id: Optional[str] = None,
    limit: int = 200,
) -> list[AuditEvent]:
    assert_capability(ctx, Capability.AUDIT_READ)
    tenant_id = require_tenant(ctx)
    limit = max(1, min(int(limit), 1000))
    return list(repos.audit_reader.list(tenant_id, object_type=object_type, object_id=object_id, limit=limit))
