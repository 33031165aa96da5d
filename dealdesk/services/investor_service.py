# dealdesk/services/investor_service.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from ..domain import audit as events
from ..domain.audit import AuditEmitter, audit_record
from ..domain.errors import AccessError, ValidationError
from ..models import AppUser, Investor
from ..repositories.base import Repositories
from ..security.rbac import (
    AGENT,
    Capability,
    RequestContext,
    assert_capability,
    assert_investor_write,
    require_tenant,
)
from .ownership import must_get_investor


def _now() -> datetime:
    return datetime.utcnow()


def _must_get_agent(repos: Repositories, tenant_id: str, agent_id: str) -> AppUser:
    user = repos.users.get(agent_id)
    if user is None or user.role != AGENT or user.tenant_id != tenant_id or not user.is_active:
        raise ValidationError("Target agent must be an active agent in the same tenant")
    return user


def create_investor(
    repos: Repositories,
    ctx: RequestContext,
    *,
    name: str,
    email: Optional[str] = None,
    assigned_agent_id: Optional[str] = None,
    owner_user_id: Optional[str] = None,
    audit: AuditEmitter,
) -> Investor:
    assert_capability(ctx, Capability.INVESTOR_CREATE)
    tenant_id = require_tenant(ctx)
    if not (name or "").strip():
        raise ValidationError("name is required")

    if ctx.role == AGENT:
        # agents always own what they create
        if assigned_agent_id and assigned_agent_id != ctx.user_id:
            raise AccessError("Agents can only assign investors to themselves", 403)
        assigned_agent_id = ctx.user_id
    elif assigned_agent_id:
        _must_get_agent(repos, tenant_id, assigned_agent_id)

    now = _now()
    investor = Investor(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        name=name.strip(),
        email=email,
        assigned_agent_id=assigned_agent_id,
        owner_user_id=owner_user_id,
        created_at=now,
        updated_at=now,
    )
    repos.investors.add(investor)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.INVESTOR_CREATED,
            tenant_id=tenant_id,
            object_type="investor",
            object_id=investor.id,
            metadata={"assigned_agent_id": assigned_agent_id},
        )
    )
    return investor


def get_investor(repos: Repositories, ctx: RequestContext, investor_id: str) -> Investor:
    assert_capability(ctx, Capability.INVESTOR_READ)
    investor = must_get_investor(repos, ctx, investor_id)
    assert_investor_write(investor, ctx)
    return investor


def reassign_investor(
    repos: Repositories,
    ctx: RequestContext,
    investor_id: str,
    *,
    agent_id: str,
    audit: AuditEmitter,
) -> Investor:
    assert_capability(ctx, Capability.INVESTOR_REASSIGN)
    investor = must_get_investor(repos, ctx, investor_id)
    _must_get_agent(repos, investor.tenant_id, agent_id)

    previous = investor.assigned_agent_id
    investor.assigned_agent_id = agent_id
    investor.updated_at = _now()
    repos.investors.save(investor)
    repos.uow.commit()

    audit.write(
        audit_record(
            ctx,
            events.INVESTOR_ASSIGNED,
            tenant_id=investor.tenant_id,
            object_type="investor",
            object_id=investor.id,
            metadata={"from_agent_id": previous, "to_agent_id": agent_id},
        )
    )
    return investor
