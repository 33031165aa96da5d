# dealdesk/security/rbac.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from ..domain.errors import AccessError

# -----------------------------------------------------------------------------
# Access Control Kernel
# -----------------------------------------------------------------------------
# Every service call passes through here before it reads or mutates anything.
# All assertions are side-effect free and raise AccessError on violation.
#
# The role -> capability table below is the ONLY place roles are interpreted.
# Call sites ask "does ctx have capability X", never "is ctx.role == manager".
# -----------------------------------------------------------------------------

INVESTOR = "investor"
AGENT = "agent"
MANAGER = "manager"
SUPER_ADMIN = "super_admin"

ROLES = (INVESTOR, AGENT, MANAGER, SUPER_ADMIN)

# memo states an investor may ever see
INVESTOR_VISIBLE_STATES = frozenset({"sent", "opened", "decided"})


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    role: str
    tenant_id: Optional[str] = None
    investor_id: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN


class InvestorScope(Protocol):
    id: str
    tenant_id: str
    assigned_agent_id: Optional[str]
    owner_user_id: Optional[str]


class MemoScope(Protocol):
    tenant_id: str
    investor_id: Optional[str]
    state: str
    created_by: str


class Capability(str, Enum):
    INVESTOR_READ = "investor:read"
    INVESTOR_CREATE = "investor:create"
    INVESTOR_REASSIGN = "investor:reassign"

    UNDERWRITING_READ = "underwriting:read"
    UNDERWRITING_WRITE = "underwriting:write"
    COMP_READ = "comp:read"
    COMP_WRITE = "comp:write"

    MEMO_READ = "memo:read"
    MEMO_WRITE = "memo:write"  # create, edit content, generate
    MEMO_TRANSITION = "memo:transition"  # draft -> ... -> sent
    MEMO_DECIDE = "memo:decide"  # sent -> opened -> decided (investor side)

    CONDITION_RESOLVE = "condition:resolve"
    AUDIT_READ = "audit:read"


C = Capability

CAPABILITIES: dict[str, frozenset[Capability]] = {
    INVESTOR: frozenset({C.MEMO_READ, C.MEMO_DECIDE}),
    AGENT: frozenset(
        {
            C.INVESTOR_READ,
            C.INVESTOR_CREATE,
            C.UNDERWRITING_READ,
            C.UNDERWRITING_WRITE,
            C.COMP_READ,
            C.COMP_WRITE,
            C.MEMO_READ,
            C.MEMO_WRITE,
            C.MEMO_TRANSITION,
        }
    ),
    MANAGER: frozenset(
        {
            C.INVESTOR_READ,
            C.INVESTOR_REASSIGN,
            C.UNDERWRITING_READ,
            C.COMP_READ,
            C.MEMO_READ,
            C.CONDITION_RESOLVE,
            C.AUDIT_READ,
        }
    ),
    SUPER_ADMIN: frozenset(Capability),
}

# which capability drives a memo INTO a given state
TRANSITION_CAPABILITY: dict[str, Capability] = {
    "draft": C.MEMO_TRANSITION,
    "pending_review": C.MEMO_TRANSITION,
    "ready": C.MEMO_TRANSITION,
    "sent": C.MEMO_TRANSITION,
    "opened": C.MEMO_DECIDE,
    "decided": C.MEMO_DECIDE,
}


def capabilities_for(role: str) -> frozenset[Capability]:
    try:
        return CAPABILITIES[role]
    except KeyError:
        raise AccessError("Unknown role") from None


def has_capability(ctx: RequestContext, capability: Capability) -> bool:
    return capability in capabilities_for(ctx.role)


def assert_capability(ctx: RequestContext, capability: Capability) -> None:
    if not has_capability(ctx, capability):
        raise AccessError("Forbidden", 403)


def assert_transition_allowed(ctx: RequestContext, to_state: str) -> None:
    cap = TRANSITION_CAPABILITY.get(to_state)
    if cap is None:
        raise AccessError(f"Unknown memo state: {to_state}", 400)
    assert_capability(ctx, cap)


# -------------------------
# Tenant isolation
# -------------------------
def require_tenant(ctx: RequestContext) -> str:
    if not ctx.tenant_id:
        if ctx.is_super_admin:
            raise AccessError("Super admin must select a tenant context before acting", 400)
        raise AccessError("Tenant context is required", 400)
    return ctx.tenant_id


def assert_tenant_match(resource_tenant_id: Optional[str], ctx_tenant_id: Optional[str]) -> None:
    if not resource_tenant_id or not ctx_tenant_id or resource_tenant_id != ctx_tenant_id:
        raise AccessError("Cross-tenant access denied", 403)


def assert_tenant_scope(resource_tenant_id: Optional[str], ctx: RequestContext) -> None:
    """Tenant guard for a single resource; super admins act across tenants."""
    if ctx.is_super_admin:
        return
    assert_tenant_match(resource_tenant_id, ctx.tenant_id)


# -------------------------
# Investor scope
# -------------------------
def require_investor_scope(ctx: RequestContext) -> Optional[str]:
    if ctx.role == INVESTOR and not ctx.investor_id:
        raise AccessError("Missing investor scope", 400)
    return ctx.investor_id


def assert_investor_access(investor: InvestorScope, ctx: RequestContext) -> None:
    """
    Passes iff super admin, OR same tenant AND (not an investor-role user OR
    the user IS this investor).
    """
    if ctx.is_super_admin:
        return
    require_investor_scope(ctx)
    if investor.tenant_id != ctx.tenant_id or not ctx.tenant_id:
        raise AccessError("Forbidden", 403)
    if ctx.role == INVESTOR and ctx.investor_id != investor.id:
        raise AccessError("Forbidden", 403)


def assert_investor_write(investor: InvestorScope, ctx: RequestContext) -> None:
    """Write-side guard: agents may only touch investors assigned to them."""
    assert_investor_access(investor, ctx)
    if ctx.role == AGENT and investor.assigned_agent_id != ctx.user_id:
        raise AccessError("Forbidden", 403)


# -------------------------
# Memo scope
# -------------------------
def assert_memo_access(memo: MemoScope, ctx: RequestContext, investor: Optional[InvestorScope] = None) -> None:
    assert_tenant_scope(memo.tenant_id, ctx)
    capabilities_for(ctx.role)

    if ctx.role in (MANAGER, SUPER_ADMIN):
        return

    if ctx.role == INVESTOR:
        investor_id = require_investor_scope(ctx)
        if memo.investor_id is None or memo.investor_id != investor_id:
            raise AccessError("Investors can only access memos linked to their investor record", 403)
        if memo.state not in INVESTOR_VISIBLE_STATES:
            raise AccessError("Memo has not been shared yet", 403)
        return

    # agent
    if memo.investor_id is None:
        if memo.created_by != ctx.user_id:
            raise AccessError("Agents can only access unassigned memos they created", 403)
        return
    if investor is None:
        raise AccessError("Investor context required to validate agent memo access", 400)
    assert_investor_write(investor, ctx)
