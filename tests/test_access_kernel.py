# tests/test_access_kernel.py
from __future__ import annotations

from types import SimpleNamespace

import pytest

from dealdesk.auth import issue_token, resolve_context
from dealdesk.config import settings
from dealdesk.domain.errors import AccessError, AuthenticationError
from dealdesk.security.rbac import (
    AGENT,
    CAPABILITIES,
    INVESTOR,
    MANAGER,
    ROLES,
    SUPER_ADMIN,
    Capability,
    RequestContext,
    assert_capability,
    assert_investor_access,
    assert_investor_write,
    assert_memo_access,
    assert_tenant_match,
    assert_tenant_scope,
    assert_transition_allowed,
    capabilities_for,
    require_investor_scope,
)


def _investor(**kw):
    base = dict(id="inv-1", tenant_id="t1", assigned_agent_id="agent-1", owner_user_id="user-inv")
    base.update(kw)
    return SimpleNamespace(**base)


def _memo(**kw):
    base = dict(tenant_id="t1", investor_id="inv-1", state="sent", created_by="agent-1")
    base.update(kw)
    return SimpleNamespace(**base)


# -------------------------
# capability table
# -------------------------
def test_every_role_has_a_capability_row():
    assert set(CAPABILITIES) == set(ROLES)
    assert capabilities_for(SUPER_ADMIN) == frozenset(Capability)


def test_unknown_role_is_rejected():
    with pytest.raises(AccessError):
        capabilities_for("owner")


@pytest.mark.parametrize(
    "role,capability,allowed",
    [
        (INVESTOR, Capability.UNDERWRITING_WRITE, False),
        (INVESTOR, Capability.MEMO_DECIDE, True),
        (AGENT, Capability.UNDERWRITING_WRITE, True),
        (AGENT, Capability.CONDITION_RESOLVE, False),
        (AGENT, Capability.INVESTOR_REASSIGN, False),
        (MANAGER, Capability.UNDERWRITING_READ, True),
        (MANAGER, Capability.UNDERWRITING_WRITE, False),
        (MANAGER, Capability.MEMO_TRANSITION, False),
        (MANAGER, Capability.CONDITION_RESOLVE, True),
        (MANAGER, Capability.INVESTOR_REASSIGN, True),
        (SUPER_ADMIN, Capability.CONDITION_RESOLVE, True),
    ],
)
def test_capability_table(role, capability, allowed):
    ctx = RequestContext(user_id="u", role=role, tenant_id="t1", investor_id="inv-1")
    if allowed:
        assert_capability(ctx, capability)
    else:
        with pytest.raises(AccessError) as ei:
            assert_capability(ctx, capability)
        assert ei.value.message == "Forbidden"
        assert ei.value.status_code == 403


def test_agents_drive_drafts_but_investors_open_and_decide():
    agent = RequestContext(user_id="a", role=AGENT, tenant_id="t1")
    investor = RequestContext(user_id="i", role=INVESTOR, tenant_id="t1", investor_id="inv-1")
    assert_transition_allowed(agent, "sent")
    with pytest.raises(AccessError):
        assert_transition_allowed(agent, "opened")
    assert_transition_allowed(investor, "opened")
    with pytest.raises(AccessError):
        assert_transition_allowed(investor, "ready")


# -------------------------
# tenant isolation
# -------------------------
def test_tenant_match_requires_both_sides():
    assert_tenant_match("t1", "t1")
    for a, b in [("t1", "t2"), (None, "t1"), ("t1", None), ("", "")]:
        with pytest.raises(AccessError) as ei:
            assert_tenant_match(a, b)
        assert ei.value.status_code == 403


@pytest.mark.parametrize("role", [INVESTOR, AGENT, MANAGER])
def test_cross_tenant_resources_are_always_denied(role):
    ctx = RequestContext(user_id="agent-1", role=role, tenant_id="t2", investor_id="inv-1")
    with pytest.raises(AccessError):
        assert_tenant_scope("t1", ctx)
    with pytest.raises(AccessError):
        assert_investor_access(_investor(), ctx)
    with pytest.raises(AccessError):
        assert_memo_access(_memo(), ctx, _investor())


def test_super_admin_crosses_tenants():
    ctx = RequestContext(user_id="root", role=SUPER_ADMIN, tenant_id=None)
    assert_tenant_scope("t1", ctx)
    assert_investor_access(_investor(), ctx)
    assert_memo_access(_memo(state="draft"), ctx)


# -------------------------
# investor scope
# -------------------------
def test_investor_only_acts_as_themselves():
    me = RequestContext(user_id="user-inv", role=INVESTOR, tenant_id="t1", investor_id="inv-1")
    assert_investor_access(_investor(), me)
    with pytest.raises(AccessError) as ei:
        assert_investor_access(_investor(id="inv-2"), me)
    assert ei.value.status_code == 403


def test_investor_without_scope_is_a_400():
    ctx = RequestContext(user_id="user-inv", role=INVESTOR, tenant_id="t1")
    with pytest.raises(AccessError) as ei:
        require_investor_scope(ctx)
    assert ei.value.message == "Missing investor scope"
    assert ei.value.status_code == 400
    with pytest.raises(AccessError):
        assert_investor_access(_investor(), ctx)


def test_non_investor_roles_pass_investor_access_in_tenant():
    for role in (AGENT, MANAGER):
        assert_investor_access(_investor(), RequestContext(user_id="x", role=role, tenant_id="t1"))


def test_agent_write_outside_assignment_is_forbidden():
    mine = RequestContext(user_id="agent-1", role=AGENT, tenant_id="t1")
    assert_investor_write(_investor(), mine)
    with pytest.raises(AccessError) as ei:
        assert_investor_write(_investor(), RequestContext(user_id="agent-2", role=AGENT, tenant_id="t1"))
    assert (ei.value.message, ei.value.status_code) == ("Forbidden", 403)


# -------------------------
# memo scope
# -------------------------
def test_investor_sees_only_shared_memos():
    me = RequestContext(user_id="user-inv", role=INVESTOR, tenant_id="t1", investor_id="inv-1")
    for state in ("sent", "opened", "decided"):
        assert_memo_access(_memo(state=state), me)
    for state in ("draft", "pending_review", "ready"):
        with pytest.raises(AccessError):
            assert_memo_access(_memo(state=state), me)
    with pytest.raises(AccessError):
        assert_memo_access(_memo(investor_id="inv-2"), me)


def test_agent_memo_scope():
    mine = RequestContext(user_id="agent-1", role=AGENT, tenant_id="t1")
    other = RequestContext(user_id="agent-2", role=AGENT, tenant_id="t1")

    assert_memo_access(_memo(state="draft"), mine, _investor())
    with pytest.raises(AccessError):
        assert_memo_access(_memo(state="draft"), other, _investor())

    unassigned = _memo(investor_id=None, created_by="agent-2")
    assert_memo_access(unassigned, other)
    with pytest.raises(AccessError):
        assert_memo_access(unassigned, mine)

    with pytest.raises(AccessError) as ei:
        assert_memo_access(_memo(), mine, None)
    assert ei.value.status_code == 400


def test_manager_reads_any_memo_in_tenant():
    ctx = RequestContext(user_id="m", role=MANAGER, tenant_id="t1")
    assert_memo_access(_memo(state="draft"), ctx)


# -------------------------
# identity resolution
# -------------------------
def test_dev_headers_resolve_context(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "dev")
    ctx = resolve_context(
        {"X-User-Id": "u1", "X-Role": "Agent", "X-Tenant-Id": "t1"},
    )
    assert ctx == RequestContext(user_id="u1", role=AGENT, tenant_id="t1", investor_id=None)


def test_dev_headers_fill_investor_scope_from_lookup(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "dev")
    ctx = resolve_context(
        {"X-User-Id": "u1", "X-Role": "investor", "X-Tenant-Id": "t1"},
        investor_lookup=lambda user_id: "inv-9" if user_id == "u1" else None,
    )
    assert ctx.investor_id == "inv-9"


def test_missing_identity_is_authentication_error(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "dev")
    with pytest.raises(AuthenticationError):
        resolve_context({})
    with pytest.raises(AuthenticationError):
        resolve_context({"X-User-Id": "u1", "X-Role": "owner", "X-Tenant-Id": "t1"})


def test_tenant_required_for_tenant_roles(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "dev")
    with pytest.raises(AccessError) as ei:
        resolve_context({"X-User-Id": "u1", "X-Role": "agent"})
    assert ei.value.status_code == 400
    ctx = resolve_context({"X-User-Id": "root", "X-Role": "super_admin"})
    assert ctx.tenant_id is None


def test_jwt_mode_ignores_dev_headers(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "jwt")
    with pytest.raises(AuthenticationError):
        resolve_context({"X-User-Id": "u1", "X-Role": "agent", "X-Tenant-Id": "t1"})


def test_issued_token_round_trips(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "jwt")
    token = issue_token(user_id="u1", role=INVESTOR, tenant_id="t1", investor_id="inv-1")

    via_header = resolve_context({"Authorization": f"Bearer {token}"})
    via_cookie = resolve_context({}, {settings.jwt_cookie_name: token})

    expected = RequestContext(user_id="u1", role=INVESTOR, tenant_id="t1", investor_id="inv-1")
    assert via_header == expected
    assert via_cookie == expected


def test_tampered_or_expired_token_is_rejected(monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "jwt")
    token = issue_token(user_id="u1", role=AGENT, tenant_id="t1")
    head, payload, sig = token.split(".")
    forged = issue_token(user_id="u1", role=SUPER_ADMIN, tenant_id="t1").split(".")[1]
    with pytest.raises(AuthenticationError):
        resolve_context({"Authorization": f"Bearer {head}.{forged}.{sig}"})

    expired = issue_token(user_id="u1", role=AGENT, tenant_id="t1", ttl_minutes=-5)
    with pytest.raises(AuthenticationError):
        resolve_context({"Authorization": f"Bearer {expired}"})

    with pytest.raises(AuthenticationError):
        resolve_context({"Authorization": "Bearer not-a-token"})
