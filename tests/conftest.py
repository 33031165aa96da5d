# tests/conftest.py
from __future__ import annotations

import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dealdesk.db import init_db
from dealdesk.domain.audit import AuditEmitter
from dealdesk.models import AppUser, Investor, Listing
from dealdesk.repositories.memory import in_memory_repositories
from dealdesk.repositories.sql import build_sql_repositories
from dealdesk.security.rbac import AGENT, INVESTOR, MANAGER, SUPER_ADMIN, RequestContext


@pytest.fixture()
def session_factory(tmp_path):
    """Fresh SQLite database per test; every session gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'dealdesk-test.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def sql_repos(db, session_factory):
    return build_sql_repositories(db, audit_session_factory=session_factory)


@pytest.fixture()
def repos():
    return in_memory_repositories()


@pytest.fixture()
def audit(repos):
    return AuditEmitter(repos.audit_sink)


def _id() -> str:
    return str(uuid.uuid4())


@pytest.fixture()
def world(repos):
    """
    Two tenants in the in-memory store.

    Tenant A: agent (assigned to the investor), a second agent, a manager, an
    investor-portal user with its investor record, and a listing.
    Tenant B: an agent only.
    """
    tenant_a, tenant_b = _id(), _id()

    def user(role: str, tenant_id: str | None) -> AppUser:
        u = AppUser(id=_id(), tenant_id=tenant_id, email=f"{_id()}@t.local", role=role, is_active=True)
        repos.users.add(u)
        return u

    agent = user(AGENT, tenant_a)
    other_agent = user(AGENT, tenant_a)
    manager = user(MANAGER, tenant_a)
    investor_user = user(INVESTOR, tenant_a)
    admin = user(SUPER_ADMIN, None)
    foreign_agent = user(AGENT, tenant_b)

    investor = Investor(
        id=_id(),
        tenant_id=tenant_a,
        name="Investor A",
        assigned_agent_id=agent.id,
        owner_user_id=investor_user.id,
    )
    repos.investors.add(investor)

    listing = Listing(id=_id(), tenant_id=tenant_a, title="Marina 2BR", trust_status="verified")
    repos.listings.add(listing)

    return SimpleNamespace(
        tenant_a=tenant_a,
        tenant_b=tenant_b,
        investor=investor,
        listing=listing,
        agent=RequestContext(user_id=agent.id, role=AGENT, tenant_id=tenant_a),
        other_agent=RequestContext(user_id=other_agent.id, role=AGENT, tenant_id=tenant_a),
        manager=RequestContext(user_id=manager.id, role=MANAGER, tenant_id=tenant_a),
        investor_ctx=RequestContext(
            user_id=investor_user.id, role=INVESTOR, tenant_id=tenant_a, investor_id=investor.id
        ),
        admin=RequestContext(user_id=admin.id, role=SUPER_ADMIN, tenant_id=tenant_a),
        foreign_agent=RequestContext(user_id=foreign_agent.id, role=AGENT, tenant_id=tenant_b),
        other_agent_id=other_agent.id,
    )
