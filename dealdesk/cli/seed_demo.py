# dealdesk/cli/seed_demo.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..models import AppUser, Investor, Listing, Tenant
from ..security.rbac import AGENT, INVESTOR, MANAGER


@dataclass(frozen=True)
class SeedResult:
    tenant_id: str
    tenant_slug: str
    agent_id: str
    manager_id: str
    investor_user_id: str
    investor_id: str
    listing_id: Optional[str]


def _new_id() -> str:
    return str(uuid.uuid4())


def _get_or_create_tenant(db: Session, slug: str, name: str) -> Tenant:
    row = db.scalar(select(Tenant).where(Tenant.slug == slug))
    if row:
        return row
    row = Tenant(id=_new_id(), slug=slug, name=name)
    db.add(row)
    db.commit()
    return row


def _get_or_create_user(db: Session, *, tenant_id: str, email: str, display_name: str, role: str) -> AppUser:
    row = db.scalar(select(AppUser).where(AppUser.email == email))
    if row:
        return row
    row = AppUser(id=_new_id(), tenant_id=tenant_id, email=email, display_name=display_name, role=role)
    db.add(row)
    db.commit()
    return row


def _get_or_create_investor(db: Session, *, tenant_id: str, name: str, agent_id: str, owner_user_id: str) -> Investor:
    row = db.scalar(select(Investor).where(Investor.owner_user_id == owner_user_id))
    if row:
        return row
    row = Investor(
        id=_new_id(),
        tenant_id=tenant_id,
        name=name,
        assigned_agent_id=agent_id,
        owner_user_id=owner_user_id,
    )
    db.add(row)
    db.commit()
    return row


def seed_demo(
    *,
    tenant_slug: str = "demo",
    tenant_name: str = "Demo Brokerage",
    create_sample_listing: bool = True,
    session_factory: Callable[[], Session] = SessionLocal,
) -> SeedResult:
    db = session_factory()
    try:
        tenant = _get_or_create_tenant(db, tenant_slug, tenant_name)
        agent = _get_or_create_user(
            db, tenant_id=tenant.id, email=f"agent@{tenant_slug}.local", display_name="Demo Agent", role=AGENT
        )
        manager = _get_or_create_user(
            db, tenant_id=tenant.id, email=f"manager@{tenant_slug}.local", display_name="Demo Manager", role=MANAGER
        )
        investor_user = _get_or_create_user(
            db, tenant_id=tenant.id, email=f"investor@{tenant_slug}.local", display_name="Demo Investor", role=INVESTOR
        )
        investor = _get_or_create_investor(
            db, tenant_id=tenant.id, name="Demo Investor", agent_id=agent.id, owner_user_id=investor_user.id
        )

        listing_id: Optional[str] = None
        if create_sample_listing:
            listing = db.scalar(select(Listing).where(Listing.tenant_id == tenant.id))
            if not listing:
                listing = Listing(
                    id=_new_id(),
                    tenant_id=tenant.id,
                    title="2BR apartment, Marina",
                    area="Marina",
                    asking_price=1_000_000,
                    trust_status="verified",
                )
                db.add(listing)
                db.commit()
            listing_id = listing.id

        return SeedResult(
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            agent_id=agent.id,
            manager_id=manager.id,
            investor_user_id=investor_user.id,
            investor_id=investor.id,
            listing_id=listing_id,
        )
    finally:
        db.close()
