# dealdesk/services/ownership.py
from __future__ import annotations

from typing import Optional

from ..domain.errors import NotFoundError
from ..models import Investor, Listing, Memo, Underwriting
from ..repositories.base import Repositories
from ..security.rbac import RequestContext, assert_tenant_match, assert_tenant_scope


def must_get_investor(repos: Repositories, ctx: RequestContext, investor_id: Optional[str]) -> Investor:
    row = repos.investors.get(investor_id) if investor_id else None
    if row is None:
        raise NotFoundError("Investor not found")
    assert_tenant_scope(row.tenant_id, ctx)
    return row


def must_get_listing(repos: Repositories, ctx: RequestContext, listing_id: Optional[str]) -> Listing:
    row = repos.listings.get(listing_id) if listing_id else None
    if row is None:
        raise NotFoundError("Listing not found")
    assert_tenant_scope(row.tenant_id, ctx)
    return row


def must_get_underwriting(repos: Repositories, ctx: RequestContext, underwriting_id: Optional[str]) -> Underwriting:
    row = repos.underwritings.get(underwriting_id) if underwriting_id else None
    if row is None:
        raise NotFoundError("Underwriting not found")
    assert_tenant_scope(row.tenant_id, ctx)
    return row


def must_get_memo(repos: Repositories, ctx: RequestContext, memo_id: Optional[str]) -> Memo:
    row = repos.memos.get(memo_id) if memo_id else None
    if row is None:
        raise NotFoundError("Memo not found")
    assert_tenant_scope(row.tenant_id, ctx)
    return row


def linked_investor(repos: Repositories, resource_tenant_id: str, investor_id: Optional[str]) -> Optional[Investor]:
    """The investor a resource points at; it must live in the resource's tenant."""
    if not investor_id:
        return None
    investor = repos.investors.get(investor_id)
    if investor is None:
        raise NotFoundError("Investor not found")
    assert_tenant_match(investor.tenant_id, resource_tenant_id)
    return investor
