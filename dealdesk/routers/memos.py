# dealdesk/routers/memos.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ..auth import get_request_context
from ..deps import get_audit_emitter, get_repositories
from ..domain.audit import AuditEmitter
from ..repositories.base import Repositories
from ..schemas import DecisionCreate, DecisionOut, MemoCreate, MemoEdit, MemoGenerate, MemoOut, MemoTransition
from ..security.rbac import RequestContext
from ..services import condition_service, memo_service

router = APIRouter(prefix="/memos", tags=["memos"])


@router.get("", response_model=list[MemoOut])
def list_memos(
    repos: Repositories = Depends(get_repositories),
    ctx: RequestContext = Depends(get_request_context),
):
    return memo_service.list_memos(repos, ctx)


@router.post("", response_model=MemoOut, status_code=201)
def create_memo(
    payload: MemoCreate,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return memo_service.create_memo(
        repos,
        ctx,
        content=payload.content,
        investor_id=payload.investor_id,
        listing_id=payload.listing_id,
        underwriting_id=payload.underwriting_id,
        audit=audit,
    )


@router.post("/generate", response_model=MemoOut, status_code=201)
def generate_memo(
    payload: MemoGenerate,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return memo_service.generate_memo(
        repos,
        ctx,
        investor_id=payload.investor_id,
        listing_id=payload.listing_id,
        underwriting_id=payload.underwriting_id,
        audit=audit,
    )


@router.get("/{memo_id}", response_model=MemoOut)
def get_memo(
    memo_id: str,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return memo_service.get_memo(repos, ctx, memo_id, audit=audit)


@router.patch("/{memo_id}", response_model=MemoOut)
def edit_memo(
    memo_id: str,
    payload: MemoEdit,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return memo_service.edit_content(
        repos,
        ctx,
        memo_id,
        payload.content,
        expected_version=payload.expected_version,
        expected_state=payload.expected_state,
        audit=audit,
    )


@router.post("/{memo_id}/transition", response_model=MemoOut)
def transition_memo(
    memo_id: str,
    payload: MemoTransition,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return memo_service.transition(
        repos,
        ctx,
        memo_id,
        payload.to_state,
        expected_version=payload.expected_version,
        expected_state=payload.expected_state,
        audit=audit,
    )


@router.post("/{memo_id}/decide", response_model=DecisionOut, status_code=201)
def decide_memo(
    memo_id: str,
    payload: DecisionCreate,
    repos: Repositories = Depends(get_repositories),
    audit: AuditEmitter = Depends(get_audit_emitter),
    ctx: RequestContext = Depends(get_request_context),
):
    return memo_service.decide_memo(
        repos,
        ctx,
        memo_id,
        decision_type=payload.decision_type,
        reason_tags=payload.reason_tags,
        condition_text=payload.condition_text,
        deadline=payload.deadline,
        expected_version=payload.expected_version,
        audit=audit,
    )


@router.get("/{memo_id}/decision", response_model=Optional[DecisionOut])
def get_decision(
    memo_id: str,
    repos: Repositories = Depends(get_repositories),
    ctx: RequestContext = Depends(get_request_context),
):
    return condition_service.active_decision(repos, ctx, memo_id)
