# tests/test_memo_service_memory.py
from __future__ import annotations

import pytest

from dealdesk.domain.errors import AccessError, ConflictError, NotFoundError, ValidationError
from dealdesk.domain.memos import MemoStamp, edit_memo_content, transition_memo
from dealdesk.services import memo_service, underwriting_service


def _memo(repos, world, audit, content=None):
    return memo_service.create_memo(
        repos,
        world.agent,
        content=content or {"summary": "v1"},
        investor_id=world.investor.id,
        listing_id=world.listing.id,
        audit=audit,
    )


def _send(repos, world, audit, memo_id):
    for nxt in ("ready", "sent"):
        memo_service.transition(repos, world.agent, memo_id, nxt, audit=audit)


def _event_types(repos):
    return [r.event_type for r in repos.audit_sink.records]


def test_create_and_read_back(repos, world, audit):
    memo = _memo(repos, world, audit)
    got = memo_service.get_memo(repos, world.agent, memo.id, audit=audit)
    assert got.state == "draft"
    assert got.current_version == 1
    assert got.versions[0].content == {"summary": "v1"}
    assert _event_types(repos) == ["memo.created"]


def test_manager_cannot_create_or_transition(repos, world, audit):
    with pytest.raises(AccessError) as ei:
        memo_service.create_memo(repos, world.manager, content={}, audit=audit)
    assert ei.value.status_code == 403

    memo = _memo(repos, world, audit)
    with pytest.raises(AccessError):
        memo_service.transition(repos, world.manager, memo.id, "ready", audit=audit)


def test_unassigned_agent_cannot_touch_investor_memo(repos, world, audit):
    memo = _memo(repos, world, audit)
    with pytest.raises(AccessError):
        memo_service.get_memo(repos, world.other_agent, memo.id, audit=audit)
    with pytest.raises(AccessError):
        memo_service.create_memo(repos, world.other_agent, content={}, investor_id=world.investor.id, audit=audit)


def test_other_tenant_is_denied(repos, world, audit):
    memo = _memo(repos, world, audit)
    with pytest.raises(AccessError) as ei:
        memo_service.get_memo(repos, world.foreign_agent, memo.id, audit=audit)
    assert ei.value.status_code == 403


def test_unknown_memo_is_not_found(repos, world, audit):
    with pytest.raises(NotFoundError):
        memo_service.get_memo(repos, world.agent, "missing", audit=audit)


def test_investor_opening_a_sent_memo_marks_it_opened(repos, world, audit):
    memo = _memo(repos, world, audit)

    with pytest.raises(AccessError):
        memo_service.get_memo(repos, world.investor_ctx, memo.id, audit=audit)

    _send(repos, world, audit, memo.id)
    seen = memo_service.get_memo(repos, world.investor_ctx, memo.id, audit=audit)
    assert seen.state == "opened"
    assert repos.memos.get(memo.id).state == "opened"
    assert _event_types(repos)[-1] == "memo.opened"

    # the agent reading it does not change anything
    assert memo_service.get_memo(repos, world.agent, memo.id, audit=audit).state == "opened"


def test_edit_after_send_forks_version(repos, world, audit):
    memo = _memo(repos, world, audit)
    memo_service.edit_content(repos, world.agent, memo.id, {"summary": "v1b"}, audit=audit)
    assert repos.memos.get(memo.id).current_version == 1

    _send(repos, world, audit, memo.id)
    edited = memo_service.edit_content(repos, world.agent, memo.id, {"summary": "v2"}, audit=audit)

    assert edited.state == "draft"
    assert edited.current_version == 2
    stored = repos.memos.get(memo.id)
    assert [v.content for v in stored.versions] == [{"summary": "v1b"}, {"summary": "v2"}]
    last = repos.audit_sink.records[-1]
    assert last.event_type == "memo.updated"
    assert last.metadata["forked"] is True


def test_stale_expected_version_is_a_conflict(repos, world, audit):
    memo = _memo(repos, world, audit)
    _send(repos, world, audit, memo.id)
    memo_service.edit_content(repos, world.agent, memo.id, {"v": 2}, audit=audit)

    with pytest.raises(ConflictError):
        memo_service.edit_content(repos, world.agent, memo.id, {"v": "late"}, expected_version=1, audit=audit)
    with pytest.raises(ConflictError):
        memo_service.transition(repos, world.agent, memo.id, "ready", expected_state="sent", audit=audit)


def test_concurrent_writers_on_the_same_view_conflict(repos, world, audit):
    memo = _memo(repos, world, audit)

    first = repos.memos.get(memo.id)
    second = repos.memos.get(memo.id)

    seen_first = MemoStamp.of(first)
    edit_memo_content(first, {"by": "first"}, world.agent.user_id)
    repos.memos.save(first, seen_first)

    seen_second = MemoStamp.of(second)
    transition_memo(second, "ready")
    with pytest.raises(ConflictError):
        repos.memos.save(second, seen_second)

    stored = repos.memos.get(memo.id)
    assert stored.state == "draft"
    assert stored.versions[0].content == {"by": "first"}


def test_transition_refuses_decided(repos, world, audit):
    memo = _memo(repos, world, audit)
    with pytest.raises(AccessError) as ei:
        memo_service.transition(repos, world.admin, memo.id, "decided", audit=audit)
    assert ei.value.status_code == 400


def test_decide_records_decision_and_supersedes(repos, world, audit):
    memo = _memo(repos, world, audit)
    _send(repos, world, audit, memo.id)

    first = memo_service.decide_memo(
        repos, world.investor_ctx, memo.id, decision_type="rejected", reason_tags=["price"], audit=audit
    )
    assert repos.memos.get(memo.id).state == "decided"
    assert first.resolved_status is None
    assert first.memo_version == 1

    with pytest.raises(AccessError):
        memo_service.decide_memo(
            repos, world.investor_ctx, memo.id, decision_type="approved", reason_tags=["x"], audit=audit
        )

    # a changed mind is a new version, sent again
    memo_service.edit_content(repos, world.agent, memo.id, {"summary": "v2"}, audit=audit)
    _send(repos, world, audit, memo.id)
    second = memo_service.decide_memo(
        repos,
        world.investor_ctx,
        memo.id,
        decision_type="approved_conditional",
        reason_tags=["location"],
        condition_text="Snagging report clean",
        audit=audit,
    )
    assert second.memo_version == 2
    assert second.resolved_status == "pending"

    active = repos.decisions.active_for_memo(memo.id)
    assert active.id == second.id
    assert repos.decisions.store.rows[first.id].superseded_at is not None


def test_decision_input_validation(repos, world, audit):
    memo = _memo(repos, world, audit)
    _send(repos, world, audit, memo.id)
    with pytest.raises(ValidationError):
        memo_service.decide_memo(repos, world.investor_ctx, memo.id, decision_type="approved", reason_tags=[], audit=audit)
    with pytest.raises(ValidationError):
        memo_service.decide_memo(
            repos, world.investor_ctx, memo.id, decision_type="approved_conditional", reason_tags=["x"], audit=audit
        )
    with pytest.raises(ValidationError):
        memo_service.decide_memo(repos, world.investor_ctx, memo.id, decision_type="pending", reason_tags=["x"], audit=audit)


def test_agents_cannot_decide(repos, world, audit):
    memo = _memo(repos, world, audit)
    _send(repos, world, audit, memo.id)
    with pytest.raises(AccessError):
        memo_service.decide_memo(repos, world.agent, memo.id, decision_type="approved", reason_tags=["x"], audit=audit)


def test_list_memos_by_role(repos, world, audit):
    shared = _memo(repos, world, audit, {"n": 1})
    _memo(repos, world, audit, {"n": 2})
    _send(repos, world, audit, shared.id)
    loose = memo_service.create_memo(repos, world.other_agent, content={"n": 3}, audit=audit)

    assert {m.id for m in memo_service.list_memos(repos, world.investor_ctx)} == {shared.id}
    assert len(memo_service.list_memos(repos, world.agent)) == 2
    assert [m.id for m in memo_service.list_memos(repos, world.other_agent)] == [loose.id]
    assert len(memo_service.list_memos(repos, world.manager)) == 3
    assert memo_service.list_memos(repos, world.foreign_agent) == []


def test_generate_memo_from_underwriting(repos, world, audit):
    uw = underwriting_service.create_underwriting(
        repos,
        world.agent,
        investor_id=world.investor.id,
        listing_id=world.listing.id,
        inputs={"price": 1_000_000, "rent": 80_000, "fees": 5_000, "vacancy": 1},
        audit=audit,
    )

    memo = memo_service.generate_memo(
        repos,
        world.agent,
        investor_id=world.investor.id,
        listing_id=world.listing.id,
        underwriting_id=uw.id,
        audit=audit,
    )

    content = memo.versions[0].content
    assert content["confidence"]["level"] == "Low"
    assert "Fewer than 2 comps" in content["risks"]
    assert content["trust"]["status"] == "verified"

    types = _event_types(repos)
    assert types[-3:] == ["ai.generation.requested", "memo.created", "ai.output.accepted"]
    requested, accepted = repos.audit_sink.records[-3], repos.audit_sink.records[-1]
    assert requested.metadata["input_hash"] == accepted.metadata["input_hash"]


def test_generate_memo_requires_all_links(repos, world, audit):
    with pytest.raises(ValidationError):
        memo_service.generate_memo(
            repos, world.agent, investor_id=world.investor.id, listing_id=None, underwriting_id=None, audit=audit
        )


def test_generator_is_pluggable(repos, world, audit):
    uw = underwriting_service.create_underwriting(
        repos, world.agent, investor_id=world.investor.id, listing_id=world.listing.id, inputs={"rent": 1}, audit=audit
    )

    class Canned:
        def generate(self, **kwargs):
            return {"text": "canned", "confidence": kwargs["confidence"]}

    memo = memo_service.generate_memo(
        repos,
        world.agent,
        investor_id=world.investor.id,
        listing_id=world.listing.id,
        underwriting_id=uw.id,
        generator=Canned(),
        audit=audit,
    )
    assert memo.versions[0].content == {"text": "canned", "confidence": "Low"}
