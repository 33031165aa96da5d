# dealdesk/domain/conditions.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from .errors import AccessError, NotFoundError, ValidationError

APPROVED = "approved"
APPROVED_CONDITIONAL = "approved_conditional"
REJECTED = "rejected"
PENDING_DECISION = "pending"

DECISION_TYPES = (APPROVED, APPROVED_CONDITIONAL, REJECTED, PENDING_DECISION)
# what an investor may submit; "pending" is only ever a placeholder
SUBMITTABLE_DECISIONS = (APPROVED, APPROVED_CONDITIONAL, REJECTED)

PENDING = "pending"
MET = "met"
NOT_MET = "not_met"
WITHDRAWN = "withdrawn"

RESOLUTIONS = (MET, NOT_MET, WITHDRAWN)


class DecisionLike(Protocol):
    decision_type: str
    resolved_status: Optional[str]
    resolved_by: Optional[str]
    resolved_at: Optional[datetime]
    resolved_notes: Optional[str]


def initial_resolved_status(decision_type: str) -> Optional[str]:
    return PENDING if decision_type == APPROVED_CONDITIONAL else None


def validate_decision_input(decision_type: str, reason_tags: list[str] | None, condition_text: Optional[str]) -> None:
    if decision_type not in SUBMITTABLE_DECISIONS:
        raise ValidationError("Invalid decision type")
    if not reason_tags:
        raise ValidationError("reason_tags are required")
    if decision_type == APPROVED_CONDITIONAL and not (condition_text or "").strip():
        raise ValidationError("condition_text required for approved_conditional")


def assert_resolvable(decision: Optional[DecisionLike], resolution: str) -> DecisionLike:
    """
    Guards, in order: a decision exists, it is conditional, it is still
    pending, and the resolution is one of met / not_met / withdrawn.
    """
    if decision is None:
        raise NotFoundError("No decision found")
    if decision.decision_type != APPROVED_CONDITIONAL:
        raise AccessError("Decision is not conditional", 409)
    if decision.resolved_status != PENDING:
        raise AccessError("Condition already resolved", 409)
    if resolution not in RESOLUTIONS:
        raise AccessError("Invalid resolution", 400)
    return decision


def resolve_condition(
    decision: Optional[DecisionLike],
    resolution: str,
    actor_id: str,
    notes: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> DecisionLike:
    d = assert_resolvable(decision, resolution)
    d.resolved_status = resolution
    d.resolved_by = actor_id
    d.resolved_at = now or datetime.utcnow()
    d.resolved_notes = notes
    return d
