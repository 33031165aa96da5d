# dealdesk/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# -------------------------
# Investors
# -------------------------
class InvestorCreate(BaseModel):
    name: str
    email: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    owner_user_id: Optional[str] = None


class InvestorAssign(BaseModel):
    agent_id: str


class InvestorOut(BaseModel):
    id: str
    tenant_id: str
    name: str
    email: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    owner_user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------------
# Underwriting
# -------------------------
class UnderwritingInputsIn(BaseModel):
    price: Optional[float] = None
    rent: Optional[float] = None
    fees: Optional[float] = None
    vacancy_months: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("vacancy_months", "vacancyMonths", "vacancy"),
    )
    exit: Optional[float] = None

    model_config = ConfigDict(extra="forbid")


class UnderwritingCreate(BaseModel):
    investor_id: Optional[str] = None
    listing_id: Optional[str] = None
    inputs: UnderwritingInputsIn = Field(default_factory=UnderwritingInputsIn)


class UnderwritingUpdate(BaseModel):
    inputs: UnderwritingInputsIn = Field(default_factory=UnderwritingInputsIn)


class UnderwritingOut(BaseModel):
    id: str
    tenant_id: str
    investor_id: str
    listing_id: str
    inputs: dict[str, Any]
    scenarios: dict[str, Any]
    confidence: str
    warnings: list[str] = Field(default_factory=list)
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompCreate(BaseModel):
    description: str
    source: str
    price: Optional[float] = None
    price_per_area: Optional[float] = None
    rent_per_year: Optional[float] = None
    observed_date: Optional[date] = None
    source_detail: Optional[str] = None


class CompOut(CompCreate):
    id: str
    underwriting_id: str
    added_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------------
# Memos
# -------------------------
class MemoCreate(BaseModel):
    content: Any = None
    investor_id: Optional[str] = None
    listing_id: Optional[str] = None
    underwriting_id: Optional[str] = None


class MemoGenerate(BaseModel):
    investor_id: Optional[str] = None
    listing_id: Optional[str] = None
    underwriting_id: Optional[str] = None


class MemoEdit(BaseModel):
    content: Any
    expected_version: Optional[int] = None
    expected_state: Optional[str] = None


class MemoTransition(BaseModel):
    to_state: str
    expected_version: Optional[int] = None
    expected_state: Optional[str] = None


class MemoVersionOut(BaseModel):
    version: int
    content: Any = None
    created_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemoOut(BaseModel):
    id: str
    tenant_id: str
    investor_id: Optional[str] = None
    listing_id: Optional[str] = None
    underwriting_id: Optional[str] = None
    state: str
    current_version: int
    created_by: str
    created_at: datetime
    updated_at: datetime
    versions: list[MemoVersionOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# -------------------------
# Decisions / conditions
# -------------------------
class DecisionCreate(BaseModel):
    decision_type: str
    reason_tags: list[str] = Field(default_factory=list)
    condition_text: Optional[str] = None
    deadline: Optional[date] = None
    expected_version: Optional[int] = None


class ConditionResolve(BaseModel):
    resolution: str
    notes: Optional[str] = None


class DecisionOut(BaseModel):
    id: str
    memo_id: str
    investor_id: str
    memo_version: int
    decision_type: str
    reason_tags: list[str]
    condition_text: Optional[str] = None
    deadline: Optional[date] = None
    resolved_status: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_notes: Optional[str] = None
    decided_by: str
    superseded_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# -------------------------
# Audit
# -------------------------
class AuditEventOut(BaseModel):
    id: int
    tenant_id: Optional[str] = None
    actor_id: Optional[str] = None
    role: Optional[str] = None
    event_type: str
    object_type: Optional[str] = None
    object_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    request_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
