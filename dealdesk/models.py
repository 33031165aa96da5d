# dealdesk/models.py
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def _loads(s: Optional[str], default: Any) -> Any:
    if not s:
        return default
    try:
        return json.loads(s)
    except ValueError:
        return default


def _dumps(v: Any) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str, ensure_ascii=False)


# -----------------------------
# Tenancy / identity
# -----------------------------
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    slug: Mapped[str] = mapped_column(String(80), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # NULL only for platform-wide super admins
    tenant_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # investor|agent|manager|super_admin
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Investor(Base):
    __tablename__ = "investors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    assigned_agent_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("app_users.id"), nullable=True, index=True)
    owner_user_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("app_users.id"), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    area: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    asking_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    trust_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")  # verified|unknown|flagged
    trust_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Underwriting / evidence
# -----------------------------
class Underwriting(Base):
    __tablename__ = "underwritings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    investor_id: Mapped[str] = mapped_column(String(36), ForeignKey("investors.id"), nullable=False, index=True)
    listing_id: Mapped[str] = mapped_column(String(36), ForeignKey("listings.id"), nullable=False, index=True)

    inputs_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    scenarios_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    confidence: Mapped[str] = mapped_column(String(10), nullable=False, default="Low")

    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def inputs(self) -> dict[str, Any]:
        return _loads(self.inputs_json, {})

    @inputs.setter
    def inputs(self, value: dict[str, Any]) -> None:
        self.inputs_json = _dumps(value or {})

    @property
    def scenarios(self) -> dict[str, Any]:
        return _loads(self.scenarios_json, {})

    @scenarios.setter
    def scenarios(self, value: dict[str, Any]) -> None:
        self.scenarios_json = _dumps(value or {})


class UnderwritingComp(Base):
    __tablename__ = "underwriting_comps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    underwriting_id: Mapped[str] = mapped_column(String(36), ForeignKey("underwritings.id"), nullable=False, index=True)

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    price_per_area: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rent_per_year: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    source: Mapped[str] = mapped_column(String(120), nullable=False)
    source_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observed_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    added_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Memos / decisions
# -----------------------------
class Memo(Base):
    __tablename__ = "memos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    investor_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("investors.id"), nullable=True, index=True)
    listing_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("listings.id"), nullable=True)
    underwriting_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("underwritings.id"), nullable=True)

    state: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    current_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # optimistic-concurrency counter; bumped on every write of the memo row
    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    versions: Mapped[List["MemoVersion"]] = relationship(
        back_populates="memo",
        cascade="all, delete-orphan",
        order_by="MemoVersion.version",
    )

    __mapper_args__ = {"version_id_col": revision}

    def append_version(self, *, version: int, content: Any, created_by: str, created_at: datetime) -> "MemoVersion":
        row = MemoVersion(version=version, created_by=created_by, created_at=created_at)
        row.content = content
        self.versions.append(row)
        return row


class MemoVersion(Base):
    __tablename__ = "memo_versions"
    __table_args__ = (UniqueConstraint("memo_id", "version", name="uq_memo_versions_memo_version"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    memo_id: Mapped[str] = mapped_column(String(36), ForeignKey("memos.id"), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    content_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    memo: Mapped["Memo"] = relationship(back_populates="versions")

    @property
    def content(self) -> Any:
        return _loads(self.content_json, None)

    @content.setter
    def content(self, value: Any) -> None:
        self.content_json = _dumps(value)


class Decision(Base):
    __tablename__ = "decisions"
    __table_args__ = (Index("ix_decisions_memo_active", "memo_id", "superseded_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    memo_id: Mapped[str] = mapped_column(String(36), ForeignKey("memos.id"), nullable=False, index=True)
    investor_id: Mapped[str] = mapped_column(String(36), ForeignKey("investors.id"), nullable=False)
    memo_version: Mapped[int] = mapped_column(Integer, nullable=False)

    decision_type: Mapped[str] = mapped_column(String(30), nullable=False)  # approved|approved_conditional|rejected|pending
    reason_tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    condition_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    resolved_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # pending|met|not_met|withdrawn
    resolved_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    decided_by: Mapped[str] = mapped_column(String(36), nullable=False)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def reason_tags(self) -> list[str]:
        return list(_loads(self.reason_tags_json, []))

    @reason_tags.setter
    def reason_tags(self, value: list[str]) -> None:
        self.reason_tags_json = _dumps(list(value or [])) or "[]"


# -----------------------------
# Audit (append-only)
# -----------------------------
class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    event_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    object_type: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    object_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def event_metadata(self) -> dict[str, Any]:
        return _loads(self.metadata_json, {})
