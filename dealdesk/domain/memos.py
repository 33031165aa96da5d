# dealdesk/domain/memos.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from .errors import AccessError

# -----------------------------------------------------------------------------
# Memo Lifecycle State Machine
# -----------------------------------------------------------------------------
# draft -> pending_review -> ready -> sent -> opened -> decided
#
# A memo that has been shared (ready and beyond) is never rewritten in place:
# editing it forks a new version and drops it back to draft, so it has to be
# re-approved and re-sent.
# -----------------------------------------------------------------------------

DRAFT = "draft"
PENDING_REVIEW = "pending_review"
READY = "ready"
SENT = "sent"
OPENED = "opened"
DECIDED = "decided"

MEMO_STATES = (DRAFT, PENDING_REVIEW, READY, SENT, OPENED, DECIDED)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    DRAFT: frozenset({PENDING_REVIEW, READY}),
    PENDING_REVIEW: frozenset({READY, DRAFT}),
    READY: frozenset({SENT}),
    SENT: frozenset({OPENED}),
    OPENED: frozenset({DECIDED}),
    DECIDED: frozenset(),
}

# states whose current version may still be edited in place
EDITABLE_IN_PLACE = frozenset({DRAFT, PENDING_REVIEW})


class MemoVersionLike(Protocol):
    version: int
    content: Any
    created_at: datetime
    created_by: str


class MemoLike(Protocol):
    """
    Minimal shape the lifecycle operates on.

    Implemented by the pure `MemoModel` below and by the persistence record
    (`dealdesk.models.Memo`).
    """

    state: str
    current_version: int

    @property
    def versions(self) -> Sequence[MemoVersionLike]: ...

    def append_version(self, *, version: int, content: Any, created_by: str, created_at: datetime) -> MemoVersionLike: ...


@dataclass
class MemoVersion:
    version: int
    content: Any
    created_at: datetime
    created_by: str


@dataclass
class MemoModel:
    id: str
    state: str = DRAFT
    current_version: int = 1
    versions: list[MemoVersion] = field(default_factory=list)

    @classmethod
    def new(cls, memo_id: str, *, content: Any, created_by: str, created_at: Optional[datetime] = None) -> "MemoModel":
        m = cls(id=memo_id)
        m.append_version(version=1, content=content, created_by=created_by, created_at=created_at or datetime.utcnow())
        return m

    def append_version(self, *, version: int, content: Any, created_by: str, created_at: datetime) -> MemoVersion:
        v = MemoVersion(version=version, content=content, created_at=created_at, created_by=created_by)
        self.versions.append(v)
        return v


@dataclass(frozen=True)
class MemoStamp:
    """The (state, current_version) pair a writer observed at read time."""

    state: str
    current_version: int

    @classmethod
    def of(cls, memo: MemoLike) -> "MemoStamp":
        return cls(state=memo.state, current_version=int(memo.current_version))


def can_transition(from_state: str, to_state: str) -> bool:
    return to_state in ALLOWED_TRANSITIONS.get(from_state, frozenset())


def assert_transition(from_state: str, to_state: str) -> None:
    if not can_transition(from_state, to_state):
        raise AccessError(f"Invalid memo transition: {from_state} -> {to_state}", 400)


def transition_memo(memo: MemoLike, to_state: str) -> MemoLike:
    assert_transition(memo.state, to_state)
    memo.state = to_state
    return memo


def get_current_version(memo: MemoLike) -> MemoVersionLike:
    for v in memo.versions:
        if v.version == memo.current_version:
            return v
    # unreachable while versions stay contiguous
    raise LookupError(f"memo has no version {memo.current_version}")


def edit_memo_content(
    memo: MemoLike,
    content: Any,
    actor_id: str,
    *,
    now: Optional[datetime] = None,
) -> MemoVersionLike:
    """
    draft / pending_review: overwrite the current version in place.
    ready / sent / opened / decided: fork version N+1 and reset to draft.

    Returns the version that now holds `content`.
    """
    now = now or datetime.utcnow()

    if memo.state in EDITABLE_IN_PLACE:
        current = get_current_version(memo)
        current.content = content
        current.created_at = now
        current.created_by = actor_id
        return current

    new_version = int(memo.current_version) + 1
    row = memo.append_version(version=new_version, content=content, created_by=actor_id, created_at=now)
    memo.current_version = new_version
    memo.state = DRAFT
    return row
