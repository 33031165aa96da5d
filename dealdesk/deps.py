# dealdesk/deps.py
from __future__ import annotations

from typing import Callable

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from .config import settings
from .db import SessionLocal, get_db
from .domain.audit import AuditEmitter
from .repositories.base import Repositories
from .repositories.sql import build_sql_repositories


def get_audit_session_factory() -> Callable[[], Session]:
    return SessionLocal


def get_repositories(
    db: Session = Depends(get_db),
    audit_session_factory: Callable[[], Session] = Depends(get_audit_session_factory),
) -> Repositories:
    return build_sql_repositories(db, audit_session_factory=audit_session_factory)


def get_audit_emitter(
    background_tasks: BackgroundTasks,
    repos: Repositories = Depends(get_repositories),
) -> AuditEmitter:
    # audit rows are written after the response goes out
    dispatch = background_tasks.add_task if settings.audit_background else None
    return AuditEmitter(repos.audit_sink, dispatch=dispatch)
