# dealdesk/auth.py
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .domain.errors import AccessError, AuthenticationError
from .security.rbac import INVESTOR, ROLES, SUPER_ADMIN, RequestContext

InvestorLookup = Callable[[str], Optional[str]]


# -------------------------
# JWT helpers
# -------------------------
def _b64(x: bytes) -> str:
    return base64.urlsafe_b64encode(x).decode().rstrip("=")


def _ub64(s: str) -> bytes:
    s2 = s + "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s2.encode())


def _jwt_sign(payload: dict[str, Any]) -> str:
    # Minimal HS256 JWT
    header = {"alg": "HS256", "typ": "JWT"}
    header_b = _b64(json.dumps(header, separators=(",", ":")).encode())
    payload_b = _b64(json.dumps(payload, separators=(",", ":")).encode())
    msg = f"{header_b}.{payload_b}".encode()
    sig = hmac.new(settings.jwt_secret.encode(), msg, hashlib.sha256).digest()
    return f"{header_b}.{payload_b}.{_b64(sig)}"


def _jwt_verify(token: str) -> dict[str, Any]:
    try:
        header_b, payload_b, sig_b = token.split(".", 2)
        msg = f"{header_b}.{payload_b}".encode()
        sig = _ub64(sig_b)
        payload = json.loads(_ub64(payload_b).decode())
    except ValueError:
        raise AuthenticationError("Invalid token") from None

    expected = hmac.new(settings.jwt_secret.encode(), msg, hashlib.sha256).digest()
    if not hmac.compare_digest(sig, expected):
        raise AuthenticationError("Invalid token signature")

    if not isinstance(payload, dict):
        raise AuthenticationError("Invalid token")

    exp = payload.get("exp")
    if exp is not None and int(exp) < int(datetime.utcnow().timestamp()):
        raise AuthenticationError("Token expired")
    return payload


def issue_token(
    *,
    user_id: str,
    role: str,
    tenant_id: Optional[str] = None,
    investor_id: Optional[str] = None,
    ttl_minutes: Optional[int] = None,
) -> str:
    ttl = int(ttl_minutes if ttl_minutes is not None else settings.jwt_exp_minutes)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "role": str(role),
        "exp": int((datetime.utcnow() + timedelta(minutes=ttl)).timestamp()),
    }
    if tenant_id:
        claims["tid"] = str(tenant_id)
    if investor_id:
        claims["inv"] = str(investor_id)
    return _jwt_sign(claims)


# -------------------------
# Context resolution
# -------------------------
def _bearer(headers: Mapping[str, str]) -> Optional[str]:
    authorization = headers.get("Authorization") or headers.get("authorization")
    if authorization and str(authorization).lower().startswith("bearer "):
        return str(authorization).split(" ", 1)[1].strip()
    return None


def _build_context(
    *,
    user_id: str,
    role: str,
    tenant_id: Optional[str],
    investor_id: Optional[str],
    investor_lookup: Optional[InvestorLookup],
) -> RequestContext:
    if not user_id:
        raise AuthenticationError("Missing user identity")
    if role not in ROLES:
        raise AuthenticationError("Invalid role")
    if role != SUPER_ADMIN and not tenant_id:
        raise AccessError("Tenant context is required", 400)

    # investor-portal users resolve to their own investor record
    if role == INVESTOR and not investor_id and investor_lookup is not None:
        investor_id = investor_lookup(user_id)

    return RequestContext(
        user_id=user_id,
        role=role,
        tenant_id=tenant_id or None,
        investor_id=investor_id or None,
    )


def resolve_context(
    headers: Mapping[str, str],
    cookies: Optional[Mapping[str, str]] = None,
    *,
    investor_lookup: Optional[InvestorLookup] = None,
) -> RequestContext:
    """
    Turns inbound credentials into a RequestContext.

    Modes (in priority order):
      1) JWT cookie OR Authorization: Bearer <token>
      2) dev header spoofing (ONLY if settings.auth_mode == "dev")
    """
    token = (cookies or {}).get(settings.jwt_cookie_name) if settings.jwt_cookie_name else None
    token = token or _bearer(headers)

    if token:
        claims = _jwt_verify(token)
        return _build_context(
            user_id=str(claims.get("sub") or ""),
            role=str(claims.get("role") or ""),
            tenant_id=claims.get("tid"),
            investor_id=claims.get("inv"),
            investor_lookup=investor_lookup,
        )

    if settings.auth_mode == "dev":
        user_id = (headers.get(settings.dev_header_user_id) or "").strip()
        if not user_id:
            raise AuthenticationError(f"Missing {settings.dev_header_user_id} for dev auth")
        return _build_context(
            user_id=user_id,
            role=(headers.get(settings.dev_header_role) or INVESTOR).strip().lower(),
            tenant_id=(headers.get(settings.dev_header_tenant_id) or "").strip() or None,
            investor_id=(headers.get(settings.dev_header_investor_id) or "").strip() or None,
            investor_lookup=investor_lookup,
        )

    raise AuthenticationError("Not authenticated")


def get_request_context(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    from .repositories.sql import SqlInvestorRepository

    investors = SqlInvestorRepository(db)
    return resolve_context(request.headers, request.cookies, investor_lookup=investors.find_id_by_owner)
