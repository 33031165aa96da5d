# dealdesk/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# audit_events.request_id is String(64)
MAX_REQUEST_ID_LEN = 64
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]+$")

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def accept_request_id(raw: Optional[str]) -> Optional[str]:
    """Caller-supplied id, if it is short and plain enough to log and audit."""
    rid = (raw or "").strip()
    if not rid or len(rid) > MAX_REQUEST_ID_LEN or not _SAFE_ID.match(rid):
        return None
    return rid


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Per-request correlation id shared by the request log line, every JSON log
    record and every audit event written while the request runs.

    An inbound X-Request-ID is reused when acceptable, otherwise a UUID4 is
    minted. The id is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = accept_request_id(request.headers.get(REQUEST_ID_HEADER)) or str(uuid.uuid4())

        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[REQUEST_ID_HEADER] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
