# dealdesk/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .domain.errors import DomainError, ValidationError
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.investors import router as investors_router
from .routers.underwritings import router as underwritings_router
from .routers.memos import router as memos_router
from .routers.conditions import router as conditions_router
from .routers.audit import router as audit_router

API_PREFIX = "/api"

log = logging.getLogger("dealdesk.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


def error_response(exc: Exception) -> JSONResponse:
    """The single place domain errors become HTTP responses."""
    if isinstance(exc, DomainError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})
    return JSONResponse(status_code=500, content={"error": "Internal error", "code": "INTERNAL"})


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("domain fault", exc_info=exc)
    return error_response(exc)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # malformed bodies map to VALIDATION (400)
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg") or "Invalid request"
    return error_response(ValidationError(f"{loc}: {msg}" if loc else msg))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(exc)


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="DealDesk", version="0.1.0")

    # added last runs first: request id wraps the request log line
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(investors_router, prefix=API_PREFIX)
    app.include_router(underwritings_router, prefix=API_PREFIX)
    app.include_router(memos_router, prefix=API_PREFIX)
    app.include_router(conditions_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    return app


app = create_app()
