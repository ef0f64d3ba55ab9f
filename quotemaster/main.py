"""
main.py — QuoteMaster FastAPI application

Wires middleware, structured error handlers and the route modules.

Business Rules:
- Every response carries an 8-char X-Request-ID and the security headers
- Log lines emitted while serving a request are tagged with its request id
- Errors always answer with ErrorResponse JSON; validation errors list
  {field, message} pairs; 409 conflicts are marked retryable
- Unhandled exceptions are logged with traceback and answer 500

Called by: uvicorn (quotemaster.main:app)
Depends on: config, logging_config, startup, routers/*
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from . import __version__
from .config import settings
from .logging_config import setup_logging
from .routers import comparison, dashboard, price_list, quotations
from .schemas.errors import ErrorResponse
from .startup import run_startup_migrations


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    run_startup_migrations()
    logger.info("QuoteMaster {} started", __version__)
    yield


app = FastAPI(title="QuoteMaster", version=__version__, lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    https_only=settings.is_production,
    same_site="lax",
)


# ── Middleware ────────────────────────────────────────────────────────


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# ── Error handlers ────────────────────────────────────────────────────


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    body = ErrorResponse(error=str(detail), status_code=exc.status_code, request_id=_request_id(request))
    if isinstance(detail, dict):
        body.error = detail.get("message") or "Request failed"
        body.detail = detail.get("errors") or None
        body.retryable = bool(detail.get("retryable"))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or "request", "message": err.get("msg", "Invalid value")})
    body = ErrorResponse(
        error="Validation failed", status_code=422, request_id=_request_id(request), detail=errors
    )
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
    body = ErrorResponse(error="Internal server error", status_code=500, request_id=_request_id(request))
    return JSONResponse(status_code=500, content=body.model_dump())


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


app.include_router(comparison.router)
app.include_router(quotations.router)
app.include_router(price_list.router)
app.include_router(dashboard.router)
