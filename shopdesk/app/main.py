from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from psycopg import errors as pg_errors
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from .routers.invoices import router as invoices_router
from .routers.products import router as products_router
from .routers.alerts import router as alerts_router
from .routers.reports import router as reports_router
from .routers.users import router as users_router
from .config import settings
from .deps import get_current_profile
from .db import get_admin_conn, close_pools
from .logs import json_log
from .money import PaymentValidationError

SERVICE_NAME = "shopdesk-api"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    ok, err = _probe_db()
    if ok:
        json_log("info", "startup.db_connected", env=settings.env, version=settings.api_version)
    else:
        # Start anyway; /health reports degraded until the database answers.
        json_log("warning", "startup.db_probe_failed", env=settings.env, error=err)
    try:
        yield
    finally:
        close_pools()


app = FastAPI(title="Shopdesk API", version=settings.api_version, lifespan=lifespan)
STARTED_AT_UTC = datetime.now(timezone.utc)

# Constraint and cast failures raised by the database, answered as client errors.
DB_ERROR_RESPONSES = {
    pg_errors.InvalidTextRepresentation: (400, "invalid value"),
    pg_errors.ForeignKeyViolation: (400, "invalid reference"),
    pg_errors.CheckViolation: (400, "constraint violation"),
    pg_errors.UniqueViolation: (409, "conflict"),
}


def _is_dev() -> bool:
    return settings.env in {"local", "dev"}


def _request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


def _error_content(detail: str, exc: Exception) -> dict:
    content = {"detail": detail}
    if _is_dev():
        content["error"] = str(exc)
    return content


@app.exception_handler(PaymentValidationError)
def _payment_validation_error(_req: Request, exc: PaymentValidationError):
    # A rejected mutation, not a server fault. Never clamped or retried.
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# Stored procedures signal business-rule failures with RAISE EXCEPTION; surface the message.
@app.exception_handler(pg_errors.RaiseException)
def _procedure_raise(_req: Request, exc: pg_errors.RaiseException):
    message = (exc.diag.message_primary if exc.diag else None) or str(exc)
    return JSONResponse(status_code=400, content={"detail": message})


def _db_error(_req: Request, exc: Exception):
    for err_type, (status_code, detail) in DB_ERROR_RESPONSES.items():
        if isinstance(exc, err_type):
            return JSONResponse(status_code=status_code, content=_error_content(detail, exc))
    return JSONResponse(status_code=500, content=_error_content("database error", exc))


for _err_type in DB_ERROR_RESPONSES:
    app.add_exception_handler(_err_type, _db_error)


@app.exception_handler(RequestValidationError)
def _request_validation_error(_req: Request, exc: RequestValidationError):
    content = {"detail": "validation failed"}
    if _is_dev():
        content["errors"] = exc.errors()
    return JSONResponse(status_code=422, content=content)


@app.exception_handler(Exception)
def _unhandled_exception(req: Request, exc: Exception):
    rid = _request_id(req)
    json_log("error", "http.request.unhandled", request_id=rid, method=req.method, path=req.url.path, error=str(exc))
    content = _error_content("internal error", exc)
    content["request_id"] = rid
    return JSONResponse(status_code=500, content=content)


@app.middleware("http")
async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.perf_counter()
    fields = {
        "request_id": rid,
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else None,
    }

    try:
        response = await call_next(request)
    except Exception as exc:
        json_log("error", "http.request.error", **fields, duration_ms=_elapsed_ms(started), error=str(exc))
        raise

    response.headers["X-Request-Id"] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    # Probes poll often; keep them out of the request log.
    if not fields["path"].startswith("/health"):
        json_log("info", "http.request", **fields, status_code=response.status_code, duration_ms=_elapsed_ms(started))
    return response


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Every business route needs a signed-in, active user; routers add their own role checks.
for _router in (invoices_router, products_router, alerts_router, reports_router, users_router):
    app.include_router(_router, dependencies=[Depends(get_current_profile)])


def _probe_db() -> tuple[bool, str | None]:
    try:
        with get_admin_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
        return True, None
    except Exception as exc:
        return False, str(exc)


@app.get("/health")
def health(req: Request):
    ok, err = _probe_db()
    body = {
        "status": "ok" if ok else "degraded",
        "db": "ok" if ok else "down",
        "service": SERVICE_NAME,
        "version": settings.api_version,
        "request_id": _request_id(req),
    }
    if ok:
        return body
    if _is_dev():
        body["error"] = err
    return JSONResponse(status_code=503, content=body)


@app.get("/health/live")
def health_live(req: Request):
    return {"status": "ok", "service": SERVICE_NAME, "request_id": _request_id(req)}


@app.get("/meta")
def meta():
    return {
        "service": SERVICE_NAME,
        "version": settings.api_version,
        "env": settings.env,
        "currency": settings.currency,
        "started_at": STARTED_AT_UTC.isoformat(),
        "uptime_seconds": int((datetime.now(timezone.utc) - STARTED_AT_UTC).total_seconds()),
    }
