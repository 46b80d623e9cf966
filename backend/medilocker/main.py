from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medilocker.api import access_requests, auth, blobs, doctors, health, notifications, patients, records
from medilocker.config import settings
from medilocker.database import close_db, init_db
from medilocker.errors import ConflictError, MedilockerError, TransientError
from medilocker.logging import configure_logging, request_id_var, subject_id_var
from medilocker.services.access.sweeper import get_access_sweep_scheduler

configure_logging()
logger = logging.getLogger("medilocker")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting Medilocker API")
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception:
        logger.exception("Failed to initialize database")
        raise

    scheduler = get_access_sweep_scheduler()
    await scheduler.start()

    yield

    logger.info("Shutting down Medilocker API")
    await scheduler.stop()
    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception:
        logger.exception("Error closing database")
    logger.info("Medilocker API shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    # Medilocker API

    Patient-owned, versioned medical records with time-bounded doctor access.

    ## Features

    - **Records** - Every upload is an immutable commit on a record's history
    - **Access Requests** - Doctors request, patients approve, deny or revoke
    - **Notifications** - Pull-based inbox with unread counts
    - **Doctor Activity** - Contribution graphs and derived case statistics
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
    request_id_var.set(request_id)
    subject_id_var.set(None)
    response = await call_next(request)
    response.headers.setdefault("X-Request-Id", request_id)
    return response


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    )
    if not settings.debug:
        response.headers.setdefault(
            "Strict-Transport-Security",
            "max-age=63072000; includeSubDomains; preload",
        )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.include_router(health.router)
for module in (auth, access_requests, records, patients, notifications, doctors, blobs):
    app.include_router(module.router, prefix=settings.api_prefix)


def _error_body(status_code: int, kind: str, message: str, **extra) -> dict:
    return {
        "error": {
            "message": message,
            "status_code": status_code,
            "type": kind,
            "request_id": request_id_var.get(),
            **extra,
        }
    }


@app.exception_handler(MedilockerError)
async def medilocker_exception_handler(_request: Request, exc: MedilockerError):
    extra = {}
    headers = {}
    if isinstance(exc, ConflictError) and exc.current_status:
        extra["current_status"] = exc.current_status
    if isinstance(exc, TransientError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.kind, exc.message, **extra),
        headers=headers or None,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=_error_body(
            422,
            "validation_error",
            "Validation error",
            details=jsonable_errors(exc),
        ),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def unhandled_exception_handler(_request: Request, _exc: Exception):
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content=_error_body(500, "server_error", "Internal server error"),
    )
