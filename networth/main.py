"""
FastAPI application entry point.

Configures the application with routes, middleware, and settings.
"""
import os
import traceback

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from networth import __version__
from networth.api.routes import review, snapshots, taxonomy, upload
from networth.config import get_settings
from networth.database import init_db
from networth.exceptions import NetworthError
from networth.middleware.logging import (
    CORRELATION_HEADER,
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    redact_sensitive_data,
    redact_sensitive_processor,
)

sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("APP_VERSION", __version__),
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=None, event_level="ERROR"),
        ],
        send_default_pii=False,
        before_send=lambda event, hint: redact_sensitive_data(event),
    )

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        add_correlation_id_processor,
        redact_sensitive_processor,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

settings = get_settings()

app = FastAPI(
    title="Net Worth Tracker API",
    description="""
## Statement ingestion for net-worth snapshots

Upload brokerage, bank and depository statements (PDF, CSV, XLSX), review the
holdings read from them, and commit them to dated net-worth snapshots.

### Flow

| Step | Endpoint |
|------|----------|
| Parse | `POST /api/v1/assets/parse` |
| Review | `POST /api/v1/assets/review`, `PATCH /api/v1/assets/review/{id}` |
| Commit | `POST /api/v1/assets/review/{id}/finalize` |

### Identity

Every asset endpoint requires an `X-User-ID` header carrying the caller's UUID.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Upload", "description": "Statement parsing"},
        {"name": "Review", "description": "Staged assets and finalize"},
        {"name": "Snapshots", "description": "Committed net-worth snapshots"},
        {"name": "Taxonomy", "description": "Asset classes and subclasses"},
        {"name": "Health", "description": "Health checks"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_HEADER],
)

# Order matters: correlation ID first
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(upload.router, prefix="/api/v1", tags=["Upload"])
app.include_router(review.router, prefix="/api/v1", tags=["Review"])
app.include_router(snapshots.router, prefix="/api/v1", tags=["Snapshots"])
app.include_router(taxonomy.router, prefix="/api/v1", tags=["Taxonomy"])


@app.exception_handler(NetworthError)
async def networth_exception_handler(request: Request, exc: NetworthError):
    """Handle all networth exceptions."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "networth_error",
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with consistent format."""
    sentry_sdk.capture_exception(exc)

    logger.error(
        "unhandled_error",
        error_type=type(exc).__name__,
        message=str(exc),
        path=str(request.url.path),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "error_code": "NW-999",
            "message": "An unexpected error occurred. Please try again.",
            "details": {"error_type": type(exc).__name__} if settings.debug else {},
        },
    )


@app.on_event("startup")
async def startup_event() -> None:
    """Initialize application on startup."""
    logger.info("Starting Net Worth Tracker API", debug=settings.debug)

    if sentry_dsn:
        logger.info("Sentry error tracking enabled", environment=os.getenv("ENVIRONMENT", "development"))
    else:
        logger.warning("Sentry error tracking not configured (SENTRY_DSN not set)")

    init_db()

    logger.info("Net Worth Tracker API started")


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
