"""
FastAPI Application Entrypoint.

Sets up logging, CORS, the error envelope handlers, includes all routers,
and initializes the database with demo data on first startup.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventhub.core.config import get_settings
from eventhub.core.database import init_db, SessionLocal
from eventhub.core.exceptions import EventHubError
from eventhub.schemas.common import ErrorResponse
from eventhub.api import (
    health_router,
    memberships_router,
    admin_memberships_router,
    transactions_router,
    events_router,
    users_router,
    reports_router,
)
from eventhub.services.seed_data import seed_database

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# Request-validation locations that are not part of the field name
LOCATION_PREFIXES = ("body", "query", "path", "header")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: init DB and seed on startup."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Initialize database tables
    init_db()
    logger.info("Database tables initialized")

    if settings.SEED_DEMO_DATA:
        db = SessionLocal()
        try:
            seed_database(db)
        finally:
            db.close()

    yield

    logger.info("Shutting down...")


def error_response(status_code: int, message: str, errors=None) -> JSONResponse:
    body = ErrorResponse(message=message, errors=jsonable_encoder(errors) or None)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Membership and transaction backend for the EventHub event platform: "
        "plan purchase, lifecycle management, refunds, event registration "
        "and admin reporting."
    ),
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EventHubError)
async def eventhub_error_handler(request: Request, exc: EventHubError):
    if exc.status_code >= 409:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.errors)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in LOCATION_PREFIXES]
        errors.append({
            "field": ".".join(loc) or "request",
            "message": err.get("msg", "Invalid value"),
            "value": err.get("input"),
        })
    return error_response(400, "Validation errors", errors)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    body = {"success": False, "message": "Server error"}
    if settings.DEBUG:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


# Include all routers under /api/v1
app.include_router(health_router, prefix=settings.API_PREFIX)
app.include_router(memberships_router, prefix=settings.API_PREFIX)
app.include_router(admin_memberships_router, prefix=settings.API_PREFIX)
app.include_router(transactions_router, prefix=settings.API_PREFIX)
app.include_router(events_router, prefix=settings.API_PREFIX)
app.include_router(users_router, prefix=settings.API_PREFIX)
app.include_router(reports_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": f"{settings.API_PREFIX}/health",
    }
