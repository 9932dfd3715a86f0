"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fleetauth.api.auth import router as auth_router
from fleetauth.api.middleware import CorrelationIdMiddleware
from fleetauth.api.routes import router
from fleetauth.config import get_settings
from fleetauth.database import close_database, init_database, run_migrations
from fleetauth.exceptions import AuthError
from fleetauth.services.logging_service import configure_logging, get_logger

DEFAULT_JWT_SECRET = "change-me-in-production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Malformed settings (e.g. a bad token lifetime) abort startup here
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("jwt_secret_is_default", note="Set JWT_SECRET in production")

    try:
        await init_database()
        await run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - auth endpoints will return 500",
        )

    logger.info(
        "application_started",
        log_level=settings.log_level,
        access_token_ttl=settings.jwt_expires_in,
        refresh_token_ttl=settings.refresh_token_expires_in,
    )

    yield

    await close_database()
    logger.info("application_shutdown")


app = FastAPI(
    title="Fleet Auth API",
    description="Authentication and session lifecycle for the fleet platform",
    version="0.1.0",
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with a 400 and the first failing field."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    # Only field locations are logged; inputs may contain passwords
    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        fields=[".".join(str(loc) for loc in e.get("loc", [])) for e in errors],
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Validation error",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


@app.exception_handler(AuthError)
async def auth_exception_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render auth errors as {error, detail, correlation_id}."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "auth_request_failed",
        correlation_id=correlation_id,
        error=type(exc).__name__,
        status_code=exc.status_code,
    )

    headers = {"X-Correlation-Id": correlation_id}
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.detail,
            "correlation_id": correlation_id,
        },
        headers=headers,
    )


# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(auth_router)
app.include_router(router)
