"""
TravelDiary Backend: FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the repository and services for one application,
       stores them on `app.state`, registers middleware, exception handlers
       and routers.
Who:   uvicorn (`uvicorn travel_diary.main:app`) and the test suite, which
       builds a fresh app per test with its own settings.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware: CORS → Request ID → Access Log → Rate Limit     │
    │                                                              │
    │  Routes:                                                     │
    │   /api/entries[...]   /api/shared/{id}   /api/images  /health│
    │                                                              │
    │  app.state:                                                  │
    │   settings · entry_service → repository · image_service      │
    │   auth_service (None unless Supabase is configured)          │
    │                                                              │
    │  Exception handlers:                                         │
    │   Validation→400  Auth→401  NotFound→404  ImageDecode→422    │
    │   Persistence/ImageEncode→500  AuthUnavailable/Resource→503  │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, optional schema creation.
    Shutdown: close the repository (disposes the SQL engine) and the
              identity provider client.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from travel_diary import __version__
from travel_diary.config import Settings, settings as default_settings
from travel_diary.exceptions import (
    AuthenticationError,
    AuthServiceUnavailableError,
    ImageDecodeError,
    ImageEncodeError,
    NotFoundError,
    PersistenceError,
    ResourceAcquisitionError,
    TravelDiaryError,
    ValidationError,
)
from travel_diary.middleware.logging import RequestLoggingMiddleware
from travel_diary.middleware.rate_limit import RateLimitMiddleware
from travel_diary.middleware.request_id import RequestIDMiddleware, request_id_var
from travel_diary.repositories import build_repository
from travel_diary.routes import entries, health, images, shared
from travel_diary.schemas.entry import field_errors
from travel_diary.services.auth_service import AuthService, SupabaseAuthService
from travel_diary.services.entry_service import EntryService
from travel_diary.services.image_service import ImageService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2024-05-01T12:00:00 [INFO] travel_diary.access: GET /api/entries 200 ...
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Chatty at DEBUG/INFO for every operation
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup and shutdown for one application instance.

    The services themselves are built in create_app(), not here: clients that
    never run the lifespan (httpx ASGITransport in tests) still get a fully
    wired app.
    """
    config: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("TravelDiary Backend %s starting up...", __version__)

    try:
        config.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health and the public share pages still work, and
        # protected routes answer 503 until the configuration is fixed.
        logger.error("Configuration error: %s", str(e))

    repository = app.state.entry_service.repository
    if config.db_auto_create_schema and hasattr(repository, "create_schema"):
        await repository.create_schema()
        logger.info("Database schema ensured")

    logger.info("Storage backend: %s", config.storage_backend)
    logger.info("Authentication: %s", "required" if config.require_auth else "disabled")
    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("TravelDiary Backend shutting down...")
    await repository.close()
    if app.state.auth_service is not None:
        await app.state.auth_service.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    # request.state survives the middleware stack; the ContextVar is reset
    # before the outermost (catch-all) handler runs.
    return getattr(request.state, "request_id", "") or request_id_var.get("")


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    rid = _request_id(request)
    content["request_id"] = rid
    response_headers = dict(headers or {})
    if rid:
        response_headers["X-Request-ID"] = rid
    return JSONResponse(status_code=status_code, content=content, headers=response_headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map domain exceptions to HTTP responses with one error body shape.

    Handler hierarchy:
        ValidationError, RequestValidationError → 400
        AuthenticationError                     → 401 (+ WWW-Authenticate)
        NotFoundError                           → 404
        ImageDecodeError                        → 422
        ImageEncodeError, PersistenceError      → 500
        AuthServiceUnavailableError             → 503
        ResourceAcquisitionError                → 503
        TravelDiaryError (base), Exception      → 500

    Server-side failures never echo internal context to the client; it is
    logged with the request ID instead.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        details = {"errors": exc.errors} if exc.errors else None
        return _error_response(request, 400, "validation_error", exc.message, details)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = field_errors(exc.errors(), skip=("body", "query", "path", "header"))
        logger.warning("[%s] Request validation failed: %d error(s)", _request_id(request), len(errors))
        return _error_response(request, 400, "validation_error", "Invalid request", {"errors": errors})

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        logger.info("[%s] Authentication failed: %s", _request_id(request), exc.message)
        return _error_response(
            request, 401, "authentication_error", exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(request, 404, "not_found", exc.message)

    @app.exception_handler(ImageDecodeError)
    async def handle_image_decode_error(request: Request, exc: ImageDecodeError):
        logger.warning("[%s] Image decode failed: %s", _request_id(request), exc.context)
        return _error_response(request, 422, "image_decode_error", exc.message)

    @app.exception_handler(ImageEncodeError)
    async def handle_image_encode_error(request: Request, exc: ImageEncodeError):
        logger.error("[%s] Image encode failed: %s", _request_id(request), exc.context)
        return _error_response(request, 500, "image_encode_error", exc.message)

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        logger.error("[%s] Persistence error: %s | Context: %s", _request_id(request), exc.message, exc.context)
        return _error_response(
            request, 500, "server_error", "An internal error occurred. Please try again later.",
        )

    @app.exception_handler(AuthServiceUnavailableError)
    async def handle_auth_unavailable(request: Request, exc: AuthServiceUnavailableError):
        logger.error("[%s] Identity provider unavailable: %s", _request_id(request), exc.context)
        return _error_response(
            request, 503, "auth_service_unavailable", exc.message,
            headers={"Retry-After": "30"},
        )

    @app.exception_handler(ResourceAcquisitionError)
    async def handle_resource_acquisition(request: Request, exc: ResourceAcquisitionError):
        logger.warning("[%s] Resource unavailable: %s", _request_id(request), exc.message)
        return _error_response(
            request, 503, "resource_unavailable", exc.message, {"resource": exc.resource},
        )

    @app.exception_handler(TravelDiaryError)
    async def handle_domain_error(request: Request, exc: TravelDiaryError):
        logger.error("[%s] %s: %s | Context: %s", _request_id(request), type(exc).__name__, exc.message, exc.context)
        return _error_response(request, 500, "server_error", exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        # Unknown routes (404) and wrong methods (405) keep the same body shape.
        error = "not_found" if exc.status_code == 404 else "http_error"
        return _error_response(request, exc.status_code, error, str(exc.detail), headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True)
        return _error_response(
            request, 500, "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def build_auth_service(config: Settings) -> Optional[AuthService]:
    """Supabase verifier when both URL and key are configured, otherwise None."""
    if config.supabase_url and config.supabase_service_key:
        return SupabaseAuthService(
            base_url=config.supabase_url,
            api_key=config.supabase_service_key,
            timeout=config.auth_timeout_seconds,
        )
    return None


def create_app(
    settings: Optional[Settings] = None,
    auth_service: Optional[AuthService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings:     Configuration; defaults to the process-wide settings.
        auth_service: Token verifier; built from settings when omitted.

    Every call returns an independent application with its own store, so
    tests can create one per case without sharing entries.
    """
    config = settings or default_settings

    app = FastAPI(
        title="TravelDiary API",
        description=(
            "Travel diary backend: photo entries with captions, device metadata and "
            "optional location, private to their owner unless shared by link."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Application State ─────────────────────────────────────────────────
    app.state.settings = config
    app.state.started_at = time.time()
    app.state.entry_service = EntryService(
        repository=build_repository(config),
        default_caption=config.default_caption,
        share_url_prefix=config.share_url_prefix,
    )
    app.state.image_service = ImageService(
        max_dimension=config.image_max_dimension,
        quality=config.image_quality,
        max_upload_size=config.max_upload_size,
    )
    app.state.auth_service = auth_service if auth_service is not None else build_auth_service(config)

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: CORS → RequestID → Logging → RateLimit → GZip
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.rate_limit_requests,
        window_seconds=config.rate_limit_window,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(entries.router)
    app.include_router(shared.router)
    app.include_router(images.router)
    app.include_router(health.router)

    return app


# uvicorn expects `travel_diary.main:app` to be importable
app = create_app()
