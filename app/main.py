"""
HRMS Core - FastAPI Application

Leave requests, leave balance ledger, attendance and payroll over one
relational store.

1. /docs and /openapi.json at root level (no API prefix)
2. Middleware order: CORS → CorrelationId → Logging
3. The Database handle is opened in the lifespan and lives on app.state.db
4. Every error leaves as {"success": false, "errors": [...]}
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.config import settings
from app.core.exceptions import AppException
from app.core.limiter import limiter
from app.core.logging import setup_logging
from app.core.middleware import CorrelationIdMiddleware, LoggingMiddleware
from app.core.schemas import ApiResponse, ErrorInfo
from app.database import Database
from app.routers.api_router import api_router

# ============================================================================
# LOGGING SETUP
# ============================================================================
setup_logging()
logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    401: "AUTH_FAILED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMITED",
    503: "SERVICE_UNAVAILABLE",
}


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Build the application. A caller-supplied database is used as is (already
    open, schema already created); otherwise one is built from settings and
    owned by the lifespan.
    """
    owns_database = database is None

    # ========================================================================
    # LIFESPAN MANAGEMENT
    # ========================================================================
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        - Startup: open the database and create the schema
        - Shutdown: dispose the engine
        """
        logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment})")
        db = database or Database(settings.database_url)
        if owns_database:
            try:
                db.open()
                db.create_all()
                logger.info("✓ Database initialized successfully")
            except Exception as e:
                logger.error(f"✗ Database initialization failed: {e}")
                raise
        app.state.db = db

        yield  # Application runs here

        logger.info("Gracefully shutting down...")
        if owns_database:
            db.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="HRMS Core - leave, attendance and payroll consistency engine",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if database is not None:
        # Available before the lifespan runs (e.g. clients that skip startup)
        app.state.db = database

    # ========================================================================
    # RATE LIMITER
    # ========================================================================
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ========================================================================
    # MIDDLEWARE STACK (last added runs first)
    # ========================================================================
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.request_id_header, "X-Process-Time"],
    )

    _register_exception_handlers(app)

    # ========================================================================
    # ROUTER INCLUSION
    # ========================================================================
    app.include_router(api_router, prefix=settings.api_prefix)
    _register_probes(app)
    return app


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================
def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors (422) with structured format."""
        errors = []
        for error in exc.errors():
            # loc is usually ('body', 'field_name')
            field = error["loc"][-1] if len(error["loc"]) > 0 else "unknown"
            errors.append(ErrorInfo(code="VALIDATION_ERROR", field=str(field), msg=error["msg"]))

        logger.warning(f"Validation Error: {[e.model_dump(exclude_none=True) for e in errors]}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ApiResponse(success=False, errors=errors).to_dict(),
        )

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        """Handle domain-specific application exceptions."""
        logger.warning(f"AppException: {exc.message}", extra={"code": exc.error_code})
        return JSONResponse(
            status_code=exc.status_code,
            content=ApiResponse.fail(exc.message, code=exc.error_code, details=exc.details).to_dict(),
        )

    @app.exception_handler(StarletteHTTPException)
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
        """Handle standard HTTP exceptions."""
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=ApiResponse.fail(message, code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")).to_dict(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Fallback handler for unhandled server errors."""
        logger.exception("Unhandled server error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content=ApiResponse.fail("An unexpected server error occurred.", code="INTERNAL_ERROR").to_dict(),
        )


# ============================================================================
# OPERATIONAL ENDPOINTS (at root level)
# ============================================================================
def _register_probes(app: FastAPI) -> None:
    @app.get("/", tags=["Health"])
    def root():
        """API root endpoint."""
        return {
            "message": f"{settings.app_name} API",
            "version": settings.version,
            "docs": "/docs",
        }

    @app.get("/health", tags=["Health"])
    def health_check():
        """Liveness probe for load balancers and orchestrators."""
        return {
            "status": "up",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.version,
            "environment": settings.environment,
        }

    @app.get("/readiness", tags=["Health"])
    def readiness_check(request: Request):
        """Readiness probe - verifies database connectivity."""
        try:
            request.app.state.db.ping()
            return {
                "status": "ready",
                "components": {"database": "connected"},
            }
        except Exception as e:
            logger.error(f"Readiness check failed: {e}")
            raise HTTPException(status_code=503, detail="Service not ready")

    @app.get("/liveness", tags=["Health"])
    def liveness_check():
        """Alias for health check."""
        return health_check()


app = create_app()
