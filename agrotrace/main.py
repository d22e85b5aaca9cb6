# agrotrace/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agrotrace.api.dependencies import (
    close_redis_client,
    get_audit_dispatcher,
    get_change_interceptor,
)
from agrotrace.api.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    SecurityContextMiddleware,
    TenantContextMiddleware,
)
from agrotrace.api.routers import audit, health
from agrotrace.audit.exceptions import AuditError, AuditStorageError
from agrotrace.config.logging import configure_logging
from agrotrace.config.settings import get_settings
from agrotrace.domain.exceptions import DomainError, DomainValidationError
from agrotrace.infrastructure.database.audit_hook import SessionAuditHook
from agrotrace.infrastructure.database.session import create_schema, dispose_engine
from agrotrace.security.exceptions import (
    AuthenticationRequiredError,
    AuthorizationError,
    TenantIsolationError,
)

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create schema, start audit workers and hook business sessions; drain on shutdown."""
    if settings.audit_storage == "database" and settings.auto_create_schema:
        await create_schema()
    dispatcher = get_audit_dispatcher()
    await dispatcher.start()
    hook = SessionAuditHook(get_change_interceptor())
    hook.install()
    logger.info("application_started", extra={"environment": settings.environment})
    try:
        yield
    finally:
        hook.uninstall()
        await dispatcher.stop()
        await close_redis_client()
        await dispose_engine()
        logger.info("application_stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Middleware order: last added runs first (outermost).
# Request flow: CorrelationId -> TenantContext -> SecurityContext -> RequestLogging.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityContextMiddleware)
app.add_middleware(TenantContextMiddleware)
app.add_middleware(CorrelationIdMiddleware)


def _error(request: Request, status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )


@app.exception_handler(DomainValidationError)
async def domain_validation_error_handler(request, exc: DomainValidationError):
    return _error(request, 422, exc.message)


@app.exception_handler(DomainError)
async def domain_error_handler(request, exc: DomainError):
    return _error(request, 400, exc.message)


@app.exception_handler(AuthenticationRequiredError)
async def authentication_error_handler(request, exc: AuthenticationRequiredError):
    return _error(request, 401, exc.message)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request, exc: AuthorizationError):
    return _error(request, 403, exc.message)


@app.exception_handler(TenantIsolationError)
async def tenant_isolation_error_handler(request, exc: TenantIsolationError):
    return _error(request, 403, "Access to this audit event is not allowed")


@app.exception_handler(AuditStorageError)
async def audit_storage_error_handler(request, exc: AuditStorageError):
    logger.error("audit_storage_unavailable", extra={"error": exc.message})
    return _error(request, 503, "Audit storage unavailable")


@app.exception_handler(AuditError)
async def audit_error_handler(request, exc: AuditError):
    return _error(request, 500, exc.message)


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    logger.error("unhandled_error", extra={"error": str(exc)}, exc_info=exc)
    return _error(request, 500, "Internal server error")


# Routers: /health, /api/auditoria
app.include_router(health.router)
app.include_router(audit.router, prefix="/api/auditoria")
