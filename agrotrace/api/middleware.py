"""API middleware: correlation ID, tenant context, security context, request logging."""

import logging
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from agrotrace.core.context import (
    client_ip_ctx,
    correlation_id_ctx,
    principal_ctx,
    tenant_id_ctx,
    user_agent_ctx,
)
from agrotrace.security.principal import ANONYMOUS_PRINCIPAL, Principal

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"
TENANT_NAME_HEADER = "X-Tenant-Name"
CORRELATION_HEADER = "X-Correlation-ID"
USER_ID_HEADER = "X-User-ID"
USER_EMAIL_HEADER = "X-User-Email"
USER_ROLE_HEADER = "X-User-Role"
FORWARDED_FOR_HEADER = "X-Forwarded-For"

# Reachable without tenant or identity headers.
PUBLIC_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Generate or preserve correlation ID; attach to request.state, response header, and logging context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        correlation_id_ctx.set(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Extract X-Tenant-ID (integer); return 400 if missing or malformed; attach to request.state and context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.tenant_id = None
        request.state.tenant_name = request.headers.get(TENANT_NAME_HEADER)
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        raw = request.headers.get(TENANT_HEADER)
        if not raw or not raw.strip():
            return self._reject(request, "X-Tenant-ID header is required")
        tenant_id = _parse_int(raw)
        if tenant_id is None or tenant_id <= 0:
            return self._reject(request, "X-Tenant-ID header must be a positive integer")

        request.state.tenant_id = tenant_id
        tenant_id_ctx.set(tenant_id)
        return await call_next(request)

    @staticmethod
    def _reject(request: Request, detail: str) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "detail": detail,
                "correlation_id": getattr(request.state, "correlation_id", None),
            },
        )


class SecurityContextMiddleware(BaseHTTPMiddleware):
    """
    Build the request principal from the identity headers set by the auth
    gateway, plus client IP and user agent. Missing or malformed identity
    yields the anonymous principal; endpoints decide whether that is allowed.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        user_id = _parse_int(request.headers.get(USER_ID_HEADER))
        if user_id is None:
            principal = ANONYMOUS_PRINCIPAL
        else:
            principal = Principal(
                user_id=user_id,
                email=request.headers.get(USER_EMAIL_HEADER),
                role=request.headers.get(USER_ROLE_HEADER),
                tenant_id=getattr(request.state, "tenant_id", None),
                tenant_name=getattr(request.state, "tenant_name", None),
            )
        request.state.principal = principal
        principal_ctx.set(principal)
        client_ip_ctx.set(self._client_ip(request))
        user_agent_ctx.set(request.headers.get("user-agent"))
        return await call_next(request)

    @staticmethod
    def _client_ip(request: Request) -> Optional[str]:
        forwarded = request.headers.get(FORWARDED_FOR_HEADER)
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """After response: log structured request summary (path, method, status_code, duration)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request_completed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return response
