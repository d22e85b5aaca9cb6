"""FastAPI dependency injection: audit recorder, dispatcher, interceptor, principal, tenant, correlation_id."""

from typing import Annotated

from fastapi import Depends, Request

from agrotrace.audit.chain_lock import ChainLock, LocalChainLock
from agrotrace.audit.dispatcher import AuditDispatcher
from agrotrace.audit.interceptor import ChangeInterceptor
from agrotrace.audit.recorder import AuditRecorder
from agrotrace.audit.repository import AuditEventRepository
from agrotrace.config.settings import get_settings
from agrotrace.infrastructure.cache.redis_chain_lock import RedisChainLock
from agrotrace.infrastructure.cache.redis_client import RedisClient
from agrotrace.infrastructure.database.audit_repository_db import DbAuditEventRepository
from agrotrace.infrastructure.database.session import get_sessionmaker
from agrotrace.infrastructure.memory.audit_repository_memory import (
    InMemoryAuditEventRepository,
)
from agrotrace.observability.metrics import MetricsCollector
from agrotrace.security.exceptions import AuthenticationRequiredError
from agrotrace.security.principal import ANONYMOUS_PRINCIPAL, Principal
from agrotrace.security.rbac import RBACService

_metrics: MetricsCollector | None = None
_redis_client: RedisClient | None = None
_repository: AuditEventRepository | None = None
_chain_lock: ChainLock | None = None
_recorder: AuditRecorder | None = None
_dispatcher: AuditDispatcher | None = None
_interceptor: ChangeInterceptor | None = None
_rbac = RBACService()


def get_metrics() -> MetricsCollector:
    """Return singleton metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_redis_client() -> RedisClient:
    """Return singleton Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client


async def close_redis_client() -> None:
    """Close the shared Redis connection pool, if one was opened."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def get_audit_repository() -> AuditEventRepository:
    """Return singleton audit repository for the configured storage."""
    global _repository
    if _repository is None:
        if get_settings().audit_storage == "memory":
            _repository = InMemoryAuditEventRepository()
        else:
            _repository = DbAuditEventRepository(get_sessionmaker())
    return _repository


def get_chain_lock() -> ChainLock:
    """Return singleton chain lock: in-process, or Redis-backed for multiple replicas."""
    global _chain_lock
    if _chain_lock is None:
        settings = get_settings()
        if settings.audit_chain_lock_backend == "redis":
            _chain_lock = RedisChainLock(
                get_redis_client(),
                ttl_seconds=settings.audit_chain_lock_ttl_seconds,
                wait_seconds=settings.audit_chain_lock_wait_seconds,
            )
        else:
            _chain_lock = LocalChainLock()
    return _chain_lock


def get_audit_recorder() -> AuditRecorder:
    """Return singleton AuditRecorder wired from settings."""
    global _recorder
    if _recorder is None:
        settings = get_settings()
        _recorder = AuditRecorder(
            repository=get_audit_repository(),
            chain_lock=get_chain_lock(),
            chain_scope=settings.audit_chain_scope,
            chain_mode=settings.audit_chain_mode,
            hash_algorithm=settings.audit_hash_algorithm,
            max_append_retries=settings.audit_append_max_retries,
            metrics=get_metrics(),
        )
    return _recorder


def get_audit_dispatcher() -> AuditDispatcher:
    """Return singleton dispatcher. Started and stopped by the application lifespan."""
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        _dispatcher = AuditDispatcher(
            get_audit_recorder(),
            max_queue_size=settings.audit_queue_max_size,
            overflow_policy=settings.audit_overflow_policy,
            enqueue_timeout_seconds=settings.audit_enqueue_timeout_seconds,
            workers=settings.audit_workers,
            metrics=get_metrics(),
        )
    return _dispatcher


def get_change_interceptor() -> ChangeInterceptor:
    """Return singleton interceptor feeding the dispatcher."""
    global _interceptor
    if _interceptor is None:
        _interceptor = ChangeInterceptor(get_audit_dispatcher())
    return _interceptor


def reset_dependencies() -> None:
    """Drop all singletons (for tests and settings reloads)."""
    global _metrics, _redis_client, _repository, _chain_lock, _recorder, _dispatcher, _interceptor
    _metrics = _redis_client = _repository = _chain_lock = None
    _recorder = _dispatcher = _interceptor = None


def get_tenant_id(request: Request) -> int:
    """Extract tenant_id from request.state (set by middleware)."""
    return request.state.tenant_id


def get_correlation_id(request: Request) -> str:
    """Extract correlation_id from request.state (set by middleware)."""
    return getattr(request.state, "correlation_id", "") or ""


def get_current_principal(request: Request) -> Principal:
    """Authenticated principal from request.state. Raises AuthenticationRequiredError otherwise."""
    principal = getattr(request.state, "principal", ANONYMOUS_PRINCIPAL)
    if not principal.is_authenticated:
        raise AuthenticationRequiredError("Authentication required")
    return principal


def require_audit_reader(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    _rbac.check_role_name(principal.role, "view_audit")
    return principal


def require_chain_verifier(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    _rbac.check_role_name(principal.role, "verify_chain")
    return principal
