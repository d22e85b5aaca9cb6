"""Fixtures for audit unit tests: in-memory repository, local chain lock, recorder, actors."""

import pytest

from agrotrace.audit.chain_lock import LocalChainLock
from agrotrace.audit.recorder import AuditRecorder
from agrotrace.domain.models.audit_event import AuditActor
from agrotrace.infrastructure.memory.audit_repository_memory import (
    InMemoryAuditEventRepository,
)
from agrotrace.observability.metrics import MetricsCollector


def make_actor(tenant_id: int | None = 1, actor_id: int = 7) -> AuditActor:
    return AuditActor(
        actor_id=actor_id,
        email="ana.perez@fincanorte.com",
        tenant_id=tenant_id,
        tenant_name="Finca Norte S.A." if tenant_id else None,
        client_ip="10.0.0.5",
        user_agent="pytest",
    )


@pytest.fixture
def actor():
    return make_actor()


@pytest.fixture
def repository():
    return InMemoryAuditEventRepository()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def recorder(repository, metrics):
    return AuditRecorder(
        repository,
        LocalChainLock(),
        retry_backoff_seconds=0,
        metrics=metrics,
    )


@pytest.fixture
def actor_factory():
    return make_actor
