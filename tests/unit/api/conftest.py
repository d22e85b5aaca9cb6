"""Fixtures for API unit tests: in-memory audit store, recorder override, AsyncClient, identity headers."""

import pytest
from httpx import ASGITransport, AsyncClient

from agrotrace.audit.chain_lock import LocalChainLock
from agrotrace.audit.recorder import AuditRecorder
from agrotrace.domain.models.audit_event import AuditActor
from agrotrace.infrastructure.memory.audit_repository_memory import (
    InMemoryAuditEventRepository,
)
from agrotrace.main import app


@pytest.fixture
def repository():
    return InMemoryAuditEventRepository()


@pytest.fixture
def recorder(repository):
    return AuditRecorder(repository, LocalChainLock())


@pytest.fixture
def app_with_overrides(recorder):
    """App with the audit recorder overridden for testing."""
    from agrotrace.api import dependencies

    app.dependency_overrides[dependencies.get_audit_recorder] = lambda: recorder
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app_with_overrides):
    """Async HTTP client for testing; uses overridden app."""
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    return {
        "X-Tenant-ID": "1",
        "X-Tenant-Name": "Finca Norte S.A.",
        "X-User-ID": "7",
        "X-User-Email": "ana.perez@fincanorte.com",
        "X-User-Role": "AUDITOR",
    }


def _actor(tenant_id: int) -> AuditActor:
    return AuditActor(actor_id=7, email="ana.perez@fincanorte.com", tenant_id=tenant_id)


@pytest.fixture
async def seeded(recorder):
    """LOTE-001 created, updated and deleted in tenant 1; one finca in tenant 2."""
    actor = _actor(1)
    events = [
        await recorder.record_creation(
            entity_type="LOTE", entity_id=42, entity_code="LOTE-001",
            description="Creación de lote: LOTE-001", actor=actor,
        ),
        await recorder.record_update(
            entity_type="LOTE", entity_id=42, entity_code="LOTE-001",
            description="Actualización de lote: LOTE-001",
            before_state='{"hectareas": 10}', after_state='{"hectareas": 12}',
            changed_fields=("hectareas",), actor=actor,
        ),
        await recorder.record_deletion(
            entity_type="LOTE", entity_id=42, entity_code="LOTE-001",
            description="Eliminación de lote: LOTE-001", actor=actor,
        ),
    ]
    other = await recorder.record_creation(
        entity_type="FINCA", entity_id=5, entity_code="El Roble",
        description="Creación de finca: El Roble", actor=_actor(2),
    )
    return {"tenant_1": events, "tenant_2": [other]}
