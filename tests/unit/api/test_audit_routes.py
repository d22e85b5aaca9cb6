"""Tests for audit API: listings, entity history, chain dump and validation, RBAC and tenant isolation."""

from dataclasses import replace

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_list_tenant_events_newest_first(async_client: AsyncClient, auth_headers, seeded):
    r = await async_client.get("/api/auditoria", headers=auth_headers)
    assert r.status_code == 200
    data = r.json()
    assert [e["tipoOperacion"] for e in data] == ["DELETE", "UPDATE", "CREATE"]
    first = data[0]
    assert first["codigoEntidad"] == "LOTE-001"
    assert first["nivelCriticidad"] == "WARNING"
    assert first["modulo"] == "PRODUCCION"
    assert first["integridadVerificada"] is True
    assert first["enCadena"] is True
    assert len(first["hashEvento"]) == 64
    assert first["hashAnterior"] == data[1]["hashEvento"]


@pytest.mark.asyncio
async def test_list_tenant_events_filters(async_client: AsyncClient, auth_headers, seeded):
    r = await async_client.get(
        "/api/auditoria", params={"tipoOperacion": "UPDATE"}, headers=auth_headers
    )
    assert r.status_code == 200
    [event] = r.json()
    assert event["camposModificados"] == "hectareas"
    assert event["datosAnteriores"] == '{"hectareas": 10}'

    r = await async_client.get("/api/auditoria", params={"limite": 1}, headers=auth_headers)
    assert len(r.json()) == 1


@pytest.mark.asyncio
async def test_invalid_limit_returns_422(async_client: AsyncClient, auth_headers):
    r = await async_client.get("/api/auditoria", params={"limite": 0}, headers=auth_headers)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_inverted_date_range_returns_422(async_client: AsyncClient, auth_headers):
    r = await async_client.get(
        "/api/auditoria",
        params={"desde": "2024-06-01T00:00:00Z", "hasta": "2024-01-01T00:00:00Z"},
        headers=auth_headers,
    )
    assert r.status_code == 422
    assert "correlation_id" in r.json()


@pytest.mark.asyncio
async def test_entity_history(async_client: AsyncClient, auth_headers, seeded):
    r = await async_client.get("/api/auditoria/entidad/lote/42", headers=auth_headers)
    assert r.status_code == 200
    assert [e["descripcionOperacion"] for e in r.json()] == [
        "Eliminación de lote: LOTE-001",
        "Actualización de lote: LOTE-001",
        "Creación de lote: LOTE-001",
    ]


@pytest.mark.asyncio
async def test_entity_history_invalid_type_returns_400(async_client: AsyncClient, auth_headers):
    r = await async_client.get("/api/auditoria/entidad/lote-x/42", headers=auth_headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_entity_history_is_tenant_scoped(async_client: AsyncClient, auth_headers, seeded):
    r = await async_client.get("/api/auditoria/entidad/FINCA/5", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == []


@pytest.mark.asyncio
async def test_chain_dump_ascending(async_client: AsyncClient, auth_headers, seeded):
    r = await async_client.get("/api/auditoria/blockchain", headers=auth_headers)
    assert r.status_code == 200
    data = r.json()
    assert [e["id"] for e in data] == [e.id for e in seeded["tenant_1"]]
    assert data[0]["hashAnterior"] is None


@pytest.mark.asyncio
async def test_chain_validation(async_client: AsyncClient, auth_headers, seeded, repository):
    r = await async_client.get("/api/auditoria/blockchain/validar", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"integridadValida": True}

    middle = seeded["tenant_1"][1]
    repository.overwrite(replace(middle, self_hash="0" * 64))

    r = await async_client.get("/api/auditoria/blockchain/validar", headers=auth_headers)
    assert r.json() == {"integridadValida": False}


@pytest.mark.asyncio
async def test_empty_chain_is_valid(async_client: AsyncClient, auth_headers):
    r = await async_client.get("/api/auditoria/blockchain/validar", headers=auth_headers)
    assert r.json() == {"integridadValida": True}


@pytest.mark.asyncio
async def test_critical_events(async_client: AsyncClient, auth_headers, seeded, recorder):
    from datetime import datetime, timezone

    from agrotrace.domain.models.audit_event import AuditActor

    await recorder.record_shipment_close(
        shipment_id=9, shipment_code="ENV-001", pallet_count=3, net_weight_kg=1234.5,
        closing_hash="c0ffee", closed_at=datetime.now(timezone.utc), status="CERRADO",
        actor=AuditActor(actor_id=7, tenant_id=1),
    )

    r = await async_client.get("/api/auditoria/criticos", params={"limite": 5}, headers=auth_headers)
    assert r.status_code == 200
    [event] = r.json()
    assert event["esCritico"] is True
    assert event["descripcionOperacion"].startswith("Cierre de envío ENV-001")


@pytest.mark.asyncio
async def test_statistics(async_client: AsyncClient, auth_headers, seeded):
    r = await async_client.get("/api/auditoria/estadisticas", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {
        "totalEventosAuditoria": 3,
        "porTipoEntidad": [{"tipoEntidad": "LOTE", "total": 3}],
    }


@pytest.mark.asyncio
async def test_get_single_event(async_client: AsyncClient, auth_headers, seeded):
    event_id = seeded["tenant_1"][0].id
    r = await async_client.get(f"/api/auditoria/{event_id}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["id"] == event_id
    assert r.json()["empresaId"] == 1


@pytest.mark.asyncio
async def test_get_other_tenant_event_returns_403(async_client: AsyncClient, auth_headers, seeded):
    event_id = seeded["tenant_2"][0].id
    r = await async_client.get(f"/api/auditoria/{event_id}", headers=auth_headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_get_missing_event_returns_404(async_client: AsyncClient, auth_headers):
    r = await async_client.get(
        "/api/auditoria/999", headers={**auth_headers, "X-Correlation-ID": "corr-404"}
    )
    assert r.status_code == 404
    assert r.json() == {"detail": "Audit event not found", "correlation_id": "corr-404"}


@pytest.mark.asyncio
async def test_unauthenticated_returns_401(async_client: AsyncClient):
    r = await async_client.get("/api/auditoria", headers={"X-Tenant-ID": "1"})
    assert r.status_code == 401
    assert "detail" in r.json()


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["ADMIN", "PRODUCTOR", "OPERADOR_PLANTA", "OPERADOR_LOGISTICA", "auditor"])
async def test_known_roles_may_read(async_client: AsyncClient, auth_headers, role):
    r = await async_client.get("/api/auditoria", headers={**auth_headers, "X-User-Role": role})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_unknown_role_returns_403(async_client: AsyncClient, auth_headers):
    r = await async_client.get(
        "/api/auditoria/blockchain/validar", headers={**auth_headers, "X-User-Role": "GUEST"}
    )
    assert r.status_code == 403
