"""Audit API router: tenant-scoped audit trail, statistics and hash-chain validation. Read-only."""

from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import JSONResponse

from agrotrace.api.dependencies import (
    get_audit_recorder,
    get_correlation_id,
    get_tenant_id,
    require_audit_reader,
    require_chain_verifier,
)
from agrotrace.audit.recorder import AuditRecorder
from agrotrace.domain.models.audit_event import Criticality, OperationType, SystemModule
from agrotrace.domain.models.audit_query import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from agrotrace.domain.schemas.audit_event import (
    AuditEventResponse,
    AuditStatisticsResponse,
    ChainValidationResponse,
)
from agrotrace.security.principal import Principal

router = APIRouter()

Reader = Annotated[Principal, Depends(require_audit_reader)]
Recorder = Annotated[AuditRecorder, Depends(get_audit_recorder)]
TenantId = Annotated[int, Depends(get_tenant_id)]


@router.get("", response_model=List[AuditEventResponse])
async def list_tenant_events(
    principal: Reader,
    tenant_id: TenantId,
    recorder: Recorder,
    operation_type: Annotated[Optional[OperationType], Query(alias="tipoOperacion")] = None,
    module: Annotated[Optional[SystemModule], Query(alias="modulo")] = None,
    criticality: Annotated[Optional[Criticality], Query(alias="nivelCriticidad")] = None,
    entity_code: Annotated[Optional[str], Query(alias="codigoEntidad")] = None,
    since: Annotated[Optional[datetime], Query(alias="desde")] = None,
    until: Annotated[Optional[datetime], Query(alias="hasta")] = None,
    limit: Annotated[int, Query(alias="limite", ge=1, le=MAX_QUERY_LIMIT)] = DEFAULT_QUERY_LIMIT,
):
    """All audit events of the caller's tenant, newest first."""
    return await recorder.list_by_tenant(
        tenant_id,
        operation_type=operation_type,
        module=module,
        criticality=criticality,
        entity_code=entity_code,
        since=since,
        until=until,
        limit=limit,
    )


@router.get("/entidad/{entity_type}/{entity_id}", response_model=List[AuditEventResponse])
async def list_entity_events(
    principal: Reader,
    tenant_id: TenantId,
    recorder: Recorder,
    entity_type: str,
    entity_id: Annotated[int, Path(gt=0)],
):
    """Full history of one entity, newest first."""
    return await recorder.list_by_entity(tenant_id, entity_type, entity_id)


@router.get("/criticos", response_model=List[AuditEventResponse])
async def list_critical_events(
    principal: Reader,
    tenant_id: TenantId,
    recorder: Recorder,
    limit: Annotated[int, Query(alias="limite", ge=1, le=MAX_QUERY_LIMIT)] = 10,
):
    return await recorder.list_recent_critical(tenant_id, limit=limit)


@router.get("/estadisticas", response_model=AuditStatisticsResponse)
async def audit_statistics(principal: Reader, tenant_id: TenantId, recorder: Recorder):
    return await recorder.count_by_entity_type(tenant_id)


@router.get("/blockchain", response_model=List[AuditEventResponse])
async def list_chain(principal: Reader, tenant_id: TenantId, recorder: Recorder):
    """The caller's hash chain in append order."""
    return await recorder.list_chain(tenant_id)


@router.get("/blockchain/validar", response_model=ChainValidationResponse)
async def validate_chain(
    principal: Annotated[Principal, Depends(require_chain_verifier)],
    tenant_id: TenantId,
    recorder: Recorder,
):
    """Walk the caller's chain and report whether it is intact."""
    valid = await recorder.verify_chain_integrity(tenant_id)
    return ChainValidationResponse(integrity_valid=valid)


@router.get("/{event_id}", response_model=AuditEventResponse)
async def get_audit_event(
    principal: Reader,
    tenant_id: TenantId,
    recorder: Recorder,
    event_id: Annotated[int, Path(gt=0)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
):
    """Single audit event (tenant-scoped). 403 when it belongs to another tenant."""
    event = await recorder.get_event(tenant_id, event_id)
    if event is None:
        return JSONResponse(
            status_code=404,
            content={"detail": "Audit event not found", "correlation_id": correlation_id},
        )
    return event
