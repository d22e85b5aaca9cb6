"""Pydantic schemas for audit API responses. Field aliases follow the public camelCase contract."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agrotrace.domain.models.audit_event import (
    AuditEvent,
    Criticality,
    OperationType,
    SystemModule,
)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AuditEventResponse(BaseModel):
    """
    Read model for one audit event. `integrity_verified` is computed on read
    from the stored content; only the chain verification is authoritative.
    """

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: Optional[int] = None
    actor_id: int = Field(..., alias="usuarioId")
    actor_email: Optional[str] = Field(None, alias="usuarioEmail")

    entity_type: str = Field(..., alias="tipoEntidad")
    entity_id: Optional[int] = Field(None, alias="entidadId")
    entity_code: str = Field(..., alias="codigoEntidad")

    operation_type: OperationType = Field(..., alias="tipoOperacion")
    description: str = Field(..., alias="descripcionOperacion")

    before_state: Optional[str] = Field(None, alias="datosAnteriores")
    after_state: Optional[str] = Field(None, alias="datosNuevos")
    changed_fields: Optional[str] = Field(None, alias="camposModificados")

    self_hash: str = Field(..., alias="hashEvento")
    previous_hash: Optional[str] = Field(None, alias="hashAnterior")
    chained: bool = Field(..., alias="enCadena")
    integrity_verified: Optional[bool] = Field(None, alias="integridadVerificada")

    client_ip: Optional[str] = Field(None, alias="ipOrigen")
    user_agent: Optional[str] = Field(None, alias="userAgent")

    tenant_id: Optional[int] = Field(None, alias="empresaId")
    tenant_name: Optional[str] = Field(None, alias="empresaNombre")

    module: SystemModule = Field(..., alias="modulo")
    criticality: Criticality = Field(..., alias="nivelCriticidad")
    is_critical: bool = Field(..., alias="esCritico")

    occurred_at: datetime = Field(..., alias="fechaEvento")

    @classmethod
    def from_event(cls, event: AuditEvent, integrity_verified: Optional[bool]) -> "AuditEventResponse":
        return cls(
            id=event.id,
            actor_id=event.actor_id,
            actor_email=event.actor_email,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            entity_code=event.entity_code,
            operation_type=event.operation_type,
            description=event.description,
            before_state=event.before_state,
            after_state=event.after_state,
            changed_fields=",".join(event.changed_fields) if event.changed_fields else None,
            self_hash=event.self_hash,
            previous_hash=event.previous_hash,
            chained=event.chained,
            integrity_verified=integrity_verified,
            client_ip=event.client_ip,
            user_agent=event.user_agent,
            tenant_id=event.tenant_id,
            tenant_name=event.tenant_name,
            module=event.module,
            criticality=event.criticality,
            is_critical=event.is_critical,
            occurred_at=event.occurred_at,
        )


class ChainValidationResponse(BaseModel):
    """Result of GET /api/auditoria/blockchain/validar."""

    model_config = ConfigDict(populate_by_name=True)

    integrity_valid: bool = Field(..., alias="integridadValida")


class EntityTypeCount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_type: str = Field(..., alias="tipoEntidad")
    total: int


class AuditStatisticsResponse(BaseModel):
    """Event counts per entity type for the caller's tenant."""

    model_config = ConfigDict(populate_by_name=True)

    total_events: int = Field(..., alias="totalEventosAuditoria")
    by_entity_type: List[EntityTypeCount] = Field(default_factory=list, alias="porTipoEntidad")
