"""Domain layer: audit models, schemas, validators, exceptions. Pure business logic only."""

from agrotrace.domain.exceptions import (
    DomainError,
    DomainValidationError,
    InvalidEntityTypeError,
)
from agrotrace.domain.models import (
    AuditActor,
    AuditCommand,
    AuditEvent,
    Criticality,
    OperationType,
    SystemModule,
)
from agrotrace.domain.models.audit_query import AuditEventQuery
from agrotrace.domain.schemas import (
    AuditEventResponse,
    AuditStatisticsResponse,
    ChainValidationResponse,
)
from agrotrace.domain.validators import validate_audit_query

__all__ = [
    "AuditActor",
    "AuditCommand",
    "AuditEvent",
    "AuditEventQuery",
    "AuditEventResponse",
    "AuditStatisticsResponse",
    "ChainValidationResponse",
    "Criticality",
    "DomainError",
    "DomainValidationError",
    "InvalidEntityTypeError",
    "OperationType",
    "SystemModule",
    "validate_audit_query",
]
