"""Domain models. Pure business entities."""

from agrotrace.domain.models.audit_event import (
    AuditActor,
    AuditCommand,
    AuditEvent,
    Criticality,
    OperationType,
    SystemModule,
)

__all__ = [
    "AuditActor",
    "AuditCommand",
    "AuditEvent",
    "Criticality",
    "OperationType",
    "SystemModule",
]
