"""Domain model for audit events. Pure business semantics; no ORM or infrastructure."""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from agrotrace.domain.exceptions import InvalidEntityTypeError


class OperationType(str, Enum):
    """Kind of change an audit event describes."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CLOSE = "CLOSE"  # Shipment closing; always critical and chained


class Criticality(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class SystemModule(str, Enum):
    """Functional area of the platform an entity type belongs to."""

    PRODUCCION = "PRODUCCION"
    EMPAQUE = "EMPAQUE"
    LOGISTICA = "LOGISTICA"
    SISTEMA = "SISTEMA"


_CRITICALITY_BY_OPERATION: Dict[OperationType, Criticality] = {
    OperationType.CREATE: Criticality.INFO,
    OperationType.UPDATE: Criticality.INFO,
    OperationType.DELETE: Criticality.WARNING,
    OperationType.CLOSE: Criticality.CRITICAL,
}

_MODULE_BY_ENTITY_TYPE: Dict[str, SystemModule] = {
    "FINCA": SystemModule.PRODUCCION,
    "LOTE": SystemModule.PRODUCCION,
    "COSECHA": SystemModule.PRODUCCION,
    "ACTIVIDAD": SystemModule.PRODUCCION,
    "CERTIFICACION": SystemModule.PRODUCCION,
    "RECEPCION": SystemModule.EMPAQUE,
    "CLASIFICACION": SystemModule.EMPAQUE,
    "ETIQUETA": SystemModule.EMPAQUE,
    "PALLET": SystemModule.EMPAQUE,
    "CONTROL_CALIDAD": SystemModule.EMPAQUE,
    "ENVIO": SystemModule.LOGISTICA,
    "EVENTO_LOGISTICO": SystemModule.LOGISTICA,
    "DOCUMENTO": SystemModule.LOGISTICA,
}

# Never recorded: the audit tables themselves, credentials and user accounts.
EXCLUDED_ENTITY_TYPES = frozenset(
    {
        "AUDIT_EVENT",
        "AUDIT_CHAIN_HEAD",
        "REFRESH_TOKEN",
        "PASSWORD_RESET_TOKEN",
        "USER",
    }
)

_ENTITY_TYPE_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")


def normalize_entity_type(raw: str) -> str:
    """Uppercase and validate an entity type label (e.g. 'lote' -> 'LOTE')."""
    value = (raw or "").strip().upper()
    if not _ENTITY_TYPE_PATTERN.match(value):
        raise InvalidEntityTypeError(f"Invalid entity type '{raw}'")
    return value


def criticality_for(operation: OperationType) -> Criticality:
    return _CRITICALITY_BY_OPERATION[operation]


def module_for(entity_type: str) -> SystemModule:
    return _MODULE_BY_ENTITY_TYPE.get(entity_type, SystemModule.SISTEMA)


def is_excluded_type(entity_type: str) -> bool:
    return entity_type in EXCLUDED_ENTITY_TYPES


@dataclass(frozen=True)
class AuditActor:
    """
    Who triggered a change, captured from the request security context
    at interception time (the write happens later, on a worker).
    """

    actor_id: int
    email: Optional[str] = None
    tenant_id: Optional[int] = None
    tenant_name: Optional[str] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AuditCommand:
    """Normalized description of one change, handed from the interceptor to the recorder."""

    operation: OperationType
    entity_type: str
    entity_id: Optional[int]
    entity_code: str
    description: str
    actor: AuditActor
    before_state: Optional[str] = None
    after_state: Optional[str] = None
    changed_fields: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class AuditEvent:
    """
    Immutable audit event. `id` is assigned by storage and defines chain order;
    everything else is fixed before hashing.
    """

    tenant_id: Optional[int]
    scope_key: str
    entity_type: str
    entity_id: Optional[int]
    entity_code: str
    operation_type: OperationType
    description: str
    actor_id: int
    module: SystemModule
    criticality: Criticality
    chained: bool
    occurred_at: datetime
    self_hash: str
    previous_hash: Optional[str] = None
    before_state: Optional[str] = None
    after_state: Optional[str] = None
    changed_fields: Optional[Tuple[str, ...]] = None
    actor_email: Optional[str] = None
    tenant_name: Optional[str] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    id: Optional[int] = None

    @property
    def is_critical(self) -> bool:
        return self.criticality == Criticality.CRITICAL
