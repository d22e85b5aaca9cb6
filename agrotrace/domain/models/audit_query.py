"""Read-side filters for audit events. Pure data, no storage concerns."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from agrotrace.domain.models.audit_event import Criticality, OperationType, SystemModule

DEFAULT_QUERY_LIMIT = 500
MAX_QUERY_LIMIT = 5000


@dataclass(frozen=True)
class AuditEventQuery:
    """
    Tenant-scoped audit event filter. Results are always ordered newest first.
    `tenant_id=None` selects system events (no owning tenant).
    `limit=None` returns every match.
    """

    tenant_id: Optional[int]
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    entity_code: Optional[str] = None
    operation_type: Optional[OperationType] = None
    module: Optional[SystemModule] = None
    criticality: Optional[Criticality] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: Optional[int] = DEFAULT_QUERY_LIMIT
